"""
Tests for common module (error handling, logging, cleanup, locking).
"""

import json
import pytest
import logging
import threading
import time


class TestExceptions:
    """Tests for exception hierarchy."""

    def test_axec_error_basic(self):
        """Test basic AxecError."""
        from common.exceptions import AxecError

        error = AxecError("Something failed")
        assert str(error) == "[AxecError] Something failed"
        assert error.recoverable is True

    def test_axec_error_with_details(self):
        """Test AxecError with details."""
        from common.exceptions import AxecError

        error = AxecError(
            "Operation failed",
            code="OP_FAILED",
            details={"field": "value"},
            recoverable=False,
        )

        assert error.code == "OP_FAILED"
        assert error.details == {"field": "value"}
        assert error.recoverable is False
        assert "details:" in str(error)

    def test_axec_error_to_dict(self):
        """Test JSON serialization."""
        from common.exceptions import AxecError

        error = AxecError("Test", code="TEST", details={"key": 1})
        d = error.to_dict()

        assert d["error"] == "TEST"
        assert d["message"] == "Test"
        assert d["details"]["key"] == 1

    def test_not_found_error(self):
        """NotFoundError names the id and is not recoverable."""
        from common.exceptions import NotFoundError

        error = NotFoundError("abc123")
        assert "abc123" in str(error)
        assert error.code == "PACKAGE_NOT_FOUND"
        assert error.recoverable is False

    def test_io_error_carries_path_and_operation(self):
        """IoError reports the failing path and operation."""
        from common.exceptions import IoError

        cause = OSError(13, "Permission denied")
        error = IoError("/tmp/x.AppImage", "copy package", "Permission denied", cause=cause)

        assert error.details["path"] == "/tmp/x.AppImage"
        assert error.details["operation"] == "copy package"
        assert error.recoverable is True
        assert "caused by" in str(error)

    def test_integration_error_mentions_rollback(self):
        from common.exceptions import IntegrationError

        error = IntegrationError("abc", "persist catalog entry")
        assert "rolled back" in error.message
        assert error.details["stage"] == "persist catalog entry"

    def test_all_errors_share_base(self):
        from common.exceptions import (
            AxecError, ValidationError, NotFoundError, IoError, IntegrationError, CatalogError,
        )

        for error in (
            ValidationError("x", "bad"),
            NotFoundError("x"),
            IoError("x", "read", "bad"),
            IntegrationError("x", "persist"),
            CatalogError("x", "bad"),
        ):
            assert isinstance(error, AxecError)


class TestDecorators:
    """Tests for error handling decorators."""

    def test_handle_errors_returns_default(self):
        """Test @handle_errors returns default on exception."""
        from common.decorators import handle_errors

        @handle_errors(ValueError, default="fallback")
        def failing_func():
            raise ValueError("test error")

        result = failing_func()
        assert result == "fallback"

    def test_handle_errors_passes_through(self):
        """Test @handle_errors passes through on success."""
        from common.decorators import handle_errors

        @handle_errors(ValueError, default="fallback")
        def working_func():
            return "success"

        result = working_func()
        assert result == "success"

    def test_handle_errors_logs_warning(self, caplog):
        from common.decorators import handle_errors

        @handle_errors(OSError, default=0, message="Icon cleanup failed")
        def failing_func():
            raise OSError("read-only")

        with caplog.at_level(logging.WARNING, logger="common.decorators"):
            assert failing_func() == 0

        assert "Icon cleanup failed: read-only" in caplog.text

    def test_handle_errors_ignores_other_types(self):
        from common.decorators import handle_errors

        @handle_errors(OSError, default=False)
        def failing_func():
            raise KeyError("not an OSError")

        with pytest.raises(KeyError):
            failing_func()

    def test_timed_decorator(self, caplog):
        """Test @timed logs execution time."""
        from common.decorators import timed

        @timed
        def slow_func():
            time.sleep(0.01)
            return "done"

        with caplog.at_level(logging.DEBUG, logger=__name__):
            result = slow_func()

        assert result == "done"
        assert "slow_func completed in" in caplog.text

    def test_timed_reports_failure(self, caplog):
        from common.decorators import timed

        @timed
        def broken():
            raise KeyError("x")

        with caplog.at_level(logging.DEBUG, logger=__name__):
            with pytest.raises(KeyError):
                broken()

        assert "broken failed in" in caplog.text


class TestLogging:
    """Tests for logging configuration."""

    def test_setup_logging_creates_handlers(self, restore_logging):
        """Test setup_logging configures handlers."""
        from common.logging_config import setup_logging

        setup_logging(level=logging.DEBUG)

        root = logging.getLogger()
        assert len(root.handlers) >= 1

    def test_setup_logging_log_dir(self, tmp_path, restore_logging):
        from common.logging_config import setup_logging

        setup_logging(level=logging.INFO, log_dir=tmp_path / "logs")
        logging.getLogger("axec.test").warning("written to file")
        for handler in logging.getLogger().handlers:
            handler.flush()

        assert "written to file" in (tmp_path / "logs" / "axec.log").read_text()

    def test_get_logger_prefix(self):
        """Test get_logger adds axec prefix."""
        from common.logging_config import get_logger

        logger = get_logger("test_module")
        assert "axec.test_module" in logger.name

    def test_json_formatter_includes_context(self):
        """LogContext data ends up in JSON log records."""
        from common.logging_config import ContextFilter, JSONFormatter, LogContext

        record = logging.LogRecord("axec.test", logging.INFO, __file__, 1, "hello", None, None)
        with LogContext(package_id="abc", operation="add"):
            ContextFilter().filter(record)

        data = json.loads(JSONFormatter().format(record))
        assert data["message"] == "hello"
        assert data["context"] == {"package_id": "abc", "operation": "add"}

    def test_log_context_nests(self):
        from common.logging_config import LogContext, current_context

        with LogContext(package_id="abc", operation="add"):
            with LogContext(operation="rollback"):
                assert current_context() == {"package_id": "abc", "operation": "rollback"}
            assert current_context()["operation"] == "add"
        assert current_context() == {}

    def test_log_context_is_per_thread(self):
        from common.logging_config import LogContext, current_context

        seen = {}

        def other_thread():
            seen["context"] = current_context()

        with LogContext(package_id="abc"):
            t = threading.Thread(target=other_thread)
            t.start()
            t.join()

        assert seen["context"] == {}

    def test_log_file_carries_context(self, tmp_path, restore_logging):
        from common.logging_config import LogContext, setup_logging

        log_file = tmp_path / "axec.log"
        setup_logging(level=logging.WARNING, log_file=log_file)
        with LogContext(package_id="abc"):
            logging.getLogger("axec.test").debug("staged copy")
        for handler in logging.getLogger().handlers:
            handler.flush()

        assert "staged copy [package_id=abc]" in log_file.read_text()


class TestCleanupRegistry:
    """Tests for staged cleanup."""

    def test_cleanup_runs_in_reverse_order(self):
        from common.resources import CleanupRegistry

        cleanup_called = []

        registry = CleanupRegistry()
        registry.register(lambda: cleanup_called.append(1))
        registry.register(lambda: cleanup_called.append(2))

        registry.cleanup_all()

        assert cleanup_called == [2, 1]

    def test_cleanup_continues_after_failure(self):
        from common.resources import CleanupRegistry

        cleanup_called = []

        def broken():
            raise OSError("nope")

        registry = CleanupRegistry()
        registry.register(lambda: cleanup_called.append("first"))
        registry.register(broken)

        failures = registry.cleanup_all()

        assert failures == 1
        assert cleanup_called == ["first"]

    def test_discard_forgets_callbacks(self):
        from common.resources import CleanupRegistry

        cleanup_called = []
        registry = CleanupRegistry()
        registry.register(lambda: cleanup_called.append(1))

        registry.discard()
        registry.cleanup_all()

        assert cleanup_called == []
        assert len(registry) == 0


class TestLocking:
    """Tests for read-write and file locks."""

    def test_write_lock_excludes_writers(self):
        from common.locking import ReadWriteLock

        lock = ReadWriteLock()
        counter = {"value": 0}

        def bump():
            for _ in range(200):
                with lock.write():
                    current = counter["value"]
                    counter["value"] = current + 1

        threads = [threading.Thread(target=bump) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert counter["value"] == 800

    def test_readers_share_lock(self):
        from common.locking import ReadWriteLock

        lock = ReadWriteLock()
        with lock.read():
            with lock.read():
                pass

    def test_file_lock_creates_sidecar(self, tmp_path):
        from common.locking import FileLock

        lock_path = tmp_path / "nested" / "catalog.json.lock"
        with FileLock(lock_path):
            assert lock_path.exists()

    def test_file_lock_release_is_idempotent(self, tmp_path):
        from common.locking import FileLock

        lock = FileLock(tmp_path / "x.lock", shared=True)
        lock.acquire()
        lock.release()
        lock.release()
