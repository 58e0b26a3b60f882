#!/usr/bin/env python3
"""axec - Module entry point."""
import sys

from axec.cli import main

if __name__ == "__main__":
    sys.exit(main())
