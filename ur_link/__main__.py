"""
Entry point for running ur_link as a module.

Usage:
    python -m ur_link
"""

import sys
from .driver import main

if __name__ == "__main__":
    sys.exit(main())
