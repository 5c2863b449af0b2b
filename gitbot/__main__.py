"""
Entry point for running gitbot via `python -m gitbot`.
"""

import sys

from .cli import main

if __name__ == "__main__":
    sys.exit(main())
