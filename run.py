"""Run the gitbot command line."""

import sys

from gitbot.cli import main

if __name__ == "__main__":
    sys.exit(main())
