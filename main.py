#!/usr/bin/env python3
"""LearnLoop entry point.

Run with:
    python main.py CHILD_ID
    python -m learnloop CHILD_ID
"""

import sys

from learnloop.__main__ import main


if __name__ == "__main__":
    sys.exit(main())
