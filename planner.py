#!/usr/bin/env python3
"""Run the planner CLI from a source checkout, e.g. ``./planner.py pull --force``.

Installed copies use the ``planner`` console script instead.
"""

import sys

from interface.app import main

if __name__ == "__main__":
    sys.exit(main())
