# Copyright (c) Twisted Matrix Laboratories.
# See LICENSE for details.

"""
Decode a captured connection buffer: C{python -m txconninfo capture.bin}.
"""

import sys

from txconninfo._inspect import run

if __name__ == "__main__":
    sys.exit(run())
