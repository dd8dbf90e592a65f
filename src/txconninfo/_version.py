# Copyright (c) Twisted Matrix Laboratories.
# See LICENSE for details.

"""
Provides txconninfo version information.
"""

from incremental import Version

__version__ = Version("txconninfo", 1, 0, 0)
__all__ = ["__version__"]
