"""
hotproc/__main__.py
===================

Entry point for ``python -m hotproc``; see :mod:`hotproc.main`.
"""

from hotproc.main import main

if __name__ == "__main__":
    raise SystemExit(main())
