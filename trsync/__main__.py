"""Entry point for ``python -m trsync``."""

from __future__ import annotations

from trsync.cli.main import main

if __name__ == "__main__":
    main()
