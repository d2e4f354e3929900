"""Module entry point: python -m territory_loop ..."""

from __future__ import annotations

from territory_loop.cli import main


if __name__ == "__main__":
    raise SystemExit(main())
