"""Module entrypoint for running audiotale as ``python -m audiotale``."""

from __future__ import annotations

from audiotale.cli import main


if __name__ == "__main__":
    main()
