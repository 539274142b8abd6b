"""Module entrypoint for ``python -m greenbay``."""

from __future__ import annotations

from greenbay.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
