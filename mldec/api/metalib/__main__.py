"""
`python -m mldec.api.metalib` entrypoint.

The CLI lives in `mldec/api/metalib/cli.py` so that importing the library does
not pull in argparse / command wiring.
"""

from __future__ import annotations

from . import cli


def main() -> int:
    """Delegate to `mldec.api.metalib.cli.main`."""
    return cli.main()


if __name__ == "__main__":
    raise SystemExit(main())
