# File: tracks/__main__.py
"""
Tracks — Module entry point.

Allows running the tool directly via::

    python -m tracks new myapp

Delegates to ``tracks.cli``.
"""

from __future__ import annotations


def main() -> None:
    """Delegate to the CLI main function."""
    from tracks.cli import cli_main
    cli_main()


if __name__ == "__main__":
    main()
