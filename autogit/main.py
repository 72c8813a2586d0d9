"""Main entry point for autogit."""

import sys

from .cli import main as cli_main


def main() -> int:
    """Run the CLI and return its exit code."""
    return cli_main()


if __name__ == "__main__":
    sys.exit(main())
