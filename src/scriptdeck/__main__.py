"""CLI entry point for scriptdeck.

Usage:
    python -m scriptdeck add "Disk usage" --shell bash --content "df -h"
    python -m scriptdeck run "Disk usage"
"""

import sys


def main() -> int:
    """Main entry point for the scriptdeck CLI."""
    from scriptdeck.cli import run_cli

    try:
        return run_cli(sys.argv[1:])
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
