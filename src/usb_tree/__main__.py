"""
CLI entry point for USB Tree.

Allows running with: python -m usb_tree
"""

import sys


def main():
    """Main entry point for the USB Tree CLI."""
    from .cli import main as cli_main

    return cli_main()


if __name__ == "__main__":
    sys.exit(main())
