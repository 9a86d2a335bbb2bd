"""
knoa CLI entry point.

Usage:
    knoa [OPTIONS] COMMAND [ARGS]...
"""

from knoa.cli import main

if __name__ == "__main__":
    main()
