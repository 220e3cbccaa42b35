"""
Main entry point for running the package as a module.

Usage:
    python -m medialib upload logo.png --record avatar.json --styles styles.json --id users/1
    python -m medialib crop @payload.json --record avatar.json --styles styles.json
    python -m medialib url --record avatar.json --style big
"""

import sys
from .cli import main

if __name__ == '__main__':
    sys.exit(main())
