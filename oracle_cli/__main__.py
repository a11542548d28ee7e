"""
Module execution entry point.

Allows running with: python -m oracle_cli
"""

import sys
from oracle_cli.main import main

if __name__ == "__main__":
    sys.exit(main())
