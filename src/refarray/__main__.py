"""Entry point for ``python -m refarray``."""

import sys

from refarray.cli import main

if __name__ == "__main__":
    sys.exit(main())
