#!/usr/bin/env python
"""
Run script for linecalc.
This allows users to start the calculator without installing the package.
"""

import sys

from linecalc.app import main

if __name__ == "__main__":
    sys.exit(main())
