#!/usr/bin/env python3
"""
Allow running nativecall as a module.

Usage:
    python -m nativecall [command] [args...]

Examples:
    python -m nativecall build
    python -m nativecall run
    python -m nativecall doctor
"""

import sys
from nativecall.cli import main

if __name__ == "__main__":
    sys.exit(main())
