#!/usr/bin/env python3
"""ROCm Setup - Module entry point."""
import sys

from rocm_setup.cli import main

if __name__ == "__main__":
    sys.exit(main())
