#!/usr/bin/env python3
"""PyTorch Provisioner - Module entry point."""
import sys

from torch_provision.cli import main

if __name__ == "__main__":
    sys.exit(main())
