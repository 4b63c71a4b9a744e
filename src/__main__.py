#!/usr/bin/env python
"""
Entry point for running the package as a module.

Usage:
    python -m cg_inversion --help
    python -m cg_inversion solve --data-dir measurements/
    python -m cg_inversion demo --maxit 30
"""

from .cli import main

if __name__ == "__main__":
    main()
