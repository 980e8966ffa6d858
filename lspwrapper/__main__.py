#!/usr/bin/env python3
"""
LSPWRAPPER Command Line Interface Entry Point
=============================================

This module provides the entry point for running LSPWRAPPER as a module:
    python -m lspwrapper

It delegates to the main CLI functionality in cli.py
"""

from .cli import main

if __name__ == "__main__":
    main()
