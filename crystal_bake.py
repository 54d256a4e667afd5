#!/usr/bin/env python
"""CLI entry point for the crystal radiosity baker."""

from crystal_radiosity.pipeline import main

if __name__ == "__main__":
    main()
