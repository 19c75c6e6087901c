"""
Extractor Module Entry Point

Allows execution via: python -m simem.extractor
"""

import asyncio
import sys

from simem.extractor.cli import main

if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
