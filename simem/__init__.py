"""
SIMEM Backend - Exchange Price Extraction

Day-by-day extraction of SIMEM spot-price records with a persistent
per-day cache and multi-path network fallback.
"""

__version__ = "0.1.0"
