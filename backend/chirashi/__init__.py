"""
Chirashi - supermarket flyer ingestion and price extraction.
"""

__version__ = "0.3.0"
