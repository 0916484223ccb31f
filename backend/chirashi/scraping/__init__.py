"""
Scraping package - flyer image discovery on listing sites.
"""

from chirashi.scraping.flyer_locator import FlyerLocator, StoreImages

__all__ = ["FlyerLocator", "StoreImages"]
