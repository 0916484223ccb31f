"""
Image package - download, admission and normalization of flyer images.
"""

from chirashi.images.fetcher import ImageFetcher, admit_image
from chirashi.images.normalizer import normalize_image

__all__ = ["ImageFetcher", "admit_image", "normalize_image"]
