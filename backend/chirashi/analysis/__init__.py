"""
Analysis package - Gemini flyer extraction and response parsing.
"""

from chirashi.analysis.gemini_extractor import GeminiFlyerExtractor
from chirashi.analysis.parser import parse_products
from chirashi.analysis.prompts import build_flyer_prompt

__all__ = ["GeminiFlyerExtractor", "parse_products", "build_flyer_prompt"]
