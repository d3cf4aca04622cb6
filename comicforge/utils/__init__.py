"""
Utilities
=========

Image helpers for comicforge.
"""

from .image_utils import (
    ImageBlob,
    ImageNormalizer,
    fit_within,
    get_image_dimensions,
    sniff_mime_type,
)

__all__ = [
    "ImageBlob",
    "ImageNormalizer",
    "fit_within",
    "get_image_dimensions",
    "sniff_mime_type",
]
