"""
Image Utilities
===============

In-memory image blobs, data-URI encoding and output normalization.
"""

import base64
import binascii
import io
import logging
import re
from dataclasses import dataclass
from typing import Optional, Tuple

from PIL import Image, UnidentifiedImageError

from ..core.exceptions import DecodeFailure, ValidationError

logger = logging.getLogger(__name__)

_DATA_URI_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+);base64,(?P<b64>.*)$", re.DOTALL)

MIME_TO_PIL_FORMAT = {
    "image/jpeg": "JPEG",
    "image/png": "PNG",
    "image/webp": "WEBP",
    "image/gif": "GIF",
}
PIL_FORMAT_TO_MIME = {v: k for k, v in MIME_TO_PIL_FORMAT.items()}


def sniff_mime_type(data: bytes) -> Optional[str]:
    """Detect an image MIME type from its magic bytes."""
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if data.startswith(b"\xff\xd8"):
        return "image/jpeg"
    if data.startswith(b"GIF87a") or data.startswith(b"GIF89a"):
        return "image/gif"
    if len(data) >= 12 and data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return None


@dataclass(frozen=True)
class ImageBlob:
    """An encoded image held in memory, tagged with its encoding."""

    data: bytes
    mime_type: str = "image/png"

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("utf-8")

    def to_data_uri(self) -> str:
        """Serialize as ``data:<mime>;base64,<payload>``."""
        return f"data:{self.mime_type};base64,{self.to_base64()}"

    @classmethod
    def from_base64(cls, payload: str, mime_type: Optional[str] = None) -> "ImageBlob":
        """
        Build a blob from a base64 payload.

        Args:
            payload: Base64 text (whitespace and missing padding tolerated)
            mime_type: Declared encoding; sniffed from the bytes when omitted

        Returns:
            ImageBlob
        """
        if not isinstance(payload, str):
            raise ValidationError(
                f"Base64 image payload must be text, got {type(payload).__name__}",
                field="image",
            )
        cleaned = "".join(payload.split())
        missing_padding = (-len(cleaned)) % 4
        if missing_padding:
            cleaned += "=" * missing_padding
        try:
            data = base64.b64decode(cleaned, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValidationError(
                f"Invalid base64 image payload: {e}",
                field="image",
            )
        return cls(data=data, mime_type=mime_type or sniff_mime_type(data) or "image/png")

    @classmethod
    def from_data_uri(cls, uri: str) -> "ImageBlob":
        """Parse a ``data:`` URI produced by :meth:`to_data_uri`."""
        match = _DATA_URI_RE.match(uri.strip())
        if not match:
            raise ValidationError(
                "Not a base64 data URI",
                field="image",
                value=uri[:40],
            )
        return cls.from_base64(match.group("b64"), mime_type=match.group("mime").lower())

    def __repr__(self) -> str:
        return f"ImageBlob(mime_type={self.mime_type!r}, size={len(self.data)})"


def get_image_dimensions(blob: ImageBlob) -> Tuple[int, int]:
    """Return ``(width, height)`` of an encoded image."""
    try:
        with Image.open(io.BytesIO(blob.data)) as img:
            return img.size
    except (UnidentifiedImageError, OSError) as e:
        raise DecodeFailure(f"Cannot read image: {e}", mime_type=blob.mime_type)


def fit_within(width: int, height: int, max_size: int) -> Tuple[int, int]:
    """
    Scale ``(width, height)`` so the longer edge is at most ``max_size``.

    Aspect ratio is preserved; images already within the bound are
    returned unchanged.
    """
    if width > height:
        if width > max_size:
            return max_size, max(1, round(height * max_size / width))
    else:
        if height > max_size:
            return max(1, round(width * max_size / height)), max_size
    return width, height


class ImageNormalizer:
    """
    Rescales and re-encodes generated images before persistence.

    Output is bounded to ``max_dimension`` on the longer edge and written
    as a lossy format at ``quality`` (0-1). The same input and settings
    always produce the same bytes.
    """

    def __init__(
        self,
        max_dimension: int = 1024,
        quality: float = 0.8,
        format: str = "JPEG",
    ):
        self.max_dimension = max_dimension
        self.quality = quality
        self.format = format.upper()

    @classmethod
    def from_config(cls, config) -> "ImageNormalizer":
        """Build from a :class:`NormalizationConfig`."""
        return cls(
            max_dimension=config.max_dimension,
            quality=config.quality,
            format=config.format,
        )

    @property
    def mime_type(self) -> str:
        return PIL_FORMAT_TO_MIME.get(self.format, "image/jpeg")

    def normalize(self, blob: ImageBlob) -> ImageBlob:
        """
        Normalize one image.

        Args:
            blob: Raw generated image

        Returns:
            Re-encoded ImageBlob

        Raises:
            DecodeFailure: If the bytes are not a readable image
        """
        try:
            with Image.open(io.BytesIO(blob.data)) as img:
                img.load()
                width, height = img.size
                new_size = fit_within(width, height, self.max_dimension)

                # Lossy formats here carry no alpha channel
                if img.mode != "RGB":
                    img = img.convert("RGB")
                if new_size != (width, height):
                    img = img.resize(new_size, Image.Resampling.LANCZOS)

                out = io.BytesIO()
                img.save(out, self.format, quality=int(round(self.quality * 100)))
        except (UnidentifiedImageError, OSError) as e:
            raise DecodeFailure(
                f"Generated image could not be decoded: {e}",
                mime_type=blob.mime_type,
            )

        logger.debug(
            f"Normalized image {width}x{height} -> {new_size[0]}x{new_size[1]} "
            f"({len(blob.data)} -> {out.tell()} bytes)"
        )
        return ImageBlob(data=out.getvalue(), mime_type=self.mime_type)
