"""Data models for receipt images and extraction results."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

NO_TEXT_PLACEHOLDER = "No text extracted"
NO_PRICE_PLACEHOLDER = "Not found"


@dataclass(frozen=True)
class ImagePayload:
    """Raw image bytes produced by either acquisition path."""

    data: bytes
    mime_type: str = "image/jpeg"
    filename: str = "receipt.jpg"

    def __repr__(self) -> str:
        return (
            f"ImagePayload(filename={self.filename!r}, "
            f"mime_type={self.mime_type!r}, size={len(self.data)})"
        )


@dataclass(frozen=True)
class PreviewRepresentation:
    """Self-contained data URL suitable for direct display."""

    data_url: str
    width: int = 0
    height: int = 0


@dataclass(frozen=True)
class UploadRequest:
    sequence: int
    payload: ImagePayload


@dataclass(frozen=True)
class ExtractionResult:
    """Text and total price returned by the extraction service."""

    extracted_text: str
    total_price: str
    sequence: int = 0

    @classmethod
    def from_response(cls, data: Any, sequence: int = 0) -> ExtractionResult:
        """Build a result from a decoded response body.

        Anything that isn't a JSON object counts as both fields absent.
        Absent or empty fields are replaced with explicit placeholders.
        """
        if not isinstance(data, dict):
            data = {}
        return cls(
            extracted_text=_field_text(data.get("extractedText"))
            or NO_TEXT_PLACEHOLDER,
            total_price=_field_text(data.get("totalPrice"))
            or NO_PRICE_PLACEHOLDER,
            sequence=sequence,
        )


def _field_text(value: Any) -> str:
    if value is None or isinstance(value, bool):
        return ""
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return value
    return ""
