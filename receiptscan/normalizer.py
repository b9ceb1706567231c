"""Turn acquired images into previews and upload payloads."""

from __future__ import annotations

import base64
import mimetypes
from pathlib import Path

import numpy as np

from .models import ImagePayload, PreviewRepresentation


class ImageUnreadable(ValueError):
    """Raised when a file or frame cannot be read as an image."""


def _import_cv2():
    try:
        import cv2
    except ImportError:
        raise ImportError(
            "opencv-python is required: pip install opencv-python"
        ) from None
    return cv2


class ImageNormalizer:
    """Produce source-independent previews from image payloads.

    File selections and camera frames both end up as an ``ImagePayload``;
    everything downstream only ever sees that type.
    """

    def __init__(
        self, capture_filename: str = "receipt.jpg", jpeg_quality: int = 90
    ) -> None:
        self._capture_filename = capture_filename
        self._jpeg_quality = jpeg_quality

    def payload_from_file(self, path: str | Path) -> ImagePayload:
        """Read a user-selected image file."""
        path = Path(path)
        mime_type = mimetypes.guess_type(path.name)[0] or ""
        if not mime_type.startswith("image/"):
            raise ImageUnreadable(f"Not an image file: {path.name}")
        try:
            data = path.read_bytes()
        except OSError as e:
            raise ImageUnreadable(f"Cannot read {path}: {e}") from e
        if not data:
            raise ImageUnreadable(f"Empty image file: {path}")
        return ImagePayload(data=data, mime_type=mime_type, filename=path.name)

    def payload_from_frame(self, frame: np.ndarray) -> ImagePayload:
        """Encode a captured BGR frame as JPEG."""
        cv2 = _import_cv2()

        ok, buf = cv2.imencode(
            ".jpg", frame, [int(cv2.IMWRITE_JPEG_QUALITY), self._jpeg_quality]
        )
        if not ok or buf is None:
            raise ImageUnreadable("Failed to encode captured frame as JPEG")
        return ImagePayload(
            data=buf.tobytes(),
            mime_type="image/jpeg",
            filename=self._capture_filename,
        )

    def normalize(self, payload: ImagePayload) -> PreviewRepresentation:
        """Validate the payload decodes and return it as a data URL."""
        if not payload.data:
            raise ImageUnreadable("Image payload is empty")

        cv2 = _import_cv2()
        image = cv2.imdecode(
            np.frombuffer(payload.data, dtype=np.uint8), cv2.IMREAD_UNCHANGED
        )
        if image is None or image.size == 0:
            raise ImageUnreadable(f"Cannot decode image: {payload.filename}")

        height, width = image.shape[:2]
        encoded = base64.standard_b64encode(payload.data).decode()
        return PreviewRepresentation(
            data_url=f"data:{payload.mime_type};base64,{encoded}",
            width=int(width),
            height=int(height),
        )
