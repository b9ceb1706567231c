"""USB camera session handling and still-frame capture using OpenCV."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from .models import ImagePayload
from .normalizer import ImageNormalizer

logger = logging.getLogger(__name__)


class CameraUnavailable(RuntimeError):
    """Camera access was denied or no camera hardware is present."""


class CameraInUse(RuntimeError):
    """A session from this controller is still open."""


class FrameNotReady(RuntimeError):
    """The stream has not produced a renderable frame yet."""


def _import_cv2():
    try:
        import cv2
    except ImportError:
        raise ImportError(
            "opencv-python is required: pip install opencv-python"
        ) from None
    return cv2


def _release_abandoned(future: asyncio.Future) -> None:
    if future.cancelled() or future.exception() is not None:
        return
    future.result().release()
    logger.debug("Released camera opened after its request was cancelled")


class VideoTrack:
    """One hardware stream backing a camera session."""

    def __init__(self, capture: Any, label: str = "") -> None:
        self._capture = capture
        self.label = label
        self._live = True

    @property
    def live(self) -> bool:
        return self._live

    @property
    def capture(self) -> Any:
        return self._capture

    def stop(self) -> None:
        if not self._live:
            return
        self._live = False
        try:
            self._capture.release()
        except Exception:
            logger.exception("Failed to release camera track %s", self.label)


@dataclass
class CameraSession:
    tracks: list[VideoTrack] = field(default_factory=list)
    active: bool = True

    @property
    def live_tracks(self) -> list[VideoTrack]:
        return [t for t in self.tracks if t.live]

    @property
    def video_track(self) -> VideoTrack | None:
        live = self.live_tracks
        return live[0] if live else None


class CameraController:
    """Owns the camera lifecycle: open, bind a stream, release on close."""

    def __init__(self, camera_index: int = 0) -> None:
        self._camera_index = camera_index
        self._session: CameraSession | None = None

    @property
    def session(self) -> CameraSession | None:
        return self._session

    @property
    def is_open(self) -> bool:
        return self._session is not None and self._session.active

    async def open(self) -> CameraSession:
        """Request camera access and return an active session.

        Raises:
            CameraInUse: If a previous session has not been closed.
            CameraUnavailable: If the device can't be opened.
            ImportError: If opencv-python is not installed.
        """
        if self.is_open:
            raise CameraInUse(
                f"Camera {self._camera_index} is already open; close it first"
            )

        cv2 = _import_cv2()

        opening = asyncio.ensure_future(
            asyncio.to_thread(cv2.VideoCapture, self._camera_index)
        )
        try:
            cap = await asyncio.shield(opening)
        except asyncio.CancelledError:
            # The device call can't be interrupted; release whatever it opens.
            opening.add_done_callback(_release_abandoned)
            raise
        except Exception as e:
            raise CameraUnavailable(
                f"Camera {self._camera_index} could not be opened: {e}"
            ) from e

        if not cap.isOpened():
            cap.release()
            raise CameraUnavailable(
                f"Camera {self._camera_index} access denied or unavailable"
            )

        # A concurrent open() may have won while we were waiting on the device.
        if self.is_open:
            cap.release()
            raise CameraInUse(
                f"Camera {self._camera_index} is already open; close it first"
            )

        self._session = CameraSession(
            tracks=[VideoTrack(cap, label=f"camera{self._camera_index}")]
        )
        logger.info("Camera %d opened", self._camera_index)
        return self._session

    def close(self, session: CameraSession | None = None) -> None:
        """Stop every track of the session. Closing twice is a no-op."""
        session = session if session is not None else self._session
        if session is None:
            return

        for track in session.tracks:
            track.stop()
        was_active = session.active
        session.active = False

        if session is self._session:
            self._session = None
        if was_active:
            logger.info("Camera %d closed", self._camera_index)

    @staticmethod
    def list_cameras(max_check: int = 10) -> list[int]:
        """List available camera indices by probing."""
        cv2 = _import_cv2()

        available: list[int] = []
        for i in range(max_check):
            cap = cv2.VideoCapture(i)
            if cap.isOpened():
                available.append(i)
            cap.release()
        return available


class FrameCapturer:
    """Snapshot exactly one frame from an open session, then close it."""

    def __init__(
        self, controller: CameraController, normalizer: ImageNormalizer
    ) -> None:
        self._controller = controller
        self._normalizer = normalizer

    async def capture(self, session: CameraSession) -> ImagePayload:
        """Capture the current frame as a JPEG payload.

        The session is closed after a successful snapshot; a second capture
        needs a freshly opened camera.

        Raises:
            FrameNotReady: If the session is inactive or has no frame yet.
                The camera stays open in that case.
        """
        track = session.video_track if session.active else None
        if track is None:
            raise FrameNotReady("Camera session is not active")

        ret, frame = await asyncio.to_thread(track.capture.read)
        if not ret or frame is None or frame.ndim < 2:
            raise FrameNotReady("Camera has not produced a frame yet")
        height, width = frame.shape[:2]
        if width == 0 or height == 0:
            raise FrameNotReady("Camera frame has no dimensions yet")

        try:
            payload = self._normalizer.payload_from_frame(frame)
        except ValueError as e:
            raise FrameNotReady(str(e)) from e

        self._controller.close(session)
        logger.debug("Captured %dx%d frame (%d bytes)", width, height, len(payload.data))
        return payload
