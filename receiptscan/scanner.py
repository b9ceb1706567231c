"""Receipt acquisition and upload coordinator."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Callable

from .camera import CameraController, CameraUnavailable, FrameCapturer, FrameNotReady
from .models import ExtractionResult, ImagePayload
from .normalizer import ImageNormalizer, ImageUnreadable
from .remote import LivenessProber, UploadCoordinator, UploadFailed
from .state import AcquisitionState, AcquisitionStateMachine, Listener, ScannerView

if TYPE_CHECKING:
    import httpx

    from .config import ScannerConfig

logger = logging.getLogger(__name__)

CAMERA_UNAVAILABLE_NOTICE = "Camera access denied or unavailable."
FRAME_NOT_READY_NOTICE = "Camera is not ready yet. Try capturing again."
UNREADABLE_IMAGE_NOTICE = "Could not read the selected image."
UPLOAD_FAILED_NOTICE = "Upload failed! Try again."


class ReceiptScanner:
    """Coordinates file selection, camera capture and upload.

    The scanner has a mount/unmount lifecycle: ``start()`` begins the
    keep-alive prober, ``stop()`` cancels it and releases the camera.
    Both must be called from a running event loop. A stopped scanner
    cannot be started again.

    Each acquisition takes a sequence number as soon as it starts, then
    reads and normalizes the image, moves the state to ``Uploading`` and
    uploads it. Starting a new acquisition supersedes any earlier one,
    whether it is still being normalized or already uploading; the older
    outcome is ignored.
    """

    def __init__(
        self,
        normalizer: ImageNormalizer,
        controller: CameraController,
        uploader: UploadCoordinator,
        prober: LivenessProber | None = None,
    ) -> None:
        self._normalizer = normalizer
        self._controller = controller
        self._capturer = FrameCapturer(controller, normalizer)
        self._uploader = uploader
        self._prober = prober
        self._state = AcquisitionStateMachine()
        self._camera_request: asyncio.Future | None = None
        self._capturing = False
        self._started = False
        self._stopped = False

    # -- lifecycle --

    def start(self) -> None:
        if self._stopped:
            raise RuntimeError("ReceiptScanner cannot be restarted after stop()")
        if self._started:
            return
        self._started = True
        if self._prober is not None:
            self._prober.start()
        logger.info("Receipt scanner started")

    def stop(self) -> None:
        """Release every resource the scanner holds. Idempotent."""
        if self._stopped:
            return
        self._stopped = True
        if self._prober is not None:
            self._prober.stop()
        if self._camera_request is not None:
            self._camera_request.cancel()
        self.close_camera()
        logger.info("Receipt scanner stopped")

    async def __aenter__(self) -> ReceiptScanner:
        self.start()
        return self

    async def __aexit__(self, *exc) -> None:
        self.stop()

    @property
    def running(self) -> bool:
        return self._started and not self._stopped

    # -- observation --

    @property
    def view(self) -> ScannerView:
        return self._state.view

    @property
    def state(self) -> AcquisitionState:
        return self._state.state

    @property
    def acquisition_enabled(self) -> bool:
        return self.running and self.view.acquisition_enabled

    @property
    def upload_in_flight(self) -> bool:
        return self._uploader.in_flight

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        return self._state.subscribe(listener)

    # -- acquisition --

    async def select_file(self, path: str | Path) -> ExtractionResult | None:
        """Upload a user-selected image file.

        Returns the result, or None if the attempt failed or was superseded.
        """
        self._ensure_running()
        sequence = self._uploader.reserve_sequence()
        self._state.begin_acquisition(sequence)
        try:
            payload = await asyncio.to_thread(
                self._normalizer.payload_from_file, path
            )
        except ImageUnreadable as e:
            logger.warning("Selected file rejected: %s", e)
            self._state.fail_acquisition(
                str(e), notice=UNREADABLE_IMAGE_NOTICE, sequence=sequence
            )
            return None
        return await self._process(payload, sequence)

    async def open_camera(self) -> bool:
        """Open the camera. Returns False if it was already open or denied."""
        self._ensure_running()
        if self._controller.is_open or self._camera_request is not None:
            return False

        self._state.set_camera(pending=True)
        self._camera_request = asyncio.ensure_future(self._controller.open())
        try:
            await self._camera_request
        except CameraUnavailable as e:
            logger.warning("Camera unavailable: %s", e)
            self._state.set_camera(opened=False, pending=False)
            self._state.notify(CAMERA_UNAVAILABLE_NOTICE)
            return False
        except asyncio.CancelledError:
            self._state.set_camera(opened=False, pending=False)
            if self._stopped:
                return False
            raise
        else:
            if self._stopped or not self._controller.is_open:
                self._controller.close()
                self._state.set_camera(opened=False, pending=False)
                return False
            self._state.set_camera(opened=True, pending=False)
            self._state.notify(None)
            return True
        finally:
            self._camera_request = None
            self._state.set_camera(pending=False)

    async def capture(self) -> ExtractionResult | None:
        """Capture the current camera frame and upload it.

        Raises:
            FrameNotReady: If no frame is available yet. The camera stays
                open so the user can try again.
        """
        self._ensure_running()
        session = self._controller.session
        if session is None or self._capturing:
            raise FrameNotReady("Camera is not open or a capture is in progress")

        self._capturing = True
        self._state.set_camera(pending=True)
        try:
            payload = await self._capturer.capture(session)
        except FrameNotReady:
            self._state.notify(FRAME_NOT_READY_NOTICE)
            raise
        finally:
            self._capturing = False
            self._state.set_camera(opened=self._controller.is_open, pending=False)

        sequence = self._uploader.reserve_sequence()
        self._state.begin_acquisition(sequence)
        return await self._process(payload, sequence)

    def close_camera(self) -> None:
        self._controller.close()
        self._state.set_camera(opened=False)

    async def _process(
        self, payload: ImagePayload, sequence: int
    ) -> ExtractionResult | None:
        try:
            preview = await asyncio.to_thread(self._normalizer.normalize, payload)
        except ImageUnreadable as e:
            logger.warning("Image could not be normalized: %s", e)
            self._state.fail_acquisition(
                str(e), notice=UNREADABLE_IMAGE_NOTICE, sequence=sequence
            )
            return None

        if not self._state.is_current(sequence) or self._stopped:
            logger.info("Acquisition #%d superseded before upload", sequence)
            return None
        request = self._uploader.new_request(payload, sequence=sequence)
        if not self._state.begin_upload(preview, request.sequence):
            return None
        try:
            result = await self._uploader.upload(request)
        except UploadFailed as e:
            self._state.fail_upload(
                request.sequence, str(e), notice=UPLOAD_FAILED_NOTICE
            )
            return None

        if self._state.complete(result):
            return result
        return None

    def _ensure_running(self) -> None:
        if not self.running:
            raise RuntimeError("ReceiptScanner is not running; call start() first")


def create_scanner(
    config: ScannerConfig, client: httpx.AsyncClient | None = None
) -> ReceiptScanner:
    """Build a scanner wired up from configuration."""
    normalizer = ImageNormalizer(
        capture_filename=config.camera.capture_filename,
        jpeg_quality=config.camera.jpeg_quality,
    )
    uploader = UploadCoordinator(
        upload_url=config.service.upload_url,
        field_name=config.service.field_name,
        timeout=config.service.timeout,
        client=client,
    )
    prober = None
    if config.liveness.enabled:
        prober = LivenessProber(
            health_url=config.service.health_url,
            interval=config.liveness.interval,
            timeout=config.liveness.timeout,
            client=client,
        )
    return ReceiptScanner(
        normalizer=normalizer,
        controller=CameraController(camera_index=config.camera.index),
        uploader=uploader,
        prober=prober,
    )
