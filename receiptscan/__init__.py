"""Receipt image acquisition and upload for a remote extraction service."""

from .camera import (
    CameraController,
    CameraInUse,
    CameraSession,
    CameraUnavailable,
    FrameCapturer,
    FrameNotReady,
    VideoTrack,
)
from .config import ScannerConfig, load_config
from .models import (
    NO_PRICE_PLACEHOLDER,
    NO_TEXT_PLACEHOLDER,
    ExtractionResult,
    ImagePayload,
    PreviewRepresentation,
    UploadRequest,
)
from .normalizer import ImageNormalizer, ImageUnreadable
from .remote import LivenessProber, UploadCoordinator, UploadFailed
from .scanner import ReceiptScanner, create_scanner
from .state import (
    AcquisitionState,
    AcquisitionStateMachine,
    Failed,
    Idle,
    ResultReady,
    ScannerView,
    Uploading,
)

__all__ = [
    "ReceiptScanner",
    "create_scanner",
    "ScannerConfig",
    "load_config",
    "ImageNormalizer",
    "ImageUnreadable",
    "CameraController",
    "CameraSession",
    "VideoTrack",
    "FrameCapturer",
    "CameraUnavailable",
    "CameraInUse",
    "FrameNotReady",
    "UploadCoordinator",
    "UploadFailed",
    "LivenessProber",
    "AcquisitionState",
    "AcquisitionStateMachine",
    "ScannerView",
    "Idle",
    "Uploading",
    "ResultReady",
    "Failed",
    "ImagePayload",
    "PreviewRepresentation",
    "UploadRequest",
    "ExtractionResult",
    "NO_TEXT_PLACEHOLDER",
    "NO_PRICE_PLACEHOLDER",
]
