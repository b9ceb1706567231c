"""Clients for the remote receipt extraction service."""

from .liveness import LivenessProber
from .upload import UploadCoordinator, UploadFailed

__all__ = [
    "LivenessProber",
    "UploadCoordinator",
    "UploadFailed",
]
