"""TOML configuration loader for the receipt scanner."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path

if sys.version_info >= (3, 11):
    import tomllib
else:
    try:
        import tomli as tomllib
    except ImportError:
        tomllib = None  # type: ignore[assignment]

DEFAULT_BASE_URL = "https://receiptscannerforaustrilianclient-1.onrender.com"


@dataclass
class ServiceConfig:
    base_url: str = DEFAULT_BASE_URL
    upload_path: str = "/upload-receipt"
    health_path: str = "/test-api"
    field_name: str = "receipt"
    timeout: float = 60.0

    @property
    def upload_url(self) -> str:
        return self.base_url.rstrip("/") + self.upload_path

    @property
    def health_url(self) -> str:
        return self.base_url.rstrip("/") + self.health_path


@dataclass
class CameraConfig:
    index: int = 0
    capture_filename: str = "receipt.jpg"
    jpeg_quality: int = 90


@dataclass
class LivenessConfig:
    enabled: bool = True
    interval: float = 10.0
    timeout: float = 5.0


@dataclass
class LoggingConfig:
    level: str = "INFO"


@dataclass
class ScannerConfig:
    service: ServiceConfig = field(default_factory=ServiceConfig)
    camera: CameraConfig = field(default_factory=CameraConfig)
    liveness: LivenessConfig = field(default_factory=LivenessConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def load_config(path: str | Path | None = None) -> ScannerConfig:
    """Load configuration from a TOML file.

    Falls back to defaults if no path is given or the file doesn't exist.
    The service base URL can be overridden via RECEIPT_SCANNER_BASE_URL.
    """
    raw: dict = {}

    if path is not None:
        p = Path(path)
        if p.exists():
            if tomllib is None:
                raise ImportError(
                    "tomli is required on Python < 3.11: pip install tomli"
                )
            with open(p, "rb") as f:
                raw = tomllib.load(f)

    svc = raw.get("service", {})
    cam = raw.get("camera", {})
    liv = raw.get("liveness", {})
    log = raw.get("logging", {})

    # Environment variable wins over the config file
    base_url = os.environ.get("RECEIPT_SCANNER_BASE_URL", "") or svc.get(
        "base_url", DEFAULT_BASE_URL
    )

    jpeg_quality = int(cam.get("jpeg_quality", 90))
    if not 0 <= jpeg_quality <= 100:
        raise ValueError(f"camera.jpeg_quality must be 0-100: {jpeg_quality}")

    interval = float(liv.get("interval", 10.0))
    if interval <= 0:
        raise ValueError(f"liveness.interval must be positive: {interval}")

    return ScannerConfig(
        service=ServiceConfig(
            base_url=base_url,
            upload_path=svc.get("upload_path", "/upload-receipt"),
            health_path=svc.get("health_path", "/test-api"),
            field_name=svc.get("field_name", "receipt"),
            timeout=float(svc.get("timeout", 60.0)),
        ),
        camera=CameraConfig(
            index=cam.get("index", 0),
            capture_filename=cam.get("capture_filename", "receipt.jpg"),
            jpeg_quality=jpeg_quality,
        ),
        liveness=LivenessConfig(
            enabled=liv.get("enabled", True),
            interval=interval,
            timeout=float(liv.get("timeout", 5.0)),
        ),
        logging=LoggingConfig(
            level=str(log.get("level", "INFO")).upper(),
        ),
    )
