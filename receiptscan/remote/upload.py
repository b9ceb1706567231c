"""Upload receipt images to the remote extraction service."""

from __future__ import annotations

import itertools
import logging

import httpx

from ..models import ExtractionResult, ImagePayload, UploadRequest

logger = logging.getLogger(__name__)


class UploadFailed(RuntimeError):
    """Transport failure or non-success response from the service."""


class UploadCoordinator:
    """Issues one multipart upload per request and parses the result.

    Each request is tagged with a monotonically increasing sequence number
    so callers can tell a late response from the most recent one.
    """

    def __init__(
        self,
        upload_url: str,
        field_name: str = "receipt",
        timeout: float = 60.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._upload_url = upload_url
        self._field_name = field_name
        self._timeout = timeout
        self._client = client
        self._sequence = itertools.count(1)
        self._latest_sequence = 0
        self._in_flight: int | None = None

    @property
    def in_flight(self) -> bool:
        return self._in_flight is not None

    @property
    def latest_sequence(self) -> int:
        return self._latest_sequence

    def is_current(self, sequence: int) -> bool:
        return sequence == self._latest_sequence

    def reserve_sequence(self) -> int:
        """Allocate the sequence number for an acquisition that just started."""
        self._latest_sequence = next(self._sequence)
        return self._latest_sequence

    def new_request(
        self, payload: ImagePayload, sequence: int | None = None
    ) -> UploadRequest:
        if sequence is None:
            sequence = self.reserve_sequence()
        return UploadRequest(sequence=sequence, payload=payload)

    async def upload(
        self, payload: ImagePayload | UploadRequest
    ) -> ExtractionResult:
        """POST the image and return the extracted text and price.

        Raises:
            UploadFailed: On transport errors or a non-2xx status.
        """
        request = (
            payload
            if isinstance(payload, UploadRequest)
            else self.new_request(payload)
        )
        self._in_flight = request.sequence
        logger.info(
            "Upload #%d started: %r", request.sequence, request.payload
        )
        try:
            response = await self._post(request)
        finally:
            if self._in_flight == request.sequence:
                self._in_flight = None

        if not response.is_success:
            logger.warning(
                "Upload #%d rejected: HTTP %d",
                request.sequence,
                response.status_code,
            )
            raise UploadFailed(f"Upload failed: HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError:
            logger.warning(
                "Upload #%d returned a non-JSON body", request.sequence
            )
            data = None

        result = ExtractionResult.from_response(data, sequence=request.sequence)
        logger.info("Upload #%d finished", request.sequence)
        return result

    async def _post(self, request: UploadRequest) -> httpx.Response:
        payload = request.payload
        files = {
            self._field_name: (payload.filename, payload.data, payload.mime_type)
        }
        try:
            if self._client is not None:
                return await self._client.post(
                    self._upload_url, files=files, timeout=self._timeout
                )
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                return await client.post(self._upload_url, files=files)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning("Upload #%d transport error: %s", request.sequence, e)
            raise UploadFailed(f"Upload failed: {e}") from e
