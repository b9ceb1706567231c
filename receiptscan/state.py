"""Acquisition state machine and its observer interface.

The acquisition state is exactly one of ``Idle``, ``Uploading``,
``ResultReady`` or ``Failed``. Camera status is tracked alongside it and
changes independently. Subscribers receive an immutable ``ScannerView``
after every change.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Callable

from .models import ExtractionResult, PreviewRepresentation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Idle:
    """No image acquired yet."""


@dataclass(frozen=True)
class Uploading:
    preview: PreviewRepresentation
    sequence: int


@dataclass(frozen=True)
class ResultReady:
    preview: PreviewRepresentation
    result: ExtractionResult


@dataclass(frozen=True)
class Failed:
    preview: PreviewRepresentation | None
    reason: str


AcquisitionState = Idle | Uploading | ResultReady | Failed


@dataclass(frozen=True)
class ScannerView:
    """Everything a presentation layer needs to render the scanner."""

    acquisition: AcquisitionState = Idle()
    camera_open: bool = False
    camera_pending: bool = False
    preparing: bool = False
    notice: str | None = None

    @property
    def preview(self) -> PreviewRepresentation | None:
        return getattr(self.acquisition, "preview", None)

    @property
    def uploading(self) -> bool:
        return isinstance(self.acquisition, Uploading)

    @property
    def acquisition_enabled(self) -> bool:
        """False while controls that start an acquisition must be disabled."""
        return not (self.uploading or self.camera_pending or self.preparing)


Listener = Callable[[ScannerView], None]


class AcquisitionStateMachine:
    """Owns the current ``ScannerView`` and applies transitions to it.

    Results and failures are tagged with the upload sequence they belong
    to; anything that doesn't match the latest acquisition is dropped.
    """

    def __init__(self) -> None:
        self._view = ScannerView()
        self._current_sequence: int | None = None
        self._listeners: list[Listener] = []

    @property
    def view(self) -> ScannerView:
        return self._view

    @property
    def state(self) -> AcquisitionState:
        return self._view.acquisition

    @property
    def current_sequence(self) -> int | None:
        return self._current_sequence

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener and return a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # -- acquisition transitions --

    def begin_acquisition(self, sequence: int) -> None:
        """Record a newly started acquisition; it supersedes earlier ones.

        The image is still being read or normalized, so acquisition
        controls stay disabled until ``begin_upload`` or a failure.
        """
        self._current_sequence = sequence
        self._set(preparing=True)

    def begin_upload(
        self, preview: PreviewRepresentation, sequence: int
    ) -> bool:
        """Enter ``Uploading``, discarding any previous result or failure.

        Returns False if a newer acquisition has started in the meantime.
        """
        if self._current_sequence is not None and sequence < self._current_sequence:
            logger.info("Dropping superseded acquisition #%d", sequence)
            return False
        if isinstance(self.state, Uploading):
            logger.info(
                "Upload #%d superseded by #%d", self.state.sequence, sequence
            )
        self._current_sequence = sequence
        self._set(
            acquisition=Uploading(preview=preview, sequence=sequence),
            preparing=False,
            notice=None,
        )
        return True

    def complete(self, result: ExtractionResult) -> bool:
        """Enter ``ResultReady`` if the result answers the latest upload."""
        state = self.state
        if not self._is_current(result.sequence) or not isinstance(state, Uploading):
            logger.info("Discarding stale result for upload #%d", result.sequence)
            return False
        self._set(acquisition=ResultReady(preview=state.preview, result=result))
        return True

    def fail_upload(self, sequence: int, reason: str, notice: str | None = None) -> bool:
        """Enter ``Failed`` keeping the preview, unless the upload is stale."""
        state = self.state
        if not self._is_current(sequence) or not isinstance(state, Uploading):
            logger.info("Discarding stale failure for upload #%d", sequence)
            return False
        self._set(
            acquisition=Failed(preview=state.preview, reason=reason),
            notice=notice,
        )
        return True

    def fail_acquisition(
        self,
        reason: str,
        notice: str | None = None,
        sequence: int | None = None,
    ) -> bool:
        """A new acquisition produced no usable image.

        Any pending upload is superseded by this attempt. With a sequence,
        the failure is dropped if a newer acquisition has started since.
        """
        if sequence is not None and not self._is_current(sequence):
            logger.info("Discarding stale acquisition failure #%d", sequence)
            return False
        self._current_sequence = sequence
        self._set(
            acquisition=Failed(preview=None, reason=reason),
            preparing=False,
            notice=notice,
        )
        return True

    # -- camera substate --

    def set_camera(
        self, *, opened: bool | None = None, pending: bool | None = None
    ) -> None:
        changes: dict = {}
        if opened is not None:
            changes["camera_open"] = opened
        if pending is not None:
            changes["camera_pending"] = pending
        if changes:
            self._set(**changes)

    def notify(self, notice: str | None) -> None:
        self._set(notice=notice)

    def is_current(self, sequence: int) -> bool:
        return self._is_current(sequence)

    def _is_current(self, sequence: int) -> bool:
        return self._current_sequence is not None and sequence == self._current_sequence

    def _set(self, **changes) -> None:
        view = replace(self._view, **changes)
        if view == self._view:
            return
        self._view = view
        for listener in list(self._listeners):
            try:
                listener(view)
            except Exception:
                logger.exception("State listener %r failed", listener)
