"""Tests for the acquisition state machine."""

import pytest

from receiptscan.models import ExtractionResult, PreviewRepresentation
from receiptscan.state import (
    AcquisitionStateMachine,
    Failed,
    Idle,
    ResultReady,
    ScannerView,
    Uploading,
)


@pytest.fixture
def machine():
    return AcquisitionStateMachine()


@pytest.fixture
def preview():
    return PreviewRepresentation(data_url="data:image/jpeg;base64,AAAA", width=4, height=4)


def _result(sequence: int, text: str = "Total: $12.50") -> ExtractionResult:
    return ExtractionResult(extracted_text=text, total_price="12.50", sequence=sequence)


class TestTransitions:
    def test_starts_idle(self, machine):
        assert machine.state == Idle()
        assert machine.view.preview is None
        assert machine.view.acquisition_enabled

    def test_idle_to_uploading_to_result(self, machine, preview):
        machine.begin_upload(preview, 1)
        assert machine.state == Uploading(preview=preview, sequence=1)
        assert not machine.view.acquisition_enabled

        assert machine.complete(_result(1)) is True
        assert machine.state == ResultReady(preview=preview, result=_result(1))
        assert machine.view.acquisition_enabled

    def test_upload_failure_keeps_preview(self, machine, preview):
        machine.begin_upload(preview, 1)
        assert machine.fail_upload(1, "boom", notice="Upload failed! Try again.")

        state = machine.state
        assert isinstance(state, Failed)
        assert state.preview == preview
        assert state.reason == "boom"
        assert machine.view.notice == "Upload failed! Try again."

    def test_new_acquisition_discards_previous_result(self, machine, preview):
        machine.begin_upload(preview, 1)
        machine.complete(_result(1))
        other = PreviewRepresentation(data_url="data:image/png;base64,BBBB")

        machine.begin_upload(other, 2)

        assert machine.state == Uploading(preview=other, sequence=2)

    def test_new_acquisition_after_failure_clears_notice(self, machine, preview):
        machine.begin_upload(preview, 1)
        machine.fail_upload(1, "boom", notice="Upload failed! Try again.")
        machine.begin_upload(preview, 2)
        assert machine.view.notice is None
        assert isinstance(machine.state, Uploading)

    def test_stale_result_is_discarded(self, machine, preview):
        machine.begin_upload(preview, 1)
        machine.begin_upload(preview, 2)

        assert machine.complete(_result(1, "old")) is False
        assert isinstance(machine.state, Uploading)

        assert machine.complete(_result(2, "new")) is True
        assert machine.state.result.extracted_text == "new"

    def test_stale_failure_is_discarded(self, machine, preview):
        machine.begin_upload(preview, 1)
        machine.begin_upload(preview, 2)
        assert machine.fail_upload(1, "late") is False
        assert machine.state == Uploading(preview=preview, sequence=2)

    def test_result_after_terminal_state_is_ignored(self, machine, preview):
        machine.begin_upload(preview, 1)
        machine.complete(_result(1))
        assert machine.complete(_result(1, "again")) is False
        assert machine.state.result.extracted_text == "Total: $12.50"

    def test_failed_acquisition_supersedes_pending_upload(self, machine, preview):
        machine.begin_upload(preview, 1)
        machine.fail_acquisition("unreadable", notice="Could not read")

        assert machine.state == Failed(preview=None, reason="unreadable")
        assert machine.complete(_result(1)) is False

    def test_preparing_disables_acquisition(self, machine, preview):
        machine.begin_acquisition(1)
        assert machine.view.preparing
        assert not machine.view.acquisition_enabled
        assert machine.state == Idle()

        assert machine.begin_upload(preview, 1) is True
        assert not machine.view.preparing
        assert isinstance(machine.state, Uploading)

    def test_superseded_acquisition_cannot_start_upload(self, machine, preview):
        machine.begin_acquisition(1)
        machine.begin_acquisition(2)
        assert not machine.is_current(1)

        assert machine.begin_upload(preview, 1) is False
        assert machine.state == Idle()
        assert machine.view.preparing

    def test_stale_acquisition_failure_is_discarded(self, machine, preview):
        machine.begin_acquisition(1)
        machine.begin_acquisition(2)
        assert machine.fail_acquisition("unreadable", sequence=1) is False
        assert machine.view.preparing

        assert machine.fail_acquisition("unreadable", sequence=2) is True
        assert machine.state == Failed(preview=None, reason="unreadable")
        assert not machine.view.preparing
        assert machine.view.acquisition_enabled

    def test_older_acquisition_cannot_upload_after_newer_failed(self, machine, preview):
        machine.begin_acquisition(1)
        machine.begin_acquisition(2)
        machine.fail_acquisition("unreadable", sequence=2)

        assert machine.begin_upload(preview, 1) is False
        assert isinstance(machine.state, Failed)


class TestCameraSubstate:
    def test_camera_is_orthogonal(self, machine, preview):
        machine.begin_upload(preview, 1)
        machine.set_camera(opened=True)

        assert machine.view.camera_open
        assert isinstance(machine.state, Uploading)

    def test_pending_camera_disables_acquisition(self, machine):
        machine.set_camera(pending=True)
        assert not machine.view.acquisition_enabled
        machine.set_camera(opened=True, pending=False)
        assert machine.view.acquisition_enabled


class TestSubscribers:
    def test_listener_receives_each_change(self, machine, preview):
        views: list[ScannerView] = []
        machine.subscribe(views.append)

        machine.begin_upload(preview, 1)
        machine.complete(_result(1))

        assert [type(v.acquisition) for v in views] == [Uploading, ResultReady]

    def test_no_notification_without_change(self, machine):
        views = []
        machine.subscribe(views.append)
        machine.set_camera(opened=False)
        machine.notify(None)
        assert views == []

    def test_unsubscribe(self, machine, preview):
        views = []
        unsubscribe = machine.subscribe(views.append)
        unsubscribe()
        unsubscribe()
        machine.begin_upload(preview, 1)
        assert views == []

    def test_failing_listener_does_not_break_others(self, machine, preview, caplog):
        views = []

        def broken(view):
            raise RuntimeError("render error")

        machine.subscribe(broken)
        machine.subscribe(views.append)

        machine.begin_upload(preview, 1)

        assert len(views) == 1
        assert isinstance(machine.state, Uploading)
        assert "State listener" in caplog.text
