"""Tests for the upload coordinator (mocked HTTP transport)."""

import asyncio

import httpx
import pytest

from receiptscan.models import ImagePayload
from receiptscan.remote.upload import UploadCoordinator, UploadFailed

UPLOAD_URL = "https://scanner.test/upload-receipt"


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def payload():
    return ImagePayload(data=b"\xff\xd8jpeg", mime_type="image/jpeg", filename="receipt.jpg")


class TestUploadCoordinator:
    @pytest.mark.asyncio
    async def test_upload_success(self, payload):
        seen: list[httpx.Request] = []

        def handler(request):
            seen.append(request)
            return httpx.Response(
                200, json={"extractedText": "Total: $12.50", "totalPrice": "12.50"}
            )

        async with _client(handler) as client:
            uploader = UploadCoordinator(UPLOAD_URL, client=client)
            result = await uploader.upload(payload)

        assert result.extracted_text == "Total: $12.50"
        assert result.total_price == "12.50"
        assert result.sequence == 1
        assert not uploader.in_flight

        assert len(seen) == 1
        request = seen[0]
        assert request.method == "POST"
        assert str(request.url) == UPLOAD_URL
        assert request.headers["content-type"].startswith("multipart/form-data")
        assert b'name="receipt"; filename="receipt.jpg"' in request.content
        assert b"\xff\xd8jpeg" in request.content

    @pytest.mark.asyncio
    async def test_custom_field_name(self, payload):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={})

        async with _client(handler) as client:
            uploader = UploadCoordinator(UPLOAD_URL, field_name="image", client=client)
            await uploader.upload(payload)

        assert b'name="image"' in seen[0].content

    @pytest.mark.asyncio
    async def test_missing_fields_use_placeholders(self, payload):
        async with _client(lambda r: httpx.Response(200, json={})) as client:
            uploader = UploadCoordinator(UPLOAD_URL, client=client)
            result = await uploader.upload(payload)

        assert result.extracted_text == "No text extracted"
        assert result.total_price == "Not found"

    @pytest.mark.asyncio
    async def test_non_json_body_is_fields_absent(self, payload):
        async with _client(lambda r: httpx.Response(200, text="<html>ok</html>")) as client:
            uploader = UploadCoordinator(UPLOAD_URL, client=client)
            result = await uploader.upload(payload)

        assert result.extracted_text == "No text extracted"
        assert result.total_price == "Not found"

    @pytest.mark.asyncio
    async def test_non_success_status_fails(self, payload):
        async with _client(lambda r: httpx.Response(500, json={"error": "x"})) as client:
            uploader = UploadCoordinator(UPLOAD_URL, client=client)
            with pytest.raises(UploadFailed, match="HTTP 500"):
                await uploader.upload(payload)

        assert not uploader.in_flight

    @pytest.mark.asyncio
    async def test_transport_error_fails(self, payload):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with _client(handler) as client:
            uploader = UploadCoordinator(UPLOAD_URL, client=client)
            with pytest.raises(UploadFailed, match="connection refused"):
                await uploader.upload(payload)

        assert not uploader.in_flight

    @pytest.mark.asyncio
    async def test_in_flight_during_request(self, payload):
        release = asyncio.Event()
        started = asyncio.Event()

        async def handler(request):
            started.set()
            await release.wait()
            return httpx.Response(200, json={})

        async with _client(handler) as client:
            uploader = UploadCoordinator(UPLOAD_URL, client=client)
            task = asyncio.create_task(uploader.upload(payload))
            await started.wait()
            assert uploader.in_flight
            release.set()
            await task

        assert not uploader.in_flight

    @pytest.mark.asyncio
    async def test_sequence_numbers_increase(self, payload):
        async with _client(lambda r: httpx.Response(200, json={})) as client:
            uploader = UploadCoordinator(UPLOAD_URL, client=client)
            first = await uploader.upload(payload)
            second = await uploader.upload(payload)

        assert (first.sequence, second.sequence) == (1, 2)
        assert uploader.latest_sequence == 2
        assert uploader.is_current(2)
        assert not uploader.is_current(1)

    @pytest.mark.asyncio
    async def test_reserved_sequence_is_used_by_request(self, payload):
        async with _client(lambda r: httpx.Response(200, json={})) as client:
            uploader = UploadCoordinator(UPLOAD_URL, client=client)
            reserved = uploader.reserve_sequence()
            newer = uploader.reserve_sequence()
            assert not uploader.is_current(reserved)

            result = await uploader.upload(uploader.new_request(payload, sequence=newer))

        assert (reserved, newer) == (1, 2)
        assert result.sequence == 2
        assert uploader.latest_sequence == 2

    @pytest.mark.asyncio
    async def test_invalid_url_fails(self, payload):
        def handler(request):
            raise httpx.InvalidURL("bad url")

        async with _client(handler) as client:
            uploader = UploadCoordinator(UPLOAD_URL, client=client)
            with pytest.raises(UploadFailed, match="bad url"):
                await uploader.upload(payload)

        assert not uploader.in_flight

    @pytest.mark.asyncio
    async def test_older_request_does_not_clear_newer_flag(self, payload):
        """A superseded request finishing late leaves the newer one in flight."""
        gates = {1: asyncio.Event(), 2: asyncio.Event()}
        count = 0

        async def handler(request):
            nonlocal count
            count += 1
            await gates[count].wait()
            return httpx.Response(200, json={})

        async with _client(handler) as client:
            uploader = UploadCoordinator(UPLOAD_URL, client=client)
            first = asyncio.create_task(uploader.upload(payload))
            while count < 1:
                await asyncio.sleep(0.01)
            second = asyncio.create_task(uploader.upload(payload))
            while count < 2:
                await asyncio.sleep(0.01)

            gates[1].set()
            await first
            assert uploader.in_flight

            gates[2].set()
            await second
            assert not uploader.in_flight
