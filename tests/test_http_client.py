import asyncio
import json

import httpx
import pytest

from connectivity.errors import TransportError, TransportTimeout
from connectivity.http_client import TIMEOUT_MESSAGE, HttpClient


@pytest.mark.asyncio
async def test_response_is_captured_with_decoded_json(recorder):
    client = HttpClient(recorder.transport)

    resp = await client.get("https://api.example.com/ping", headers={"X-Test": "1"})

    assert resp.status_code == 200
    assert resp.reason == "OK"
    assert resp.data == {"ok": True}
    assert json.loads(resp.body) == {"ok": True}
    assert recorder.last.method == "GET"
    assert recorder.last.headers["X-Test"] == "1"


@pytest.mark.asyncio
async def test_non_json_body_leaves_data_empty(make_recorder):
    recorder = make_recorder(lambda request: httpx.Response(500, text="<html>oops</html>"))
    resp = await HttpClient(recorder.transport).get("https://api.example.com/")

    assert resp.status_code == 500
    assert resp.body == "<html>oops</html>"
    assert resp.data is None


@pytest.mark.asyncio
async def test_dict_body_is_sent_as_json_and_string_as_content(recorder):
    client = HttpClient(recorder.transport)

    await client.post("https://api.example.com/a", {"x": 1})
    await client.put("https://api.example.com/b", "raw=1", headers={"Content-Type": "text/plain"})

    assert recorder.json(0) == {"x": 1}
    assert recorder.requests[0].headers["content-type"] == "application/json"
    assert recorder.requests[1].method == "PUT"
    assert recorder.requests[1].content == b"raw=1"


@pytest.mark.asyncio
async def test_delete(recorder):
    await HttpClient(recorder.transport).delete("https://api.example.com/item/1")
    assert recorder.last.method == "DELETE"


@pytest.mark.asyncio
async def test_transport_failure_raises_transport_error(make_recorder):
    def refuse(request):
        raise httpx.ConnectError("[Errno 111] Connection refused", request=request)

    client = HttpClient(make_recorder(refuse).transport)
    with pytest.raises(TransportError, match="Connection refused"):
        await client.get("https://api.example.com/")


@pytest.mark.asyncio
async def test_timeout_raises_transport_timeout(make_recorder):
    def slow(request):
        raise httpx.ReadTimeout("timed out", request=request)

    client = HttpClient(make_recorder(slow).transport)
    with pytest.raises(TransportTimeout) as exc_info:
        await client.get("https://api.example.com/", timeout_ms=50)
    assert str(exc_info.value) == TIMEOUT_MESSAGE


@pytest.mark.asyncio
async def test_overall_deadline_aborts_slow_requests():
    async def handler(request):
        await asyncio.sleep(1)
        return httpx.Response(200)

    client = HttpClient(httpx.MockTransport(handler))
    with pytest.raises(TransportTimeout):
        await client.request("https://api.example.com/", timeout_ms=50)
