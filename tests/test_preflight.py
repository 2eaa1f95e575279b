import httpx

from subtune import preflight
from subtune.catalog import SubsonicClient


def client_for(handler, base_url="http://music.test") -> SubsonicClient:
    return SubsonicClient(base_url, user="ann", password="sesame", transport=httpx.MockTransport(handler))


async def test_server_check_passes_on_ping():
    client = client_for(lambda request: httpx.Response(
        200, json={"subsonic-response": {"status": "ok", "version": "1.16.1"}}))
    result = await preflight._check_server(client)
    await client.aclose()
    assert result.ok
    assert result.detail == "reachable at music.test"


async def test_server_check_reports_refused_credentials():
    client = client_for(lambda request: httpx.Response(200, json={"subsonic-response": {
        "status": "failed", "version": "1.16.1", "error": {"code": 40, "message": "Wrong username or password"}}}))
    result = await preflight._check_server(client)
    await client.aclose()
    assert not result.ok
    assert "credentials" in result.fix


async def test_server_check_without_url():
    client = client_for(lambda request: httpx.Response(500), base_url="")
    result = await preflight._check_server(client)
    await client.aclose()
    assert not result.ok
    assert result.detail == "not configured"


async def test_missing_ffmpeg(monkeypatch):
    monkeypatch.setattr(preflight.shutil, "which", lambda name: None)
    result = await preflight._check_ffmpeg()
    assert not result.ok
    assert "apt install ffmpeg" in result.fix
