# backend/tests/test_voice_router.py
"""
/voice uçlarının HTTP davranışı: kimlik çözümleme, istek doğrulama ve cevap biçimleri.
Veritabanı SQLite'a, transkripsiyon sahte sağlayıcıya yönlendirilir.
"""
import base64

import httpx
import pytest
import pytest_asyncio

from app.core.deps import get_db, get_transcriber
from app.core.security import create_access_token
from app.db.schema import seed_default_commands
from app.main import app
from app.services.voice import TranscriptionProvider

AUDIO_B64 = base64.b64encode(b"webm").decode()


class StaticTranscriber(TranscriptionProvider):
    name = "static"

    def __init__(self, text):
        self.text = text

    async def transcribe(self, source, language):
        return self.text


@pytest.fixture
def transcriber():
    return StaticTranscriber("bugünkü siparişleri göster")


@pytest_asyncio.fixture
async def client(database, transcriber):
    app.dependency_overrides[get_db] = lambda: database
    app.dependency_overrides[get_transcriber] = lambda: transcriber
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def tenant(database, factory):
    tenant_id = await factory.tenant()
    await factory.user("ayse", tenant_id)
    await seed_default_commands(database)
    return tenant_id


def _auth(username="ayse"):
    return {"Authorization": f"Bearer {create_access_token({'sub': username})}"}


# ---------------------------
# Kimlik
# ---------------------------
@pytest.mark.asyncio
async def test_missing_token_is_401(client):
    response = await client.post("/voice/command", json={"audio_base64": AUDIO_B64})
    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized", "details": "Missing authorization"}


@pytest.mark.asyncio
async def test_invalid_token_is_401(client):
    response = await client.post(
        "/voice/command", json={"audio_base64": AUDIO_B64}, headers={"Authorization": "Bearer not-a-jwt"}
    )
    assert response.status_code == 401
    assert response.json()["details"] == "Invalid JWT"


@pytest.mark.asyncio
async def test_unknown_or_inactive_user_is_401(client, factory, tenant):
    await factory.user("pasif", tenant, is_active=False)

    for username in ("yok", "pasif"):
        response = await client.post("/voice/text", json={"text": "haftalık özet"}, headers=_auth(username))
        assert response.status_code == 401


@pytest.mark.asyncio
async def test_user_without_tenant_is_404(client, factory):
    await factory.user("kiracisiz", None)
    response = await client.post("/voice/text", json={"text": "haftalık özet"}, headers=_auth("kiracisiz"))
    assert response.status_code == 404
    assert response.json()["details"] == "User profile not found"


@pytest.mark.asyncio
async def test_auth_failure_does_not_log_invocation(client, factory):
    await client.post("/voice/command", json={"audio_base64": AUDIO_B64})
    assert await factory.count_logs() == 0


# ---------------------------
# /voice/command
# ---------------------------
@pytest.mark.asyncio
async def test_command_requires_exactly_one_audio_field(client, factory, tenant):
    missing = await client.post("/voice/command", json={"language": "tr"}, headers=_auth())
    assert missing.status_code == 400
    assert missing.json()["details"] == "Missing audio_base64 or audio_url"

    both = await client.post(
        "/voice/command",
        json={"audio_base64": AUDIO_B64, "audio_url": "https://cdn.example.com/a.webm"},
        headers=_auth(),
    )
    assert both.status_code == 400
    assert await factory.count_logs() == 0


@pytest.mark.asyncio
async def test_command_success(client, factory, tenant):
    response = await client.post("/voice/command", json={"audio_base64": AUDIO_B64}, headers=_auth())

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["action"] == "SHOW_DAILY_ORDERS"
    assert body["result"]["navigate_to"] == "/orders?filter=today"
    assert "X-Request-ID" in response.headers
    assert await factory.count_logs(status="success", recognition_provider="static") == 1


@pytest.mark.asyncio
async def test_command_no_match(client, factory, tenant, transcriber):
    transcriber.text = "merhaba nasılsın"

    response = await client.post("/voice/command", json={"audio_url": "https://cdn.example.com/a.webm"}, headers=_auth())

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is False
    assert len(body["suggestions"]) == 3
    assert await factory.count_logs(status="rejected") == 1


@pytest.mark.asyncio
async def test_command_execution_failure_is_500(client, database, factory, tenant):
    await database.execute("DROP TABLE orders")

    response = await client.post("/voice/command", json={"audio_base64": AUDIO_B64}, headers=_auth())

    assert response.status_code == 500
    body = response.json()
    assert body["error"] == "Command execution failed"
    assert body["matched_command"] == "bugünkü siparişleri göster"
    assert await factory.count_logs(status="failed") == 1


# ---------------------------
# Okuma uçları
# ---------------------------
@pytest.mark.asyncio
async def test_text_logs_and_stats(client, tenant):
    await client.post("/voice/text", json={"text": "stokta ne kalmadı"}, headers=_auth())
    await client.post("/voice/text", json={"text": "merhaba"}, headers=_auth())

    logs = await client.get("/voice/logs", headers=_auth())
    assert logs.status_code == 200
    assert [log["status"] for log in logs.json()] == ["rejected", "success"]

    rejected = await client.get("/voice/logs", params={"status": "rejected"}, headers=_auth())
    assert [log["transcript"] for log in rejected.json()] == ["merhaba"]

    stats = (await client.get("/voice/stats", headers=_auth())).json()
    assert stats["total_invocations"] == 2
    assert stats["by_status"] == {"success": 1, "failed": 0, "rejected": 1}
    assert stats["top_commands"][0]["command_text"] == "stokta olmayan ürünleri listele"


@pytest.mark.asyncio
async def test_logs_limit_is_validated(client, tenant):
    response = await client.get("/voice/logs", params={"limit": 0}, headers=_auth())
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_list_commands_includes_tenant_and_global(client, factory, tenant):
    await factory.command("kasayı kapat", action_type="CLOSE_REGISTER", tenant_id=tenant)
    other = await factory.tenant("Başka")
    await factory.command("başka komut", tenant_id=other)

    response = await client.get("/voice/commands", headers=_auth())

    assert response.status_code == 200
    texts = [c["command_text"] for c in response.json()]
    assert len(texts) == 6
    assert "kasayı kapat" in texts
    assert "başka komut" not in texts
    assert response.json()[0]["command_variations"] == ["bugünkü siparişleri listele", "bugün kaç sipariş var"]


# ---------------------------
# Sistem
# ---------------------------
@pytest.mark.asyncio
async def test_health_and_version(client):
    health = await client.get("/health")
    assert health.status_code == 200
    assert health.json()["database"] == "connected"
    assert health.json()["voice_persistence_failures"] == {}

    version = await client.get("/version")
    assert version.json()["app"] == "Sesli Komut API"
