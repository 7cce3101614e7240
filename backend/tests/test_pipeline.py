import asyncio
import base64
from datetime import timedelta

import pytest
import pytest_asyncio

from app.db.schema import seed_default_commands
from app.services.voice import (
    ActionDispatcher,
    CommandRegistry,
    OutcomeRecorder,
    PersistenceMonitor,
    TranscriptionError,
    TranscriptionProvider,
    VoiceCommandPipeline,
)

from conftest import FIXED_NOW

AUDIO_B64 = base64.b64encode(b"fake-webm-bytes").decode()


class FakeTranscriber(TranscriptionProvider):
    name = "fake"

    def __init__(self, transcript=None, error=None):
        self.transcript = transcript
        self.error = error
        self.calls = []

    async def transcribe(self, source, language):
        self.calls.append((source, language))
        if self.error is not None:
            raise self.error
        return self.transcript


class FailingRegistry(CommandRegistry):
    async def fetch_active_commands(self, tenant_id):
        raise ConnectionError("registry unavailable")


@pytest.fixture
def monitor():
    return PersistenceMonitor()


@pytest.fixture
def build_pipeline(database, monitor):
    def _build(transcriber=None, registry=None):
        return VoiceCommandPipeline(
            registry=registry or CommandRegistry(database),
            dispatcher=ActionDispatcher(database, clock=lambda: FIXED_NOW),
            recorder=OutcomeRecorder(database, monitor=monitor),
            transcriber=transcriber,
        )

    return _build


@pytest_asyncio.fixture
async def tenant(database, factory):
    tenant_id = await factory.tenant()
    await seed_default_commands(database)
    return tenant_id


async def _only_log(database):
    rows = await database.fetch_all("SELECT * FROM voice_command_logs")
    assert len(rows) == 1
    return rows[0]


async def _daily_command(database):
    return await database.fetch_one(
        "SELECT id, total_uses, success_count, avg_confidence FROM voice_commands WHERE action_type = 'SHOW_DAILY_ORDERS'"
    )


@pytest.mark.asyncio
async def test_exact_match_runs_daily_orders(database, factory, build_pipeline, tenant):
    await factory.order(tenant, FIXED_NOW - timedelta(hours=2))
    await factory.order(tenant, FIXED_NOW - timedelta(hours=1))
    transcriber = FakeTranscriber("bugünkü siparişleri göster")

    outcome = await build_pipeline(transcriber).run_audio(tenant, 7, audio_base64=AUDIO_B64)

    assert outcome.status_code == 200
    body = outcome.body
    assert body["success"] is True
    assert body["matched_command"] == "bugünkü siparişleri göster"
    assert body["confidence"] == 1.0
    assert body["action"] == "SHOW_DAILY_ORDERS"
    assert body["result"]["count"] == 2
    assert body["result"]["message"] == "Bugün 2 sipariş var."
    assert isinstance(body["execution_time_ms"], int)
    assert transcriber.calls == [(b"fake-webm-bytes", "tr")]

    log = await _only_log(database)
    assert log["status"] == "success"
    assert log["recognition_provider"] == "fake"
    assert log["user_id"] == 7
    assert log["execution_time_ms"] is not None
    assert log["recognition_time_ms"] is not None

    command = await _daily_command(database)
    assert log["command_id"] == command["id"]
    assert command["total_uses"] == 1
    assert command["success_count"] == 1
    assert command["avg_confidence"] == pytest.approx(1.0)


@pytest.mark.asyncio
async def test_typo_transcript_still_matches(database, build_pipeline, tenant):
    outcome = await build_pipeline(FakeTranscriber("bugnki siparisleri gosterr")).run_audio(
        tenant, 7, audio_base64=AUDIO_B64
    )

    assert outcome.body["success"] is True
    assert outcome.body["action"] == "SHOW_DAILY_ORDERS"
    assert 0.8 <= outcome.body["confidence"] < 1.0
    assert outcome.body["result"]["count"] == 0

    command = await _daily_command(database)
    assert command["avg_confidence"] == pytest.approx(outcome.body["confidence"])


@pytest.mark.asyncio
async def test_unmatched_transcript_is_rejected_with_suggestions(database, build_pipeline, tenant):
    outcome = await build_pipeline(FakeTranscriber("merhaba nasılsın")).run_audio(tenant, 7, audio_base64=AUDIO_B64)

    assert outcome.status_code == 200
    assert outcome.body == {
        "success": False,
        "transcript": "merhaba nasılsın",
        "message": "Komut tanınmadı. Lütfen tekrar deneyin.",
        "suggestions": [
            "bugünkü siparişleri göster",
            "stokta olmayan ürünleri listele",
            "haftalık satış raporu oluştur",
        ],
    }

    log = await _only_log(database)
    assert log["status"] == "rejected"
    assert log["command_id"] is None
    assert log["confidence_score"] == 0
    assert log["execution_time_ms"] is None
    assert log["error_message"] == "No matching command found"


@pytest.mark.asyncio
async def test_handler_outage_reports_matched_command(database, build_pipeline, tenant):
    await database.execute("DROP TABLE orders")

    outcome = await build_pipeline(FakeTranscriber("bugünkü siparişleri göster")).run_audio(
        tenant, 7, audio_base64=AUDIO_B64
    )

    assert outcome.status_code == 500
    assert outcome.body["error"] == "Command execution failed"
    assert outcome.body["matched_command"] == "bugünkü siparişleri göster"
    assert outcome.body["transcript"] == "bugünkü siparişleri göster"
    assert "orders" in outcome.body["details"]

    command = await _daily_command(database)
    log = await _only_log(database)
    assert log["status"] == "failed"
    assert log["command_id"] == command["id"]
    assert log["execution_time_ms"] is None
    assert log["error_message"]

    assert command["total_uses"] == 0
    assert command["success_count"] == 0
    assert command["avg_confidence"] == 0


@pytest.mark.asyncio
async def test_tie_selects_lower_id(database, factory, build_pipeline):
    tenant = await factory.tenant()
    first = await factory.command("destek talebi aç", action_type="CHECK_SUPPORT_STATUS", tenant_id=tenant)
    await factory.command("destek talebi aç", action_type="SHOW_BEST_SELLERS", tenant_id=tenant)
    pipeline = build_pipeline()

    for _ in range(3):
        outcome = await pipeline.run_text(tenant, 7, "destek talebi aç")
        assert outcome.body["action"] == "CHECK_SUPPORT_STATUS"

    logs = await database.fetch_all("SELECT command_id FROM voice_command_logs")
    assert {row["command_id"] for row in logs} == {first}


@pytest.mark.asyncio
async def test_transcription_failure_is_logged(database, build_pipeline, tenant):
    transcriber = FakeTranscriber(error=TranscriptionError("Whisper API error 500: boom"))

    outcome = await build_pipeline(transcriber).run_audio(tenant, 7, audio_url="https://cdn.example.com/a.webm")

    assert outcome.status_code == 500
    assert outcome.body == {"error": "Transcription failed", "details": "Whisper API error 500: boom"}
    assert transcriber.calls == [("https://cdn.example.com/a.webm", "tr")]

    log = await _only_log(database)
    assert log["status"] == "failed"
    assert log["transcript"] == ""
    assert log["command_id"] is None
    assert log["execution_time_ms"] is None
    assert log["error_message"].startswith("Transcription failed")


@pytest.mark.asyncio
async def test_invalid_base64_is_a_transcription_failure(database, build_pipeline, tenant):
    transcriber = FakeTranscriber("bugünkü siparişleri göster")

    outcome = await build_pipeline(transcriber).run_audio(tenant, 7, audio_base64="@@not-base64@@")

    assert outcome.status_code == 500
    assert outcome.body["error"] == "Transcription failed"
    assert transcriber.calls == []
    assert (await _only_log(database))["status"] == "failed"


@pytest.mark.asyncio
async def test_unexpected_transcriber_exception_is_contained(database, build_pipeline, tenant):
    outcome = await build_pipeline(FakeTranscriber(error=KeyError("text"))).run_audio(
        tenant, 7, audio_base64=AUDIO_B64
    )

    assert outcome.status_code == 500
    assert outcome.body["error"] == "Transcription failed"
    assert (await _only_log(database))["status"] == "failed"


@pytest.mark.asyncio
async def test_registry_outage_is_logged_failed(database, build_pipeline, tenant):
    pipeline = build_pipeline(registry=FailingRegistry(database))

    outcome = await pipeline.run_text(tenant, 7, "bugünkü siparişleri göster")

    assert outcome.status_code == 500
    assert outcome.body == {"error": "Voice command processing failed", "details": "registry unavailable"}
    log = await _only_log(database)
    assert log["status"] == "failed"
    assert log["transcript"] == "bugünkü siparişleri göster"


@pytest.mark.asyncio
async def test_text_pipeline_uses_client_provider(database, build_pipeline, tenant):
    outcome = await build_pipeline().run_text(tenant, 7, "Haftalık Özet")

    assert outcome.body["action"] == "GENERATE_WEEKLY_REPORT"
    log = await _only_log(database)
    assert log["recognition_provider"] == "client"


@pytest.mark.asyncio
async def test_tenant_commands_are_isolated(database, factory, build_pipeline):
    tenant = await factory.tenant()
    other = await factory.tenant("Başka")
    await factory.command("kasayı kapat", action_type="CLOSE_REGISTER", tenant_id=other, target_page="/kasa")
    pipeline = build_pipeline()

    assert (await pipeline.run_text(tenant, 7, "kasayı kapat")).body["success"] is False
    outcome = await pipeline.run_text(other, 8, "kasayı kapat")
    assert outcome.body["success"] is True
    assert outcome.body["result"]["navigate_to"] == "/kasa"


@pytest.mark.asyncio
async def test_inactive_commands_are_ignored(factory, build_pipeline):
    tenant = await factory.tenant()
    await factory.command("menüyü göster", action_type="SHOW_MENU", is_active=False)

    outcome = await build_pipeline().run_text(tenant, 7, "menüyü göster")

    assert outcome.body["success"] is False
    assert outcome.body["suggestions"] == []


@pytest.mark.asyncio
async def test_each_invocation_writes_exactly_one_log(database, factory, build_pipeline, tenant):
    pipeline = build_pipeline(FakeTranscriber("en çok satan ürünleri göster"))
    await pipeline.run_audio(tenant, 7, audio_base64=AUDIO_B64)
    await pipeline.run_text(tenant, 7, "merhaba")
    await pipeline.run_text(tenant, 7, "stokta ne kalmadı")

    rows = await database.fetch_all("SELECT status, execution_time_ms FROM voice_command_logs ORDER BY id")
    assert [row["status"] for row in rows] == ["success", "rejected", "success"]
    for row in rows:
        assert (row["status"] == "success") == (row["execution_time_ms"] is not None)


@pytest.mark.asyncio
async def test_concurrent_successes_keep_exact_statistics(database, build_pipeline, tenant):
    pipeline = build_pipeline()
    transcripts = ["bugünkü siparişleri göster", "bugnki siparisleri gosterr", "bugün kaç sipariş var"] * 3

    outcomes = await asyncio.gather(*(pipeline.run_text(tenant, 7, t) for t in transcripts))

    assert all(o.body["success"] for o in outcomes)
    command = await _daily_command(database)
    assert command["total_uses"] == len(transcripts)
    assert command["avg_confidence"] == pytest.approx(
        sum(o.body["confidence"] for o in outcomes) / len(outcomes)
    )


@pytest.mark.asyncio
async def test_log_failure_does_not_change_response(database, factory, build_pipeline, monitor, tenant):
    await database.execute("DROP TABLE voice_command_logs")

    outcome = await build_pipeline().run_text(tenant, 7, "bugünkü siparişleri göster")

    assert outcome.status_code == 200
    assert outcome.body["success"] is True
    assert outcome.log_id is None
    assert monitor.snapshot() == {"record_invocation": 1}
