"""
Sesli komut akışı: RECEIVED → TRANSCRIBED → MATCHED? → EXECUTED → LOGGED

Her çağrı bağımsızdır; pipeline istekler arasında hiçbir durum tutmaz.
Akış içindeki tüm hatalar burada yakalanır ve HTTP cevabına çevrilir,
her istek için tam olarak bir InvocationLog yazılır.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from ...core.config import settings
from ...core.logging_config import LogPerformance, get_logger
from .dispatcher import ActionDispatcher
from .exceptions import ExecutionError, TranscriptionError
from .matcher import match
from .models import InvocationLog, InvocationStatus, VoiceCommand
from .recorder import OutcomeRecorder
from .registry import CommandRegistry
from .transcription import TranscriptionProvider, decode_audio_base64

logger = get_logger(__name__)

CLIENT_PROVIDER = "client"
NO_MATCH_ERROR = "No matching command found"
NO_MATCH_MESSAGE = "Komut tanınmadı. Lütfen tekrar deneyin."


@dataclass
class PipelineOutcome:
    status_code: int
    body: Dict[str, Any]
    status: InvocationStatus
    log_id: Optional[int] = None


def _elapsed_ms(start: float, clock: Callable[[], float]) -> int:
    return max(0, int(round((clock() - start) * 1000)))


class VoiceCommandPipeline:
    def __init__(
        self,
        registry: CommandRegistry,
        dispatcher: ActionDispatcher,
        recorder: OutcomeRecorder,
        transcriber: Optional[TranscriptionProvider] = None,
        suggestion_count: Optional[int] = None,
        clock: Callable[[], float] = time.perf_counter,
    ):
        self.registry = registry
        self.dispatcher = dispatcher
        self.recorder = recorder
        self.transcriber = transcriber
        self.suggestion_count = (
            settings.VOICE_SUGGESTION_COUNT if suggestion_count is None else suggestion_count
        )
        self.clock = clock

    async def run_audio(
        self,
        tenant_id: int,
        user_id: Optional[int],
        audio_base64: Optional[str] = None,
        audio_url: Optional[str] = None,
        language: Optional[str] = None,
    ) -> PipelineOutcome:
        """Ses kaydından başlayan tam akış. audio_base64 ve audio_url'den tam olarak biri verilmeli."""
        start = self.clock()
        language = language or settings.VOICE_DEFAULT_LANGUAGE
        provider = self.transcriber.name if self.transcriber else None

        try:
            if self.transcriber is None:
                raise TranscriptionError("No transcription provider configured")
            source = decode_audio_base64(audio_base64) if audio_base64 else audio_url
            if not source:
                raise TranscriptionError("Missing audio_base64 or audio_url")
            transcript = await self.transcriber.transcribe(source, language)
        except Exception as exc:
            # TranscriptionError veya beklenmeyen client hatası: ikisi de failed
            details = str(exc) or type(exc).__name__
            logger.warning(
                "voice_command.transcription_failed",
                tenant_id=tenant_id,
                error=details,
                expected=isinstance(exc, TranscriptionError),
            )
            log_id = await self.recorder.record_invocation(
                InvocationLog(
                    tenant_id=tenant_id,
                    user_id=user_id,
                    transcript="",
                    status=InvocationStatus.FAILED,
                    recognition_provider=provider,
                    error_message=f"Transcription failed: {details}",
                    recognition_time_ms=_elapsed_ms(start, self.clock),
                )
            )
            return PipelineOutcome(
                status_code=500,
                body={"error": "Transcription failed", "details": details},
                status=InvocationStatus.FAILED,
                log_id=log_id,
            )

        recognition_ms = _elapsed_ms(start, self.clock)
        return await self._process(tenant_id, user_id, transcript, provider, recognition_ms)

    async def run_text(self, tenant_id: int, user_id: Optional[int], text: Optional[str]) -> PipelineOutcome:
        """İstemcide üretilmiş transcript ile akış; transkripsiyon adımı atlanır."""
        start = self.clock()
        transcript = text or ""
        return await self._process(
            tenant_id, user_id, transcript, CLIENT_PROVIDER, _elapsed_ms(start, self.clock)
        )

    async def _process(
        self,
        tenant_id: int,
        user_id: Optional[int],
        transcript: str,
        provider: Optional[str],
        recognition_ms: int,
    ) -> PipelineOutcome:
        base = {
            "tenant_id": tenant_id,
            "user_id": user_id,
            "transcript": transcript,
            "recognition_provider": provider,
            "recognition_time_ms": recognition_ms,
        }

        try:
            candidates = await self.registry.fetch_active_commands(tenant_id)
            with LogPerformance(logger, "voice_match", tenant_id=tenant_id, candidates=len(candidates)):
                result = match(transcript, candidates)
        except Exception as exc:
            details = str(exc) or type(exc).__name__
            logger.error("voice_command.lookup_failed", tenant_id=tenant_id, error=details, exc_info=True)
            log_id = await self.recorder.record_invocation(
                InvocationLog(status=InvocationStatus.FAILED, error_message=details, **base)
            )
            return PipelineOutcome(
                status_code=500,
                body={"error": "Voice command processing failed", "details": details},
                status=InvocationStatus.FAILED,
                log_id=log_id,
            )

        if not result.matched:
            return await self._reject(base, candidates)

        command = result.command
        confidence = result.confidence
        logger.info(
            "voice_command.matched",
            tenant_id=tenant_id,
            command_id=command.id,
            action=command.action_type,
            confidence=round(confidence, 4),
        )

        exec_start = self.clock()
        try:
            execution = await self.dispatcher.execute(command, tenant_id)
        except ExecutionError as exc:
            return await self._execution_failed(base, command, confidence, str(exc))
        execution_ms = _elapsed_ms(exec_start, self.clock)

        result_payload = execution.to_dict()
        log_id = await self.recorder.record_invocation(
            InvocationLog(
                status=InvocationStatus.SUCCESS,
                command_id=command.id,
                matched_command=command.command_text,
                confidence_score=confidence,
                action_taken=execution.action,
                execution_result=result_payload,
                execution_time_ms=execution_ms,
                **base,
            )
        )
        await self.recorder.update_command_stats(command.id, confidence)

        return PipelineOutcome(
            status_code=200,
            body={
                "success": True,
                "transcript": transcript,
                "matched_command": command.command_text,
                "confidence": confidence,
                "action": execution.action,
                "result": result_payload,
                "execution_time_ms": execution_ms,
            },
            status=InvocationStatus.SUCCESS,
            log_id=log_id,
        )

    async def _reject(self, base: Dict[str, Any], candidates: List[VoiceCommand]) -> PipelineOutcome:
        logger.info("voice_command.rejected", tenant_id=base["tenant_id"], candidates=len(candidates))
        log_id = await self.recorder.record_invocation(
            InvocationLog(
                status=InvocationStatus.REJECTED,
                confidence_score=0.0,
                error_message=NO_MATCH_ERROR,
                **base,
            )
        )
        suggestions = [c.command_text for c in candidates[: self.suggestion_count]]
        return PipelineOutcome(
            status_code=200,
            body={
                "success": False,
                "transcript": base["transcript"],
                "message": NO_MATCH_MESSAGE,
                "suggestions": suggestions,
            },
            status=InvocationStatus.REJECTED,
            log_id=log_id,
        )

    async def _execution_failed(
        self,
        base: Dict[str, Any],
        command: VoiceCommand,
        confidence: float,
        details: str,
    ) -> PipelineOutcome:
        # Başarısız çalıştırma istatistiklere yansımaz
        log_id = await self.recorder.record_invocation(
            InvocationLog(
                status=InvocationStatus.FAILED,
                command_id=command.id,
                matched_command=command.command_text,
                confidence_score=confidence,
                action_taken=command.action_type,
                error_message=details,
                **base,
            )
        )
        return PipelineOutcome(
            status_code=500,
            body={
                "error": "Command execution failed",
                "details": details,
                "transcript": base["transcript"],
                "matched_command": command.command_text,
            },
            status=InvocationStatus.FAILED,
            log_id=log_id,
        )
