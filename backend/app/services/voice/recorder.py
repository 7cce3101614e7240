# backend/app/services/voice/recorder.py
"""
Sesli komut sonuç kaydedicisi
Her istek için tek denetim kaydı ve eşleşen komutun kullanım istatistikleri
"""
from __future__ import annotations

import json
import threading
from collections import Counter
from typing import Any, Dict, List, Optional

from databases import Database

from ...core.logging_config import get_logger
from .exceptions import PersistenceError
from .models import InvocationLog, InvocationStatus, to_jsonable, utcnow

logger = get_logger(__name__)

LOG_COLUMNS = (
    "id", "tenant_id", "user_id", "command_id", "transcript", "matched_command",
    "confidence_score", "recognition_provider", "status", "action_taken",
    "execution_result", "error_message", "recognition_time_ms", "execution_time_ms",
    "created_at",
)


class PersistenceMonitor:
    """Yazılamayan log/istatistik sayacı. Sessiz log kaybını /health ve testler üzerinden görünür kılar."""

    def __init__(self):
        self._lock = threading.Lock()
        self._failures: Counter = Counter()

    def record(self, error: PersistenceError) -> None:
        with self._lock:
            self._failures[error.operation] += 1

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._failures)

    def total(self) -> int:
        with self._lock:
            return sum(self._failures.values())

    def reset(self) -> None:
        with self._lock:
            self._failures.clear()


# Global monitor instance
persistence_monitor = PersistenceMonitor()


class OutcomeRecorder:
    """Denetim kaydı ve komut istatistiklerini yazan servis. Yazma hataları isteği düşürmez."""

    def __init__(self, db: Database, monitor: Optional[PersistenceMonitor] = None):
        self.db = db
        self.monitor = monitor or persistence_monitor

    def _fail(self, operation: str, exc: Exception, **context: Any) -> None:
        error = PersistenceError(operation, exc)
        self.monitor.record(error)
        logger.error("voice_persistence.failed", operation=operation, error=str(exc), exc_info=True, **context)

    async def record_invocation(self, log: InvocationLog) -> Optional[int]:
        """
        İsteğin sonucunu voice_command_logs tablosuna ekler (append-only).

        Returns:
            Oluşturulan log ID, yazılamazsa None
        """
        try:
            row = await self.db.fetch_one(
                """
                INSERT INTO voice_command_logs (
                    tenant_id, user_id, command_id, transcript, matched_command,
                    confidence_score, recognition_provider, status, action_taken,
                    execution_result, error_message, recognition_time_ms,
                    execution_time_ms, created_at
                )
                VALUES (
                    :tenant_id, :user_id, :command_id, :transcript, :matched_command,
                    :confidence_score, :recognition_provider, :status, :action_taken,
                    :execution_result, :error_message, :recognition_time_ms,
                    :execution_time_ms, :created_at
                )
                RETURNING id
                """,
                log.to_params(),
            )
        except Exception as exc:
            # Log hatası kullanıcıya dönecek cevabı değiştirmemeli
            self._fail("record_invocation", exc, tenant_id=log.tenant_id, status=log.status.value)
            return None

        log_id = row["id"] if row else None
        logger.info(
            "voice_invocation.logged",
            log_id=log_id,
            tenant_id=log.tenant_id,
            status=log.status.value,
            command_id=log.command_id,
        )
        return log_id

    async def update_command_stats(self, command_id: int, confidence: float) -> bool:
        """
        Başarılı çalıştırma sonrası komut istatistiklerini tek bir UPDATE ile günceller.

        SET ifadesinin sağ tarafı satırın eski değerlerini görür; okuma-yazma ayrı olmadığı
        için eşzamanlı istekler birbirinin güncellemesini ezemez.
        """
        try:
            await self.db.execute(
                """
                UPDATE voice_commands
                SET total_uses = total_uses + 1,
                    success_count = success_count + 1,
                    avg_confidence = (avg_confidence * total_uses + :confidence) / (total_uses + 1),
                    last_used_at = :now
                WHERE id = :id
                """,
                {"id": command_id, "confidence": float(confidence), "now": utcnow()},
            )
        except Exception as exc:
            self._fail("update_command_stats", exc, command_id=command_id)
            return False
        return True

    async def get_logs(
        self,
        tenant_id: int,
        status: Optional[str] = None,
        command_id: Optional[int] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Dict[str, Any]]:
        """Tenant'ın sesli komut loglarını en yeniden eskiye getir."""
        conditions = ["tenant_id = :tenant_id"]
        params: Dict[str, Any] = {"tenant_id": tenant_id, "limit": limit, "offset": offset}

        if status is not None:
            conditions.append("status = :status")
            params["status"] = status

        if command_id is not None:
            conditions.append("command_id = :command_id")
            params["command_id"] = command_id

        rows = await self.db.fetch_all(
            f"""
            SELECT {", ".join(LOG_COLUMNS)}
            FROM voice_command_logs
            WHERE {" AND ".join(conditions)}
            ORDER BY created_at DESC, id DESC
            LIMIT :limit OFFSET :offset
            """,
            params,
        )

        logs = []
        for row in rows:
            item = {col: row[col] for col in LOG_COLUMNS}
            raw_result = item["execution_result"]
            if isinstance(raw_result, str):
                item["execution_result"] = json.loads(raw_result) if raw_result else None
            logs.append(to_jsonable(item))
        return logs

    async def get_statistics(self, tenant_id: int) -> Dict[str, Any]:
        """
        Tenant'ın sesli komut istatistikleri

        Returns:
            Toplam istek, durum bazında dağılım, başarılı isteklerin ortalama güveni, en çok kullanılan komutlar
        """
        params = {"tenant_id": tenant_id}

        status_rows = await self.db.fetch_all(
            """
            SELECT status, COUNT(*) AS total
            FROM voice_command_logs
            WHERE tenant_id = :tenant_id
            GROUP BY status
            """,
            params,
        )
        by_status = {s.value: 0 for s in InvocationStatus}
        for row in status_rows:
            by_status[row["status"]] = int(row["total"])

        avg_row = await self.db.fetch_one(
            """
            SELECT AVG(confidence_score) AS avg_confidence,
                   AVG(execution_time_ms) AS avg_execution_ms
            FROM voice_command_logs
            WHERE tenant_id = :tenant_id AND status = 'success'
            """,
            params,
        )

        top_rows = await self.db.fetch_all(
            """
            SELECT command_id, matched_command, COUNT(*) AS uses
            FROM voice_command_logs
            WHERE tenant_id = :tenant_id AND status = 'success'
            GROUP BY command_id, matched_command
            ORDER BY uses DESC, command_id ASC
            LIMIT 5
            """,
            params,
        )

        avg_confidence = avg_row["avg_confidence"] if avg_row else None
        avg_execution_ms = avg_row["avg_execution_ms"] if avg_row else None
        return {
            "total_invocations": sum(by_status.values()),
            "by_status": by_status,
            "avg_confidence": float(avg_confidence) if avg_confidence is not None else None,
            "avg_execution_ms": float(avg_execution_ms) if avg_execution_ms is not None else None,
            "top_commands": [
                {
                    "command_id": row["command_id"],
                    "command_text": row["matched_command"],
                    "uses": int(row["uses"]),
                }
                for row in top_rows
            ],
        }
