"""Sesli komut hattının veri yapıları."""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple


class ActionType(str, Enum):
    """Handler'ı bulunan aksiyon tipleri. Listede olmayan tipler varsayılan handler'a düşer."""

    SHOW_DAILY_ORDERS = "SHOW_DAILY_ORDERS"
    LIST_OUT_OF_STOCK = "LIST_OUT_OF_STOCK"
    GENERATE_WEEKLY_REPORT = "GENERATE_WEEKLY_REPORT"
    CHECK_SUPPORT_STATUS = "CHECK_SUPPORT_STATUS"
    SHOW_BEST_SELLERS = "SHOW_BEST_SELLERS"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["ActionType"]:
        try:
            return cls(value)
        except ValueError:
            return None


class InvocationStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    REJECTED = "rejected"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_jsonable(value: Any) -> Any:
    """DB satırlarındaki datetime/Decimal değerlerini JSON'a uygun hale getir."""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, dict):
        return {k: to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value


def _parse_variations(raw: Any) -> Tuple[str, ...]:
    # JSONB kolonu asyncpg'de str, sqlite'ta TEXT olarak gelir
    if raw is None:
        return ()
    if isinstance(raw, str):
        raw = json.loads(raw) if raw.strip() else []
    return tuple(str(v) for v in raw if v is not None)


@dataclass(frozen=True)
class VoiceCommand:
    id: int
    command_text: str
    action_type: str
    tenant_id: Optional[int] = None
    variations: Tuple[str, ...] = ()
    target_page: Optional[str] = None
    min_confidence: float = 0.8
    is_active: bool = True
    total_uses: int = 0
    success_count: int = 0
    avg_confidence: float = 0.0
    last_used_at: Optional[Any] = None

    @property
    def phrases(self) -> List[str]:
        """Kanonik metin + varyasyonlar, sıralı."""
        return [self.command_text, *self.variations]

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "VoiceCommand":
        return cls(
            id=int(row["id"]),
            tenant_id=row["tenant_id"],
            command_text=row["command_text"] or "",
            variations=_parse_variations(row["command_variations"]),
            action_type=row["action_type"],
            target_page=row["target_page"],
            min_confidence=float(row["min_confidence"] or 0.0),
            is_active=bool(row["is_active"]),
            total_uses=int(row["total_uses"] or 0),
            success_count=int(row["success_count"] or 0),
            avg_confidence=float(row["avg_confidence"] or 0.0),
            last_used_at=row["last_used_at"],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "command_text": self.command_text,
            "command_variations": list(self.variations),
            "action_type": self.action_type,
            "target_page": self.target_page,
            "min_confidence": self.min_confidence,
            "is_active": self.is_active,
            "total_uses": self.total_uses,
            "success_count": self.success_count,
            "avg_confidence": self.avg_confidence,
            "last_used_at": to_jsonable(self.last_used_at),
        }


@dataclass(frozen=True)
class MatchResult:
    command: Optional[VoiceCommand]
    confidence: float = 0.0
    matched_phrase: Optional[str] = None

    @property
    def matched(self) -> bool:
        return self.command is not None


@dataclass
class ExecutionResult:
    action: str
    message: str
    navigate_to: str
    data: Optional[Any] = None
    count: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"action": self.action}
        if self.data is not None:
            payload["data"] = to_jsonable(self.data)
        if self.count is not None:
            payload["count"] = self.count
        payload["message"] = self.message
        payload["navigate_to"] = self.navigate_to
        return payload


@dataclass(frozen=True)
class InvocationLog:
    """Her istek için tek, değişmez denetim kaydı."""

    tenant_id: int
    user_id: Optional[int]
    transcript: str
    status: InvocationStatus
    recognition_provider: Optional[str] = None
    command_id: Optional[int] = None
    matched_command: Optional[str] = None
    confidence_score: float = 0.0
    action_taken: Optional[str] = None
    execution_result: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None
    recognition_time_ms: Optional[int] = None
    execution_time_ms: Optional[int] = None
    created_at: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        if not isinstance(self.status, InvocationStatus):
            object.__setattr__(self, "status", InvocationStatus(self.status))
        if (self.status is InvocationStatus.SUCCESS) != (self.execution_time_ms is not None):
            raise ValueError("execution_time_ms must be set exactly when status is success")
        if self.status is InvocationStatus.REJECTED and self.command_id is not None:
            raise ValueError("rejected invocations cannot reference a command")

    def to_params(self) -> Dict[str, Any]:
        return {
            "tenant_id": self.tenant_id,
            "user_id": self.user_id,
            "command_id": self.command_id,
            "transcript": self.transcript or "",
            "matched_command": self.matched_command,
            "confidence_score": self.confidence_score,
            "recognition_provider": self.recognition_provider,
            "status": self.status.value,
            "action_taken": self.action_taken,
            "execution_result": (
                json.dumps(to_jsonable(self.execution_result), ensure_ascii=False)
                if self.execution_result is not None
                else None
            ),
            "error_message": self.error_message,
            "recognition_time_ms": self.recognition_time_ms,
            "execution_time_ms": self.execution_time_ms,
            "created_at": self.created_at,
        }
