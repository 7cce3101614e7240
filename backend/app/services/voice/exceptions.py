"""Sesli komut hattına özel hatalar."""
from __future__ import annotations

from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from .models import VoiceCommand


class VoiceCommandError(RuntimeError):
    """Sesli komut sürecinde meydana gelen genel hata."""


class AuthResolutionError(VoiceCommandError):
    """Çağıran kullanıcı veya tenant çözümlenemediğinde fırlatılır (401/404)."""

    def __init__(self, message: str, status_code: int = 401):
        super().__init__(message)
        self.status_code = status_code


class TranscriptionError(VoiceCommandError):
    """Ses metne çevrilemediğinde fırlatılır."""


class NoMatchCondition(VoiceCommandError):
    """Hiçbir komut eşik değerine ulaşmadı. Hata değildir; pipeline bunu rejected olarak loglar."""


class ExecutionError(VoiceCommandError):
    """Eşleşen komutun handler'ı çalışırken hata oluştu."""

    def __init__(self, command: "VoiceCommand", cause: BaseException):
        super().__init__(str(cause) or type(cause).__name__)
        self.command = command
        self.cause = cause


class PersistenceError(VoiceCommandError):
    """Log kaydı veya istatistik güncellemesi yazılamadı."""

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        detail = f"{operation} failed"
        if cause is not None:
            detail = f"{detail}: {cause}"
        super().__init__(detail)
        self.operation = operation
        self.cause = cause
