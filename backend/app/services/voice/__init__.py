"""Sesli komut servisi.

Ses kaydını metne çevirir, tenant'a görünen komutlarla bulanık eşleştirir,
eşleşen komutun aksiyonunu çalıştırır ve sonucu denetim loguna yazar.
"""
from .dispatcher import ActionDispatcher
from .exceptions import (
    AuthResolutionError,
    ExecutionError,
    NoMatchCondition,
    PersistenceError,
    TranscriptionError,
    VoiceCommandError,
)
from .matcher import match
from .models import ActionType, ExecutionResult, InvocationLog, InvocationStatus, MatchResult, VoiceCommand
from .pipeline import PipelineOutcome, VoiceCommandPipeline
from .recorder import OutcomeRecorder, PersistenceMonitor, persistence_monitor
from .registry import CommandRegistry
from .transcription import TranscriptionProvider, WhisperProvider, get_transcription_provider

__all__ = [
    "ActionDispatcher",
    "ActionType",
    "AuthResolutionError",
    "CommandRegistry",
    "ExecutionError",
    "ExecutionResult",
    "InvocationLog",
    "InvocationStatus",
    "MatchResult",
    "NoMatchCondition",
    "OutcomeRecorder",
    "PersistenceError",
    "PersistenceMonitor",
    "PipelineOutcome",
    "TranscriptionError",
    "TranscriptionProvider",
    "VoiceCommand",
    "VoiceCommandError",
    "VoiceCommandPipeline",
    "WhisperProvider",
    "get_transcription_provider",
    "match",
    "persistence_monitor",
]
