"""Transcript'i aday komutlarla karşılaştırıp en iyi eşleşmeyi seçer."""
from __future__ import annotations

from typing import Iterable, List, Optional

from ...core.logging_config import get_logger
from ...utils.text_matching import best_phrase_score
from .models import MatchResult, VoiceCommand

logger = get_logger(__name__)


def score_command(transcript: str, command: VoiceCommand) -> MatchResult:
    """Komutun skoru: kanonik metin ve tüm varyasyonlar içindeki en yüksek benzerlik."""
    score, phrase = best_phrase_score(transcript, command.phrases)
    return MatchResult(command=command, confidence=score, matched_phrase=phrase)


def match(transcript: str, candidates: Iterable[VoiceCommand]) -> MatchResult:
    """
    Eşik değerini (min_confidence) geçen komutlar arasından en yüksek skorluyu seçer.

    Adaylar id'ye göre artan sırada gezilir ve en iyi sonuç sadece kesin büyükse (>)
    değiştirilir; eşit skorda önce gelen komut kazanır. İlk uygun aday skoru 0 olsa
    bile kabul edilir, yani min_confidence=0 olan bir komut her zaman eşleşebilir.
    """
    ordered: List[VoiceCommand] = sorted(candidates, key=lambda c: c.id)
    best: Optional[MatchResult] = None

    for command in ordered:
        scored = score_command(transcript, command)
        if scored.confidence < command.min_confidence:
            continue
        if best is None or scored.confidence > best.confidence:
            best = scored

    if best is None:
        logger.debug("voice_match.none", candidates=len(ordered))
        return MatchResult(command=None, confidence=0.0)

    logger.debug(
        "voice_match.best",
        command_id=best.command.id,
        confidence=round(best.confidence, 4),
        phrase=best.matched_phrase,
    )
    return best
