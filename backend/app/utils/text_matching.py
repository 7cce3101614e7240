"""Basit metin normalize ve benzerlik yardımcıları."""
from __future__ import annotations

from typing import Iterable, Optional, Tuple

from rapidfuzz.distance import Levenshtein


def normalize(text: Optional[str]) -> str:
    """Karşılaştırma için sadece küçük harfe çevirir; aksan/boşluk temizliği yapılmaz."""
    if not text:
        return ""
    return text.lower()


def edit_distance(a: str, b: str) -> int:
    """Klasik Levenshtein mesafesi (tek karakter ekleme/silme/değiştirme, hepsi 1 maliyet)."""
    return Levenshtein.distance(a, b)


def similarity(a: str, b: str) -> float:
    """
    (maxLen - mesafe) / maxLen, [0, 1] aralığında.
    İki string de boşsa 1.0 döner. Girdiler olduğu gibi karşılaştırılır; normalize çağıranın işi.
    """
    max_len = max(len(a), len(b))
    if max_len == 0:
        return 1.0
    return (max_len - edit_distance(a, b)) / max_len


def best_phrase_score(query: str, phrases: Iterable[str]) -> Tuple[float, Optional[str]]:
    """Normalize edilmiş sorgu için ifadeler içindeki en yüksek benzerliği ve o ifadeyi döner."""
    normalized_query = normalize(query)
    best_score = 0.0
    best_phrase: Optional[str] = None
    for phrase in phrases:
        score = similarity(normalized_query, normalize(phrase))
        if best_phrase is None or score > best_score:
            best_score = score
            best_phrase = phrase
    return best_score, best_phrase
