"""
Stock name to ISIN resolution.

Realized P&L exports often leave the ISIN out and spell company names
differently from the exchange master ("Ola Electric" vs "OLA ELECTRIC
MOBILITY LIMITED"). Names are compared case-insensitively first, then by a
similarity score against every StockMaster name.
"""
import logging
import re
from difflib import SequenceMatcher
from typing import Iterable, NamedTuple, Optional

from folio.core.config import settings

logger = logging.getLogger(__name__)

_SUFFIXES = re.compile(r"\b(ltd|limited|corporation|corp|inc|incorporated|pvt|private)\b\.?")
_NON_WORD = re.compile(r"[^\w\s]")
_SPACES = re.compile(r"\s+")


class IsinMatch(NamedTuple):
    isin: str
    stock_name: str
    similarity: float


def normalize_stock_name(name: str) -> str:
    """Lower-case, drop company suffixes and punctuation."""
    text = _SUFFIXES.sub("", (name or "").lower().strip())
    text = _NON_WORD.sub(" ", text)
    return _SPACES.sub(" ", text).strip()


def name_similarity(query: str, candidate: str) -> float:
    """
    Similarity in [0, 1] between a name as typed and a master name; the best
    of containment, word overlap, edit-distance ratio and matching initials.
    """
    a = normalize_stock_name(query)
    b = normalize_stock_name(candidate)
    if not a or not b:
        return 0.0
    if a == b:
        return 1.0

    best = 0.0
    if a in b or b in a:
        ratio = min(len(a), len(b)) / max(len(a), len(b))
        # a short name inside the longer master name is a strong hint
        best = min(0.95, ratio + 0.3) if a in b else ratio

    words_a = [w for w in a.split() if len(w) > 2]
    words_b = [w for w in b.split() if len(w) > 2]
    if words_a and words_b:
        matching = [w for w in words_a if any(w == o or w in o or o in w for o in words_b)]
        best = max(best, 2 * len(matching) / (len(words_a) + len(words_b)))

    best = max(best, SequenceMatcher(None, a, b).ratio())

    initials_a = "".join(w[0] for w in a.split())
    initials_b = "".join(w[0] for w in b.split())
    if initials_a == initials_b and len(initials_a) >= 3:
        best = max(best, 0.8)

    return best


def find_isin(
    stock_name: str,
    masters: Iterable[tuple[str, str]],
    threshold: Optional[float] = None,
) -> Optional[IsinMatch]:
    """
    Resolve ``stock_name`` against ``(isin, stock_name)`` pairs.

    An exact case-insensitive name wins outright; otherwise the most similar
    name at or above ``threshold`` (``ISIN_MATCH_THRESHOLD``) is returned.
    """
    threshold = settings.ISIN_MATCH_THRESHOLD if threshold is None else threshold
    key = (stock_name or "").strip().lower()
    if not key:
        return None

    candidates = [(isin, name) for isin, name in masters if isin and name]
    for isin, name in candidates:
        if name.strip().lower() == key:
            return IsinMatch(isin, name, 1.0)

    best: Optional[IsinMatch] = None
    for isin, name in candidates:
        score = name_similarity(stock_name, name)
        if score >= threshold and (best is None or score > best.similarity):
            best = IsinMatch(isin, name, score)

    if best is None:
        logger.debug("No ISIN match for %r", stock_name)
    return best
