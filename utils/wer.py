from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

# Keep letters, digits, whitespace and apostrophes; everything else becomes a space.
_PUNCT_RE = re.compile(r"[^\w\s']|_")
_SPACE_RE = re.compile(r"\s+")

SUBSTITUTION = "sub"
INSERTION = "ins"
DELETION = "del"

# Backtrace moves
_DIAG = "M"
_UP = "D"
_LEFT = "I"


@dataclass(frozen=True)
class Mismatch:
    type: str
    pos: int
    source_word: Optional[str] = None
    stt_word: Optional[str] = None


@dataclass(frozen=True)
class WerReport:
    source_words: List[str]
    stt_words: List[str]
    n: int
    substitutions: int
    insertions: int
    deletions: int
    wer: float
    score: int
    mismatches: List[Mismatch] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def normalize_text(text: Optional[str]) -> str:
    if not text:
        return ""
    cleaned = _PUNCT_RE.sub(" ", text.strip().lower())
    return _SPACE_RE.sub(" ", cleaned).strip()


def tokenize_words(text: Optional[str]) -> List[str]:
    normalized = normalize_text(text)
    return normalized.split(" ") if normalized else []


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def score_by_wer(source_text: Optional[str], stt_text: Optional[str]) -> WerReport:
    """Score a recognized transcript against its reference by word error rate.

    Levenshtein alignment over word tokens. On equal cost the diagonal
    (match/substitution) wins, then deletion, then insertion. Mismatches
    come back in reading order over the reference.
    """
    src = tokenize_words(source_text)
    hyp = tokenize_words(stt_text)
    n, m = len(src), len(hyp)

    if n == 0:
        return WerReport(
            source_words=src,
            stt_words=hyp,
            n=0,
            substitutions=0,
            insertions=m,
            deletions=0,
            wer=0.0,
            score=100 if m == 0 else 0,
        )

    cost = [[0] * (m + 1) for _ in range(n + 1)]
    moves = [[""] * (m + 1) for _ in range(n + 1)]
    for i in range(1, n + 1):
        cost[i][0] = i
        moves[i][0] = _UP
    for j in range(1, m + 1):
        cost[0][j] = j
        moves[0][j] = _LEFT

    for i in range(1, n + 1):
        for j in range(1, m + 1):
            diag = cost[i - 1][j - 1] + (0 if src[i - 1] == hyp[j - 1] else 1)
            up = cost[i - 1][j] + 1
            left = cost[i][j - 1] + 1
            best, move = diag, _DIAG
            if up < best:
                best, move = up, _UP
            if left < best:
                best, move = left, _LEFT
            cost[i][j] = best
            moves[i][j] = move

    subs = ins = dels = 0
    reversed_mismatches: List[Mismatch] = []
    i, j = n, m
    while i > 0 or j > 0:
        move = moves[i][j]
        if move == _DIAG:
            if src[i - 1] != hyp[j - 1]:
                subs += 1
                reversed_mismatches.append(
                    Mismatch(SUBSTITUTION, i - 1, source_word=src[i - 1], stt_word=hyp[j - 1])
                )
            i -= 1
            j -= 1
        elif move == _UP:
            dels += 1
            reversed_mismatches.append(Mismatch(DELETION, i - 1, source_word=src[i - 1]))
            i -= 1
        else:
            ins += 1
            # insertion sits between reference words i-1 and i
            reversed_mismatches.append(Mismatch(INSERTION, i, stt_word=hyp[j - 1]))
            j -= 1

    wer = (subs + ins + dels) / n
    score = _clamp(int((1.0 - wer) * 100.0 + 0.5), 0, 100)
    return WerReport(
        source_words=src,
        stt_words=hyp,
        n=n,
        substitutions=subs,
        insertions=ins,
        deletions=dels,
        wer=wer,
        score=score,
        mismatches=list(reversed(reversed_mismatches)),
    )
