"""
Word-level diff between an original message and its refined version.
"""

import difflib
import re
from typing import Any, Dict, List, Optional, Sequence

from domain import DiffKind, DiffResult, DiffSegment

_TOKEN_RE = re.compile(r"\S+|\s+")


def tokenize(text: str) -> List[str]:
    """Split into alternating runs of non-whitespace and whitespace; keeps every character."""
    return _TOKEN_RE.findall(text or "")


def lcs_table(a: Sequence[str], b: Sequence[str]) -> List[List[int]]:
    """Longest-common-subsequence length table, (len(a)+1) x (len(b)+1)."""
    m, n = len(a), len(b)
    dp = [[0] * (n + 1) for _ in range(m + 1)]
    for i in range(1, m + 1):
        row, prev = dp[i], dp[i - 1]
        ai = a[i - 1]
        for j in range(1, n + 1):
            if ai == b[j - 1]:
                row[j] = prev[j - 1] + 1
            else:
                row[j] = max(prev[j], row[j - 1])
    return dp


def _merge(segments: List[DiffSegment]) -> List[DiffSegment]:
    merged: List[DiffSegment] = []
    for seg in segments:
        if merged and merged[-1].kind == seg.kind:
            merged[-1].text += seg.text
        else:
            merged.append(DiffSegment(seg.kind, seg.text))
    return merged


def compute_word_diff(original: str, refined: str) -> List[DiffSegment]:
    """Edit script over word/whitespace tokens with adjacent same-kind segments merged.

    On an LCS tie the backtrace emits an insertion before a deletion, so
    replacements render as ``delete`` then ``insert`` once reversed.
    """
    if original == refined:
        return [DiffSegment(DiffKind.EQUAL, original)] if original else []

    a = tokenize(original)
    b = tokenize(refined)
    dp = lcs_table(a, b)

    script: List[DiffSegment] = []
    i, j = len(a), len(b)
    while i > 0 or j > 0:
        if i > 0 and j > 0 and a[i - 1] == b[j - 1]:
            script.append(DiffSegment(DiffKind.EQUAL, a[i - 1]))
            i -= 1
            j -= 1
        elif j > 0 and (i == 0 or dp[i][j - 1] >= dp[i - 1][j]):
            script.append(DiffSegment(DiffKind.INSERT, b[j - 1]))
            j -= 1
        else:
            script.append(DiffSegment(DiffKind.DELETE, a[i - 1]))
            i -= 1
    script.reverse()
    return _merge(script)


def count_words(segments: Sequence[DiffSegment], kind: DiffKind) -> int:
    """Count whitespace-separated words across segments of one kind."""
    return sum(len(seg.text.split()) for seg in segments if seg.kind == kind)


def calculate_similarity(text1: str, text2: str) -> float:
    """Calculate similarity score between two texts using sequence matcher."""
    matcher = difflib.SequenceMatcher(None, text1, text2)
    return matcher.ratio()


def generate_diff(original: str, refined: str, changelog: Optional[str] = None) -> DiffResult:
    """Diff two texts for review; identical inputs skip the table computation.

    ``changelog`` is the model's change list, carried along for display.
    """
    if original == refined:
        return DiffResult(
            segments=compute_word_diff(original, refined),
            changed=False,
            similarity_score=1.0,
            changelog=changelog or None,
        )

    segments = compute_word_diff(original, refined)
    return DiffResult(
        segments=segments,
        changed=True,
        words_inserted=count_words(segments, DiffKind.INSERT),
        words_deleted=count_words(segments, DiffKind.DELETE),
        similarity_score=calculate_similarity(original, refined),
        changelog=changelog or None,
    )


def format_segment_for_api(segment: DiffSegment) -> Dict[str, Any]:
    return {"type": segment.kind.value, "text": segment.text}


def format_diff_for_api(result: DiffResult) -> Dict[str, Any]:
    """Convert DiffResult to API response format."""
    return {
        "changed": result.changed,
        "changelog": result.changelog,
        "segments": [format_segment_for_api(s) for s in result.segments],
        "statistics": {
            "wordsInserted": result.words_inserted,
            "wordsDeleted": result.words_deleted,
            "similarityScore": round(result.similarity_score, 3),
        },
    }
