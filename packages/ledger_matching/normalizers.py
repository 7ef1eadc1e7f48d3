"""Description normalizers used to group transactions by what they say.

- ``extract_keywords``: up to five distinct, uppercase, meaningful tokens.
- ``normalize_description``: digits collapsed to ``X`` so "PAYMENT 0412" and
  "PAYMENT 0513" land in the same recurrence bucket.
- ``main_keyword``: the headline word of a normalized description.
"""

from __future__ import annotations

import re

_NON_WORD = re.compile(r"[^\w\s]")
_DIGITS = re.compile(r"\d+")
_WHITESPACE = re.compile(r"\s+")

MAX_KEYWORDS = 5
MIN_KEYWORD_LENGTH = 4

STOP_WORDS: frozenset[str] = frozenset(
    {
        "THE", "AND", "OR", "BUT", "IN", "ON", "AT", "TO", "FOR", "OF", "WITH", "BY",
        "PURCHASE", "PAYMENT", "TRANSACTION", "DEBIT", "CREDIT", "CARD", "ACCOUNT",
        "DATE", "TIME", "LOCATION", "STORE", "SHOP", "INC", "LLC", "LTD", "CO", "CORP",
    }
)  # fmt: skip


def extract_keywords(description: str | None) -> list[str]:
    """Return the first five distinct uppercase tokens longer than three chars.

    Punctuation becomes whitespace before splitting; stop words are dropped.
    """

    if not description or not description.strip():
        return []
    cleaned = _NON_WORD.sub(" ", description.upper())
    out: list[str] = []
    for word in cleaned.split():
        if len(word) < MIN_KEYWORD_LENGTH or word in STOP_WORDS or word in out:
            continue
        out.append(word)
        if len(out) == MAX_KEYWORDS:
            break
    return out


def normalize_description(description: str | None) -> str:
    if not description:
        return ""
    out = _DIGITS.sub("X", description.upper())
    out = _NON_WORD.sub(" ", out)
    return _WHITESPACE.sub(" ", out).strip()


def main_keyword(normalized: str) -> str:
    words = normalized.split()
    for word in words:
        if len(word) >= MIN_KEYWORD_LENGTH and word != "X":
            return word
    return words[0] if words else "UNKNOWN"


__all__ = [
    "STOP_WORDS",
    "extract_keywords",
    "normalize_description",
    "main_keyword",
]
