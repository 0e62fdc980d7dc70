"""
Keyword extraction for the fallback search path.
Pure and local: no network, same input always gives the same keywords.
"""

import re
from typing import Iterable, List, Optional, Union

MAX_KEYWORDS = 20
MIN_KEYWORD_LENGTH = 4

STOP_WORDS = frozenset([
    'a', 'an', 'and', 'are', 'as', 'at', 'be', 'by', 'for', 'from',
    'has', 'he', 'in', 'is', 'it', 'its', 'of', 'on', 'that', 'the',
    'to', 'was', 'will', 'with', 'this', 'but', 'they', 'have', 'had',
    'what', 'when', 'where', 'who', 'which', 'why', 'how'
])

_NON_WORD = re.compile(r"[^\w\s]")


def extract_keywords(text: Optional[str]) -> List[str]:
    """
    Extract up to 20 salient, unique, lowercase tokens from text.

    Punctuation becomes whitespace, tokens of 3 characters or fewer and stop
    words are dropped, and the first occurrence of each token wins.
    """
    if not text:
        return []

    words = _NON_WORD.sub(" ", text.lower()).split()

    keywords = []
    seen = set()
    for word in words:
        if len(word) < MIN_KEYWORD_LENGTH or word in STOP_WORDS or word in seen:
            continue
        seen.add(word)
        keywords.append(word)
        if len(keywords) == MAX_KEYWORDS:
            break

    return keywords


def keywords_to_text(keywords: Iterable[str]) -> str:
    """Storage form of a keyword list."""
    return " ".join(keywords)


def parse_stored_keywords(value: Union[str, Iterable[str], None]) -> List[str]:
    """Read keywords back from their stored form."""
    if not value:
        return []
    if isinstance(value, str):
        return value.split()
    return list(value)
