"""
Keyword extraction for lexical candidate filtering.

Hyphens, underscores and slashes are kept so that command names such as
``fw-ctl`` or ``cp_conf`` survive as single tokens.
"""

import re

from cmdsearch.search.stopwords import STOPWORDS

_PUNCTUATION_RE = re.compile(r"[¿?¡!.,;:()\[\]{}\"“”‘’'`]")


def extract_keywords(text: str, min_length: int = 3) -> list[str]:
    """
    Extract content-bearing tokens from free text.

    Lowercases, strips punctuation, drops stopwords and tokens shorter than
    ``min_length``, and removes duplicates keeping each token's first
    position.

    >>> extract_keywords("How do I see the cluster state? cluster state!")
    ['cluster', 'state']
    """
    if not text:
        return []

    normalized = _PUNCTUATION_RE.sub(" ", text.lower())
    words = [
        word
        for word in normalized.split()
        if len(word) >= min_length and word not in STOPWORDS
    ]
    return list(dict.fromkeys(words))
