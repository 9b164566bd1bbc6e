"""
Token estimation.

Counts are approximations used only for budgeting chunk sizes; no tokenizer
library is involved. CJK scripts cost far more tokens per character than
Latin text, so they are weighted separately.
"""

import math
import re
from fractions import Fraction

# Han (incl. Extension A and compatibility ideographs), Hangul jamo and
# syllables, Kana (incl. half-width forms) and Bopomofo
CJK_PATTERN = re.compile(
    "[ᄀ-ᇿ぀-ヿ㄀-ㄯ㄰-㆏"
    "㐀-䶿一-鿿가-힯豈-﫿･-ﾟ]"
)

CJK_CHARS_PER_TOKEN = 1.2
OTHER_CHARS_PER_TOKEN = 4.0


class TokenEstimator:
    """Estimate the token cost of a piece of text."""

    def __init__(self, cjk_chars_per_token: float = CJK_CHARS_PER_TOKEN,
                 other_chars_per_token: float = OTHER_CHARS_PER_TOKEN):
        if cjk_chars_per_token <= 0 or other_chars_per_token <= 0:
            raise ValueError("characters per token must be positive")
        # Exact ratios so that 6 CJK characters are 5 tokens, not 5.000000000000001
        self._cjk_ratio = Fraction(str(cjk_chars_per_token))
        self._other_ratio = Fraction(str(other_chars_per_token))

    def estimate(self, text: str) -> int:
        """Return the estimated token count of text (0 for empty input)."""
        if not text:
            return 0
        cjk_count = len(CJK_PATTERN.findall(text))
        other_count = len(text) - cjk_count
        return math.ceil(cjk_count / self._cjk_ratio + other_count / self._other_ratio)


_default_estimator = TokenEstimator()


def estimate_tokens(text: str) -> int:
    """Estimate tokens with the default weights."""
    return _default_estimator.estimate(text)
