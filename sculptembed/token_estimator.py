"""Heuristic token estimation and token-aware batching for SculptEmbed.

Estimates are deliberately conservative: the larger of a word-based and a
character-based estimate is used, so a packed batch is more likely to be
under-filled than rejected by the provider.
"""

import math
import re
from functools import lru_cache
from typing import Any, Callable, Dict, List, Optional, Sequence, TypeVar

from loguru import logger

T = TypeVar("T")

SAFETY_MARGIN = 0.9
DEFAULT_MAX_TOKENS_PER_REQUEST = 100_000
DEFAULT_MAX_TOKENS_PER_TEXT = 8_000
DEFAULT_HARD_MAX_BATCH_SIZE = 25
CHARS_PER_TOKEN = 4
URL_CHARS_PER_TOKEN = 3.2
WORD_TOKEN_RATIO = 1.3
EMOJI_TOKENS = 2

_URL_RE = re.compile(r"https?://\S+")
_CJK_RE = re.compile(
    "[\u3040-\u309f"    # Hiragana
    "\u30a0-\u30ff"     # Katakana
    "\u3400-\u4dbf"     # CJK Extension A
    "\u4e00-\u9fff"     # CJK Unified Ideographs
    "\uac00-\ud7af"     # Hangul syllables
    "\u1100-\u11ff]"    # Hangul Jamo
)
_EMOJI_RE = re.compile(
    "[\U0001F300-\U0001FAFF"
    "\U0001F000-\U0001F2FF"
    "\u2600-\u27bf]"
)


@lru_cache(maxsize=1000)
def _estimate(text: str) -> int:
    if not text:
        return 0

    word_count = len(text.split())
    char_count = len(text)

    url_chars = sum(len(match) for match in _URL_RE.findall(text))
    cjk_chars = len(_CJK_RE.findall(text))
    emoji_count = len(_EMOJI_RE.findall(text))

    url_tokens = url_chars / URL_CHARS_PER_TOKEN
    cjk_tokens = cjk_chars
    emoji_tokens = emoji_count * EMOJI_TOKENS

    non_special_chars = max(0, char_count - url_chars - cjk_chars - emoji_count)
    base_tokens = non_special_chars / CHARS_PER_TOKEN

    char_based = url_tokens + cjk_tokens + emoji_tokens + base_tokens
    word_based = word_count * WORD_TOKEN_RATIO

    return math.ceil(max(word_based, char_based))


class TokenEstimator:
    """Fast, deterministic token estimator with batch packing helpers."""

    def __init__(
        self,
        max_tokens_per_request: int = DEFAULT_MAX_TOKENS_PER_REQUEST,
        hard_max_batch_size: int = DEFAULT_HARD_MAX_BATCH_SIZE,
        max_tokens_per_text: int = DEFAULT_MAX_TOKENS_PER_TEXT,
    ):
        """Initialize the estimator.

        Args:
            max_tokens_per_request: Provider token ceiling for one request
            hard_max_batch_size: Provider item cap for one request
            max_tokens_per_text: Per-input token ceiling used for truncation
        """
        if max_tokens_per_request <= 0:
            raise ValueError("max_tokens_per_request must be positive")
        if hard_max_batch_size <= 0:
            raise ValueError("hard_max_batch_size must be positive")

        self._max_tokens_per_request = max_tokens_per_request
        self._hard_max_batch_size = hard_max_batch_size
        self._max_tokens_per_text = max_tokens_per_text

    @property
    def max_tokens_per_request(self) -> int:
        return self._max_tokens_per_request

    @property
    def hard_max_batch_size(self) -> int:
        return self._hard_max_batch_size

    @property
    def token_budget(self) -> float:
        """Usable tokens per request after the safety margin."""
        return self._max_tokens_per_request * SAFETY_MARGIN

    @staticmethod
    def estimate_tokens(text: str) -> int:
        """Estimate model tokens for ``text`` without a tokenizer.

        Args:
            text: Text to estimate

        Returns:
            Conservative token estimate (0 for empty text)
        """
        return _estimate(text or "")

    def calculate_optimal_batch_size(self, texts: Sequence[str]) -> int:
        """Return how many of ``texts`` fit in one request, largest first.

        Args:
            texts: Candidate texts

        Returns:
            Accepted count; at least 1 when ``texts`` is non-empty
        """
        if not texts:
            return 0

        sized = sorted((self.estimate_tokens(text) for text in texts), reverse=True)
        budget = self.token_budget
        total = 0
        count = 0
        for tokens in sized:
            if total + tokens > budget or count >= self._hard_max_batch_size:
                break
            total += tokens
            count += 1

        return max(1, count)

    def truncate_to_token_limit(self, text: str, max_tokens: Optional[int] = None) -> str:
        """Truncate ``text`` when its estimate exceeds ``max_tokens``.

        Args:
            text: Text to bound
            max_tokens: Token ceiling (defaults to the per-text ceiling)

        Returns:
            ``text`` unchanged, or cut to ``floor(limit * 4 * 0.9)`` chars plus an ellipsis
        """
        limit = max_tokens if max_tokens is not None else self._max_tokens_per_text
        if not text or limit <= 0:
            return text

        if self.estimate_tokens(text) <= limit:
            return text

        max_chars = math.floor(limit * CHARS_PER_TOKEN * SAFETY_MARGIN)
        return text[:max_chars] + "..."

    def create_optimized_batches(
        self,
        items: Sequence[T],
        text_of: Callable[[T], str] = str,
    ) -> List[List[T]]:
        """Pack items into batches, smallest first, under the token budget and item cap.

        Items whose own estimate exceeds the budget become singleton batches so
        they are truncated downstream rather than dropped.

        Args:
            items: Items to pack
            text_of: Extracts the text to estimate from an item

        Returns:
            List of batches (ordering follows content length, not input order)
        """
        if not items:
            return []

        ordered = sorted(items, key=lambda item: len(text_of(item)))
        budget = self.token_budget
        batches: List[List[T]] = []
        current: List[T] = []
        current_tokens = 0

        for item in ordered:
            tokens = self.estimate_tokens(text_of(item))

            if tokens > budget:
                batches.append([item])
                continue

            if current and (current_tokens + tokens > budget or len(current) >= self._hard_max_batch_size):
                batches.append(current)
                current = []
                current_tokens = 0

            current.append(item)
            current_tokens += tokens

        if current:
            batches.append(current)

        logger.debug(f"Created {len(batches)} optimized batches from {len(items)} items")
        return batches

    def get_batch_statistics(self, texts: Sequence[str]) -> Dict[str, Any]:
        """Summarize estimated token counts for a batch (used in debug logs)."""
        if not texts:
            return {"count": 0, "total_tokens": 0, "max_tokens": 0, "min_tokens": 0, "avg_tokens": 0.0}

        estimates = [self.estimate_tokens(text) for text in texts]
        total = sum(estimates)
        return {
            "count": len(estimates),
            "total_tokens": total,
            "max_tokens": max(estimates),
            "min_tokens": min(estimates),
            "avg_tokens": round(total / len(estimates), 1),
        }
