"""Order-preserving batch planning under item-count and token limits."""

from typing import Callable, List, Optional, Sequence, TypeVar

from loguru import logger

from .token_estimator import (
    DEFAULT_HARD_MAX_BATCH_SIZE,
    DEFAULT_MAX_TOKENS_PER_REQUEST,
    SAFETY_MARGIN,
    TokenEstimator,
)

T = TypeVar("T")


def resolve_effective_batch_size(configured: Optional[int], provider_limit: Optional[int]) -> int:
    """Cap the configured batch size by the provider's advertised limit.

    A missing or non-positive provider limit falls back to the default item cap;
    a missing configured size uses the provider limit.

    Returns:
        ``max(1, min(configured or provider_limit, provider_limit))``
    """
    limit = provider_limit if isinstance(provider_limit, int) and provider_limit > 0 else DEFAULT_HARD_MAX_BATCH_SIZE
    requested = configured if isinstance(configured, int) and configured > 0 else limit
    return max(1, min(requested, limit))


def enforce_batch_size_limit(batches: Sequence[Sequence[T]], limit: int) -> List[List[T]]:
    """Re-slice any batch longer than ``limit``, keeping order."""
    size = max(1, limit)
    result: List[List[T]] = []
    for batch in batches:
        if len(batch) <= size:
            result.append(list(batch))
            continue
        for start in range(0, len(batch), size):
            result.append(list(batch[start:start + size]))
    return result


class BatchPlanner:
    """Greedy, order-preserving partition of items into provider requests.

    Each batch holds at most ``max_items`` items and an estimated token sum of
    at most ``max_tokens_per_request * 0.9``. An item that alone exceeds the
    token budget becomes a singleton batch. Concatenating the batches yields
    the input in its original order.
    """

    def __init__(
        self,
        max_items: int = DEFAULT_HARD_MAX_BATCH_SIZE,
        max_tokens_per_request: int = DEFAULT_MAX_TOKENS_PER_REQUEST,
        estimator: Optional[TokenEstimator] = None,
    ):
        if max_items <= 0:
            raise ValueError("max_items must be positive")

        self._max_items = max_items
        self._estimator = estimator or TokenEstimator(
            max_tokens_per_request=max_tokens_per_request,
            hard_max_batch_size=max_items,
        )
        self._token_budget = max_tokens_per_request * SAFETY_MARGIN

    @property
    def max_items(self) -> int:
        return self._max_items

    @property
    def token_budget(self) -> float:
        return self._token_budget

    def plan(self, items: Sequence[T], text_of: Callable[[T], str] = str) -> List[List[T]]:
        """Partition ``items`` into batches.

        Args:
            items: Items in dispatch order
            text_of: Extracts the text sent for an item

        Returns:
            Batches whose concatenation equals ``items``
        """
        batches: List[List[T]] = []
        current: List[T] = []
        current_tokens = 0

        for item in items:
            tokens = self._estimator.estimate_tokens(text_of(item))

            if tokens > self._token_budget:
                if current:
                    batches.append(current)
                    current = []
                    current_tokens = 0
                batches.append([item])
                continue

            if current and (len(current) >= self._max_items or current_tokens + tokens > self._token_budget):
                batches.append(current)
                current = []
                current_tokens = 0

            current.append(item)
            current_tokens += tokens

        if current:
            batches.append(current)

        if batches:
            logger.debug(f"Planned {len(batches)} batches for {len(items)} items (cap {self._max_items})")
        return batches
