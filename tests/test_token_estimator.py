"""Tests for the heuristic token estimator."""

import pytest

from sculptembed.token_estimator import TokenEstimator


@pytest.fixture
def estimator():
    return TokenEstimator(max_tokens_per_request=100, hard_max_batch_size=3, max_tokens_per_text=10)


class TestEstimateTokens:

    def test_empty_text(self):
        assert TokenEstimator.estimate_tokens("") == 0

    def test_plain_text_uses_larger_estimate(self):
        # 2 words * 1.3 = 2.6, 11 chars / 4 = 2.75
        assert TokenEstimator.estimate_tokens("hello world") == 3

    def test_long_single_word_is_char_based(self):
        assert TokenEstimator.estimate_tokens("abcd" * 100) == 100

    def test_many_short_words_are_word_based(self):
        # 3 words * 1.3 beats 5 chars / 4
        assert TokenEstimator.estimate_tokens("a b c") == 4

    def test_cjk_counts_one_token_per_character(self):
        assert TokenEstimator.estimate_tokens("日本語") == 3

    def test_urls_are_denser(self):
        # 21 URL chars / 3.2
        assert TokenEstimator.estimate_tokens("https://example.com/a") == 7

    def test_emoji_counts_two_tokens(self):
        assert TokenEstimator.estimate_tokens("🎉") == 2


class TestTruncation:

    def test_short_text_unchanged(self, estimator):
        assert estimator.truncate_to_token_limit("short") == "short"

    def test_long_text_truncated_with_ellipsis(self, estimator):
        truncated = estimator.truncate_to_token_limit("a" * 100)
        assert truncated == "a" * 36 + "..."

    def test_explicit_limit_overrides_default(self, estimator):
        truncated = estimator.truncate_to_token_limit("a" * 1000, max_tokens=50)
        assert truncated == "a" * 180 + "..."


class TestBatchHelpers:

    def test_optimal_batch_size_respects_budget(self, estimator):
        # 50 tokens each against a 90-token budget
        assert estimator.calculate_optimal_batch_size(["a" * 200] * 4) == 1

    def test_optimal_batch_size_respects_item_cap(self, estimator):
        assert estimator.calculate_optimal_batch_size(["hi"] * 10) == 3

    def test_optimal_batch_size_empty(self, estimator):
        assert estimator.calculate_optimal_batch_size([]) == 0

    def test_optimal_batch_size_never_zero_for_oversized_text(self, estimator):
        assert estimator.calculate_optimal_batch_size(["a" * 4000]) == 1

    def test_optimized_batches_isolate_oversized_items(self, estimator):
        big = "a" * 4000
        batches = estimator.create_optimized_batches(["x", big, "y"])
        assert [big] in batches
        assert sum(len(batch) for batch in batches) == 3

    def test_batch_statistics(self, estimator):
        stats = estimator.get_batch_statistics(["abcd" * 10, "abcd" * 20])
        assert stats["count"] == 2
        assert stats["total_tokens"] == 30
        assert stats["max_tokens"] == 20
        assert stats["min_tokens"] == 10
        assert stats["avg_tokens"] == 15.0

    def test_invalid_limits_rejected(self):
        with pytest.raises(ValueError):
            TokenEstimator(max_tokens_per_request=0)
        with pytest.raises(ValueError):
            TokenEstimator(hard_max_batch_size=0)
