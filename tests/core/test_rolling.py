"""Tests for the Rabin-Karp rolling hash."""

from __future__ import annotations

import pytest

from dedupsync.core.rolling import RollingHasher

from tests.helpers import random_bytes


class TestRollingEquivalence:
    """Incremental and from-scratch fingerprints must agree."""

    @pytest.mark.parametrize("window", [1, 4, 32, 64])
    def test_roll_matches_hash_window(self, window: int) -> None:
        """Every rolled value equals the hash of the current window."""
        data = random_bytes(3000, seed=window)
        hasher = RollingHasher(window)
        for i, byte in enumerate(data):
            old = data[i - window] if i >= window else 0
            rolled = hasher.roll(old, byte)
            start = max(0, i - window + 1)
            assert rolled == hasher.hash_window(data[start : i + 1])

    def test_prime_then_roll(self) -> None:
        """Rolling after prime() continues from the primed window."""
        data = random_bytes(500, seed=1)
        window = 16
        hasher = RollingHasher(window)
        hasher.prime(data[100:116])
        for i in range(116, 500):
            hasher.roll(data[i - window], data[i])
            assert hasher.fingerprint == hasher.hash_window(data[i - window + 1 : i + 1])

    def test_same_window_same_fingerprint_anywhere(self) -> None:
        """The fingerprint depends only on window contents, not on history."""
        window = 8
        pattern = b"ABCDEFGH"
        a = RollingHasher(window)
        b = RollingHasher(window)
        # Two different histories ending in the same window
        history_a = random_bytes(50, seed=3) + pattern
        history_b = random_bytes(77, seed=4) + pattern
        for hasher, history in ((a, history_a), (b, history_b)):
            for i, byte in enumerate(history):
                hasher.roll(history[i - window] if i >= window else 0, byte)
        assert a.fingerprint == b.fingerprint


class TestRollingHasherBasics:
    """Basic behavior and validation."""

    def test_fresh_hasher_is_zero(self) -> None:
        """A new hasher starts at the all-zero window fingerprint."""
        assert RollingHasher(16).fingerprint == 0

    def test_reset(self) -> None:
        """reset() returns to zero."""
        hasher = RollingHasher(4)
        hasher.roll(0, 200)
        hasher.reset()
        assert hasher.fingerprint == 0

    def test_short_window_is_zero_padded(self) -> None:
        """Leading zero bytes do not change the fingerprint."""
        hasher = RollingHasher(8)
        assert hasher.hash_window(b"\x00\x00abc") == hasher.hash_window(b"abc")

    def test_window_too_long_raises(self) -> None:
        """hash_window() rejects windows longer than window_size."""
        with pytest.raises(ValueError, match="exceeds window size"):
            RollingHasher(4).hash_window(b"12345")

    def test_invalid_window_size(self) -> None:
        """Window size must be positive."""
        with pytest.raises(ValueError):
            RollingHasher(0)

    def test_different_windows_differ(self) -> None:
        """Distinct windows hash differently (for these samples)."""
        hasher = RollingHasher(8)
        assert hasher.hash_window(b"abcdefgh") != hasher.hash_window(b"abcdefgi")
