"""Rabin-Karp style rolling hash.

The fingerprint of a window ``b[0..w-1]`` is the polynomial

    h = b[0]*B^(w-1) + b[1]*B^(w-2) + ... + b[w-1]   (mod M)

Sliding the window by one byte removes the oldest term and shifts the
rest, so each step costs O(1) regardless of the window size. The value
only depends on the bytes currently in the window, which is what makes
chunk boundaries independent of how the input was read.
"""

from __future__ import annotations

from collections.abc import Iterable

DEFAULT_WINDOW_SIZE = 48
DEFAULT_BASE = 257
DEFAULT_MODULUS = (1 << 61) - 1  # Mersenne prime


class RollingHasher:
    """Incremental polynomial hash over the last ``window_size`` bytes.

    Windows that are not yet full behave as if left-padded with zero
    bytes, so rolling from a fresh hasher and hashing a short window
    from scratch agree.

    Usage:
        hasher = RollingHasher(48)
        for i, byte in enumerate(data):
            old = data[i - 48] if i >= 48 else 0
            fp = hasher.roll(old, byte)
    """

    def __init__(
        self,
        window_size: int = DEFAULT_WINDOW_SIZE,
        base: int = DEFAULT_BASE,
        modulus: int = DEFAULT_MODULUS,
    ) -> None:
        """Initialize the hasher.

        Args:
            window_size: Number of bytes covered by the fingerprint.
            base: Polynomial base.
            modulus: Modulus for all arithmetic.

        Raises:
            ValueError: If window_size is not positive.
        """
        if window_size <= 0:
            raise ValueError(f"window_size must be positive, got {window_size}")
        self._window_size = window_size
        self._base = base
        self._modulus = modulus
        # Weight of the byte leaving the window
        self._out_weight = pow(base, window_size - 1, modulus)
        self._value = 0

    @property
    def window_size(self) -> int:
        """Return the window size in bytes."""
        return self._window_size

    @property
    def fingerprint(self) -> int:
        """Return the current fingerprint."""
        return self._value

    def reset(self) -> None:
        """Reset to the fingerprint of an all-zero window."""
        self._value = 0

    def roll(self, old_byte: int, new_byte: int) -> int:
        """Slide the window by one byte.

        Args:
            old_byte: Byte leaving the window (0 while the window fills).
            new_byte: Byte entering the window.

        Returns:
            The fingerprint of the new window.
        """
        value = (self._value - old_byte * self._out_weight) % self._modulus
        self._value = (value * self._base + new_byte) % self._modulus
        return self._value

    def prime(self, window: Iterable[int]) -> int:
        """Set the state from scratch to the fingerprint of ``window``.

        Args:
            window: At most ``window_size`` bytes.

        Returns:
            The fingerprint of the window.
        """
        self._value = self.hash_window(window)
        return self._value

    def hash_window(self, window: Iterable[int]) -> int:
        """Compute the fingerprint of a window without rolling.

        Args:
            window: At most ``window_size`` bytes.

        Returns:
            The fingerprint, equal to the incremental value for the same window.

        Raises:
            ValueError: If the window is longer than ``window_size``.
        """
        data = bytes(window)
        if len(data) > self._window_size:
            raise ValueError(
                f"Window of {len(data)} bytes exceeds window size {self._window_size}"
            )
        value = 0
        for byte in data:
            value = (value * self._base + byte) % self._modulus
        return value
