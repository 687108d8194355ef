"""
Alea PRNG matching the generator used by FMG's river module.

Based on Johannes Baagøe's Alea algorithm. Every generation pass creates its
own instance from the caller's seed, so concurrent runs never share state.
"""

from typing import Dict, Sequence


def _uint32(n):
    """Convert to unsigned 32-bit integer."""
    return int(n) & 0xFFFFFFFF


class _Mash:
    """Alea's string hashing function, kept stateful between calls."""

    def __init__(self):
        self.n = 0xEFC8249D

    def __call__(self, data) -> float:
        for char in str(data):
            self.n += ord(char)
            h = 0.02519603282416938 * self.n
            self.n = _uint32(h)
            h -= self.n
            h *= self.n
            self.n = _uint32(h)
            h -= self.n
            self.n += h * 0x100000000  # 2^32
        return _uint32(self.n) * 2.3283064365386963e-10  # 2^-32


class AleaPRNG:
    """Seeded Alea generator with the helpers the river pipeline draws from."""

    def __init__(self, seed):
        self.seed = seed
        self.call_count = 0

        mash = _Mash()
        self.s0 = mash(" ")
        self.s1 = mash(" ")
        self.s2 = mash(" ")
        self.c = 1

        args = list(seed) if hasattr(seed, "__iter__") and not isinstance(seed, str) else [seed]
        for arg in args:
            self.s0 -= mash(arg)
            if self.s0 < 0:
                self.s0 += 1
            self.s1 -= mash(arg)
            if self.s1 < 0:
                self.s1 += 1
            self.s2 -= mash(arg)
            if self.s2 < 0:
                self.s2 += 1

    def random(self) -> float:
        """Generate next random number in [0, 1)."""
        self.call_count += 1
        t = 2091639 * self.s0 + self.c * 2.3283064365386963e-10  # 2^-32
        self.s0 = self.s1
        self.s1 = self.s2
        self.c = int(t)
        self.s2 = t - self.c
        return self.s2

    def choice(self, seq: Sequence):
        """Choose a random element from a non-empty sequence."""
        if not seq:
            raise IndexError("Cannot choose from an empty sequence")
        return seq[int(self.random() * len(seq))]

    def weighted_choice(self, weights: Dict[str, int]) -> str:
        """
        Pick a key with probability proportional to its integer weight.

        Equivalent to FMG's rw(): each key is repeated weight times and one
        entry of the expanded list is drawn.
        """
        expanded = []
        for key, weight in weights.items():
            expanded.extend([key] * int(weight))
        return self.choice(expanded)
