"""
Random Source - Reproducible pseudo-random numbers for the engine
================================================================

The engine never creates its own entropy. It is handed a zero-argument
callable returning floats in [0, 1); feeding two engines the same
generator state makes their conversations byte-identical.
"""

from typing import Callable, Optional

from core.exceptions import ConfigError

RandomSource = Callable[[], float]

DEFAULT_SEED = 1234

_MULTIPLIER = 9301
_INCREMENT = 49297
_MODULUS = 233280


class SeededRandom:
    """
    Small linear congruential generator.

    Each call advances ``seed = (seed * 9301 + 49297) % 233280`` and
    returns ``seed / 233280``.

    Example:
        rng = SeededRandom(42)
        engine = ElizaEngine(rule_set, rng)
    """

    def __init__(self, seed: Optional[int] = DEFAULT_SEED):
        self.reseed(seed)

    def reseed(self, seed: Optional[int] = DEFAULT_SEED) -> None:
        """Restart the sequence from ``seed`` (falls back to the default for 0/None)."""
        self.seed = int(seed or DEFAULT_SEED)

    def __call__(self) -> float:
        self.seed = (self.seed * _MULTIPLIER + _INCREMENT) % _MODULUS
        return self.seed / _MODULUS


def pick_index(random_func: RandomSource, length: int) -> int:
    """
    Draw a uniformly random index into a sequence of ``length`` items.

    Out-of-contract values from the source are clamped into range.
    """
    index = int(random_func() * length)
    return min(max(index, 0), length - 1)


def ensure_random_source(random_func) -> RandomSource:
    """
    Validate a user supplied random source.

    Raises:
        ConfigError: If ``random_func`` is missing or not callable
    """
    if random_func is None or not callable(random_func):
        raise ConfigError("Random function is required", {"got": repr(random_func)})
    return random_func
