"""Randomness port used to seed a lottery draw."""

from .randomness import MAX_RANDOM_WORD, RandomnessOracle, normalize_salt

__all__ = ["MAX_RANDOM_WORD", "RandomnessOracle", "normalize_salt"]
