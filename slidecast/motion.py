"""Ken-Burns motion effect generation."""

from __future__ import annotations

import random
from typing import Callable, Sequence, TypeVar

from slidecast.models import MotionEffect

T = TypeVar("T")

SCALES = (1.0, 1.1, 1.2, 1.3)
OFFSETS = (0.0, 0.1, 0.2, -0.1, -0.2)

Chooser = Callable[[Sequence[T]], T]


class MotionEffectGenerator:
    """Draws pan/zoom parameters from fixed value sets.

    Each of the six parameters is drawn independently, so start and end
    scale may coincide (a pure pan, or a still frame).

    Args:
        rng: Random source. Pass a seeded ``random.Random`` for reproducible
            effects.
        chooser: Selection strategy; defaults to ``rng.choice``.
        scales: Candidate zoom factors.
        offsets: Candidate pan offsets as fractions of the frame.
    """

    def __init__(
        self,
        rng: random.Random | None = None,
        chooser: Chooser | None = None,
        scales: Sequence[float] = SCALES,
        offsets: Sequence[float] = OFFSETS,
    ) -> None:
        self.rng = rng or random.Random()
        self._choose = chooser or self.rng.choice
        self.scales = tuple(scales)
        self.offsets = tuple(offsets)

    def generate(self) -> MotionEffect:
        return MotionEffect(
            start_scale=self._choose(self.scales),
            end_scale=self._choose(self.scales),
            start_x=self._choose(self.offsets),
            start_y=self._choose(self.offsets),
            end_x=self._choose(self.offsets),
            end_y=self._choose(self.offsets),
        )


def generate_motion_effect(seed: int | str | None = None) -> MotionEffect:
    """Convenience wrapper returning one effect from a fresh generator."""
    return MotionEffectGenerator(random.Random(seed)).generate()
