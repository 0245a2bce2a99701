"""Free study: flip through a shuffled set without rating or recording anything."""

from __future__ import annotations

import random
from dataclasses import dataclass, field

from flashprep.core.exceptions import InvalidSetError
from flashprep.delivery.card_set import Card
from flashprep.study.scheduler import uniform_shuffle


@dataclass
class FreeStudySession:
    cards: list[Card]
    rng: random.Random | None = None
    index: int = 0
    flipped: bool = False
    order: list[Card] = field(init=False)

    def __post_init__(self) -> None:
        if not self.cards:
            raise InvalidSetError("Set has no cards to study")
        self.order = uniform_shuffle(self.cards, self.rng)

    @property
    def current(self) -> Card:
        return self.order[self.index]

    @property
    def is_last(self) -> bool:
        return self.index >= len(self.order) - 1

    @property
    def progress(self) -> tuple[int, int]:
        return self.index + 1, len(self.order)

    def flip(self) -> bool:
        self.flipped = not self.flipped
        return self.flipped

    def next(self) -> bool:
        """Move forward; False when already on the last card."""
        if self.is_last:
            return False
        self.index += 1
        self.flipped = False
        return True

    def previous(self) -> bool:
        if self.index == 0:
            return False
        self.index -= 1
        self.flipped = False
        return True

    def restart(self) -> None:
        """Reshuffle and go back to the first card."""
        self.order = uniform_shuffle(self.order, self.rng)
        self.index = 0
        self.flipped = False
