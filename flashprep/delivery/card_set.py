"""
Card Sets: Flashcard set model and file exchange.

Handles:
- Card / CardSet data classes with the persisted (camelCase) layout
- Validation of user-entered sets (name required, empty cards dropped)
- The .flashstudy.json export/import format
- Legacy array-of-sets payloads
"""

from __future__ import annotations

import re
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field, replace

from loguru import logger

from flashprep.core.exceptions import InvalidSetError

EXPORT_VERSION = 1
EXPORT_SUFFIX = ".flashstudy.json"

# =============================================================================
# Card Data Classes
# =============================================================================


@dataclass
class Card:
    """
    One flashcard.

    Cards have no identity of their own: they are addressed by their
    position (card_index) in the owning set. Image fields hold opaque
    strings (data URLs or paths) and are never decoded here.
    """

    front: str = ""
    back: str = ""
    front_image: str = ""
    back_image: str = ""

    @property
    def is_empty(self) -> bool:
        """True when all four fields are blank."""
        return not (self.front or self.front_image or self.back or self.back_image)

    @property
    def label(self) -> str:
        """Short text used to list the card."""
        if self.front:
            return self.front
        return "[Image]" if self.front_image else "[Empty]"

    @classmethod
    def from_dict(cls, data: dict) -> Card:
        return cls(
            front=(data.get("front") or "").strip(),
            back=(data.get("back") or "").strip(),
            front_image=data.get("frontImage") or "",
            back_image=data.get("backImage") or "",
        )

    def to_dict(self) -> dict:
        return {
            "front": self.front,
            "frontImage": self.front_image,
            "back": self.back,
            "backImage": self.back_image,
        }


@dataclass
class CardSet:
    """A named, ordered sequence of cards."""

    id: str
    name: str
    cards: list[Card] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.cards)

    @classmethod
    def from_dict(cls, data: dict) -> CardSet:
        """
        Create a CardSet from its stored dictionary.

        Args:
            data: Dictionary with id, name and an embedded cards list

        Returns:
            CardSet instance
        """
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            cards=[Card.from_dict(c) for c in data.get("cards", [])],
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "cards": [c.to_dict() for c in self.cards],
        }


# =============================================================================
# Building & Validation
# =============================================================================


def generate_id() -> str:
    """Generate a short random identifier for a set or session."""
    return uuid.uuid4().hex[:12]


def clean_cards(cards: Iterable[Card | dict]) -> list[Card]:
    """Normalise cards and drop the ones with no content."""
    result = []
    for card in cards:
        if isinstance(card, dict):
            card = Card.from_dict(card)
        else:
            card = replace(card, front=card.front.strip(), back=card.back.strip())
        if not card.is_empty:
            result.append(card)
    return result


def build_card_set(name: str, cards: Iterable[Card | dict], set_id: str | None = None) -> CardSet:
    """
    Build a validated CardSet from user input.

    Args:
        name: Set name (must not be blank)
        cards: Cards or card dictionaries; blank cards are dropped
        set_id: Existing id when editing, None to generate one

    Returns:
        CardSet ready to persist

    Raises:
        InvalidSetError: If the name is blank or no card has content
    """
    name = (name or "").strip()
    if not name:
        raise InvalidSetError("Please enter a set name")

    valid = clean_cards(cards)
    if not valid:
        raise InvalidSetError("Add at least one card with content")

    return CardSet(id=set_id or generate_id(), name=name, cards=valid)


# =============================================================================
# Export / Import
# =============================================================================


def export_payload(card_set: CardSet) -> dict:
    """Build the portable export document for a set."""
    return {
        "flashstudy": True,
        "version": EXPORT_VERSION,
        "name": card_set.name,
        "cards": [c.to_dict() for c in card_set.cards],
    }


def export_filename(name: str) -> str:
    """File name for an exported set, e.g. 'Spanish Verbs' -> 'spanish_verbs.flashstudy.json'."""
    slug = re.sub(r"[^a-z0-9]+", "_", name, flags=re.IGNORECASE).lower()
    return slug + EXPORT_SUFFIX


def parse_import_payload(data: object) -> CardSet:
    """
    Turn an exported document into a new CardSet.

    The imported set always receives a fresh id so importing the same
    file twice yields two independent sets.

    Raises:
        InvalidSetError: If the marker, name or cards are missing
    """
    if (
        not isinstance(data, dict)
        or not data.get("flashstudy")
        or not data.get("name")
        or not isinstance(data.get("cards"), list)
        or not data["cards"]
    ):
        raise InvalidSetError("Invalid flash set file")

    return build_card_set(str(data["name"]), data["cards"])


def parse_legacy_sets(data: object) -> list[CardSet]:
    """
    Parse a legacy array of stored sets.

    Each entry keeps its id but is validated like user input: blank
    cards are dropped, and entries that are unreadable, unnamed or
    without content are skipped rather than failing the batch.
    """
    if not isinstance(data, list):
        raise InvalidSetError("Legacy sets file must contain a list of sets")

    sets = []
    for entry in data:
        try:
            sets.append(build_card_set(entry.get("name"), entry.get("cards") or [], set_id=str(entry["id"])))
        except InvalidSetError as e:
            logger.warning(f"Skipping invalid legacy set {entry.get('id')}: {e}")
        except (KeyError, TypeError, AttributeError) as e:
            logger.warning(f"Skipping unreadable legacy set: {e}")
    return sets
