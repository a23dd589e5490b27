"""Business entity identifier format and boundary normalisation.

Business entities are keyed by a 12-digit string made of a fixed 11-digit
prefix and a single variable digit. Rows created before the switch to string
identifiers carry plain integers; callers may still hand those in, so the
boundary accepts either form and normalises to the stored string.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

ENTITY_ID_PREFIX = "00007867860"
ENTITY_ID_LENGTH = 12


@dataclass(frozen=True, slots=True)
class LegacyNumericId:
    """Integer identifier issued before business entities moved to string keys."""

    value: int


@dataclass(frozen=True, slots=True)
class CanonicalId:
    """String identifier exactly as stored in ``business_entities.id``."""

    value: str


EntityIdentifier = Union[LegacyNumericId, CanonicalId]


def validate_entity_id(entity_id: object) -> bool:
    """Return ``True`` when ``entity_id`` is a well-formed 12-digit business entity id."""
    if not isinstance(entity_id, str):
        return False
    if len(entity_id) != ENTITY_ID_LENGTH:
        return False
    if not entity_id.startswith(ENTITY_ID_PREFIX):
        return False
    # str.isdigit() also accepts superscripts and other unicode digits
    return entity_id.isascii() and entity_id.isdigit()


def format_entity_id(entity_id: str) -> str:
    """Return the display form of an id.

    Valid ids are already in display form. Anything else is returned untouched,
    so the result is not guaranteed to be display-safe.
    """
    if not validate_entity_id(entity_id):
        return entity_id
    return entity_id


def to_identifier(raw: EntityIdentifier | str | int) -> EntityIdentifier:
    """Lift a raw caller-supplied id into the boundary sum type."""
    if isinstance(raw, (LegacyNumericId, CanonicalId)):
        return raw
    # bool is an int subclass but never a meaningful identifier
    if isinstance(raw, bool):
        raise TypeError("business entity id must be a string or integer, not bool")
    if isinstance(raw, int):
        return LegacyNumericId(raw)
    if isinstance(raw, str):
        return CanonicalId(raw)
    raise TypeError(f"unsupported business entity id type: {type(raw).__name__}")


def normalize_entity_id(raw: EntityIdentifier | str | int) -> str:
    """Return the string key used to look an entity up in the store.

    Legacy integers are converted with plain decimal conversion and are *not*
    padded into the 12-digit form: the two id spaces are distinct.
    """
    identifier = to_identifier(raw)
    if isinstance(identifier, LegacyNumericId):
        return str(identifier.value)
    return identifier.value
