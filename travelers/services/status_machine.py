"""
Traveler status state machine.

The status set and transition table are fixed (``STATUS_MAP`` and
``STATUS_TRANSITIONS`` in ``travelers.models.traveler``); this module only
answers questions about them and rejects anything outside the table.

Usage:
    from travelers.services.status_machine import assert_transition, normalize_status

    assert_transition(traveler.status, normalize_status(payload["status"]))
"""

import math

from travelers.core.exceptions import InvalidTransition, UnknownStatusError
from travelers.models.traveler import STATUS_MAP, STATUS_TRANSITIONS


def normalize_status(value):
    """Return the canonical status code for ``value``.

    Accepts the codes themselves, their float forms (``1.0`` as stored by the
    database) and numeric strings (``"1.5"``). Anything else, including
    booleans, raises UnknownStatusError.
    """
    if isinstance(value, bool) or value is None:
        raise UnknownStatusError(value)
    if isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            raise UnknownStatusError(value)
    elif isinstance(value, (int, float)):
        number = float(value)
    else:
        raise UnknownStatusError(value)
    if math.isnan(number):
        raise UnknownStatusError(value)
    for code in STATUS_MAP:
        if code == number:
            return code
    raise UnknownStatusError(value)


def status_label(value) -> str:
    return STATUS_MAP[normalize_status(value)]


def available_transitions(value) -> list:
    """Statuses reachable in one step from ``value``, in ascending order."""
    return sorted(STATUS_TRANSITIONS[normalize_status(value)])


def can_transition(from_status, to_status) -> bool:
    """Return True if ``to_status`` is a successor of ``from_status``."""
    source = normalize_status(from_status)
    target = normalize_status(to_status)
    return target in STATUS_TRANSITIONS[source]


def assert_transition(from_status, to_status):
    """Raise InvalidTransition unless ``from_status -> to_status`` is in the table.

    Returns the canonical target code.
    """
    source = normalize_status(from_status)
    target = normalize_status(to_status)
    if target not in STATUS_TRANSITIONS[source]:
        raise InvalidTransition(source, target)
    return target


def vocabulary() -> dict:
    """Status codes, labels and successor lists, as rendered to clients."""
    return {
        "statuses": [
            {"code": code, "label": label} for code, label in STATUS_MAP.items()
        ],
        "transitions": [
            {"from": code, "to": sorted(targets)}
            for code, targets in STATUS_TRANSITIONS.items()
        ],
    }
