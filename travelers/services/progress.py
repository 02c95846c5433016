"""
Traveler progress aggregation.

Keeps ``total_input``, ``touched_inputs`` and ``finished_input`` consistent
with the active form's inputs and the inputs that have data:

    - total_input     = number of inputs (labels) in the active form
    - touched_inputs  = active-form inputs with at least one data entry
    - finished_input  = len(touched_inputs)

Touching is append only: once an input is counted it stays counted for as
long as that form is active. Notes never affect progress.
"""

import logging
import math
from numbers import Real

from travelers.core.exceptions import ValidationError
from travelers.models import db
from travelers.models.traveler import INPUT_TYPES, TravelerData

logger = logging.getLogger(__name__)

_FILE_KEYS = ("path", "encoding", "mimetype")


def validate_data_entry(name, value, input_type, file=None) -> None:
    """Reject a data entry before anything is written.

    Raises:
        ValidationError (400): unknown input type, missing input name,
            non-numeric value for a number input, or file metadata that does
            not match the input type.
    """
    if not name or not isinstance(name, str):
        raise ValidationError("input name is required", details={"name": name})
    if input_type not in INPUT_TYPES:
        raise ValidationError(
            f'input type "{input_type}" is not supported',
            details={"input_type": input_type, "allowed": list(INPUT_TYPES)},
        )
    if input_type == "number":
        # bool is an int subclass but not a number answer
        if isinstance(value, bool) or not isinstance(value, Real) or (
            isinstance(value, float) and not math.isfinite(value)
        ):
            raise ValidationError(
                f'value "{value}" is not a number',
                details={"name": name, "value": value},
            )
    if input_type == "file":
        if not isinstance(file, dict) or not file.get("path"):
            raise ValidationError(
                "file input requires file metadata with a path",
                details={"name": name},
            )
        unknown = set(file) - set(_FILE_KEYS)
        if unknown:
            raise ValidationError(
                f"unknown file metadata keys: {', '.join(sorted(unknown))}",
                details={"name": name},
            )
    elif file:
        raise ValidationError(
            f'file metadata is only allowed for file inputs, not "{input_type}"',
            details={"name": name},
        )


def answered_inputs(traveler_id) -> set:
    """Names of all inputs with at least one data entry for the traveler."""
    rows = (
        db.session.query(TravelerData.name)
        .filter(TravelerData.traveler_id == traveler_id)
        .distinct()
        .all()
    )
    return {name for (name,) in rows}


def recompute_progress(traveler) -> None:
    """Recount progress against the traveler's current ``labels``.

    Called when the active form changes. Data entries for inputs missing
    from the new form are left alone and simply stop counting.
    """
    inputs = list((traveler.labels or {}).keys())
    with db.session.no_autoflush:
        answered = answered_inputs(traveler.id) if traveler.id else set()
    touched = [name for name in inputs if name in answered]
    traveler.total_input = len(inputs)
    traveler.touched_inputs = touched
    traveler.finished_input = len(touched)
    logger.debug(
        "Progress recomputed traveler_id=%s total=%s finished=%s",
        traveler.id, traveler.total_input, traveler.finished_input,
    )


def touch_input(traveler, name) -> bool:
    """Count ``name`` as finished if it is an untouched input of the active form.

    Returns True when the counters moved.
    """
    if name not in (traveler.labels or {}):
        return False
    touched = list(traveler.touched_inputs or [])
    if name in touched:
        return False
    touched.append(name)
    traveler.touched_inputs = touched
    traveler.finished_input = (traveler.finished_input or 0) + 1
    return True
