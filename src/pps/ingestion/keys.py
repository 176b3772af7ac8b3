"""Identifier extraction from ODK repeat-group keys."""

from typing import Optional

# Repeat-group rows reference their submission as
# "<submission key>/Antibioticform/<group path>".
FORM_MARKER = "/Antibioticform"


def normalize_key(value: Optional[str], marker: str = FORM_MARKER) -> str:
    """
    Return the submission identifier embedded in a compound key.

    "uuid:abc/Antibioticform/Core_variables[1]" -> "uuid:abc". Keys without
    the marker are returned unchanged.
    """
    key = value or ""
    position = key.find(marker)
    if position == -1:
        return key
    return key[:position]
