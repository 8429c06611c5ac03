"""Label-anchored field extraction from free-text agent replies.

Each field is searched for independently over the whole reply, so extra
commentary before, after or between the fields does not matter, and one
missing or garbled field never prevents the others from being read.
Labels match case-insensitively and may be wrapped in markdown emphasis
(``**CHANGE_TYPE:** fix``, ``- IS_TRIVIAL: true``).
"""

import re
from enum import Enum
from typing import Iterator, List, Optional, Type, TypeVar


E = TypeVar("E", bound=Enum)

_LABEL_SEPARATOR = r"[*_`]*[ \t]*[:=][ \t]*[*_`]*[ \t]*"


def _values(text: str, label: str, value_pattern: str) -> Iterator[str]:
    pattern = re.compile(
        r"(?<![A-Za-z0-9_])" + re.escape(label) + _LABEL_SEPARATOR
        + r"(" + value_pattern + r")",
        re.IGNORECASE,
    )
    for match in pattern.finditer(text):
        yield match.group(1)


def extract_line(text: str, label: str) -> Optional[str]:
    """Return the rest of the line after ``label:``, stripped of markup.

    Placeholders echoed back from the request (``<one of: ...>``) are
    ignored in favour of a later, real value.
    """
    for raw in _values(text, label, r"[^\n]*"):
        value = raw.strip().strip("*_`").strip()
        if value and not value.startswith("<"):
            return value
    return None


def extract_choice(text: str, label: str, choices: List[str]) -> Optional[str]:
    """Return the lowercased choice following ``label:``, if it is one of ``choices``."""
    # longest first so a value is never shadowed by its own prefix
    ordered = sorted(choices, key=len, reverse=True)
    alternatives = "|".join(re.escape(choice) for choice in ordered)
    for value in _values(text, label, r"(?:" + alternatives + r")\b"):
        return value.lower()
    return None


def extract_enum(text: str, label: str, enum_type: Type[E]) -> Optional[E]:
    """Return the enum member named after ``label:``, or None."""
    value = extract_choice(text, label, [member.value for member in enum_type])
    return enum_type(value) if value is not None else None


def extract_bool(text: str, label: str) -> Optional[bool]:
    value = extract_choice(text, label, ["true", "false", "yes", "no"])
    if value is None:
        return None
    return value in ("true", "yes")


def extract_int(text: str, label: str) -> Optional[int]:
    for value in _values(text, label, r"\d+\b"):
        return int(value)
    return None


def extract_list(text: str, label: str) -> Optional[List[str]]:
    """Return the comma-separated items after ``label:``, lowercased."""
    line = extract_line(text, label)
    if line is None:
        return None
    items = [item.strip().lower() for item in line.split(",")]
    items = [item for item in items if item]
    return items or None


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(value, high))
