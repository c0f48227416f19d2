"""Domain Enumerations.

Closed sets of values used across the reconciliation engine.
"""

from enum import Enum


class SourceName(str, Enum):
    """The four upstream data sources contributing patient records.

    Declaration order is the canonical bucket order used for search output,
    flattening and export.
    """
    ECW = "eCW"
    AMD = "AMD"
    QUEST = "Quest"
    BEHAVIDANCE = "Behavidance"

    @classmethod
    def parse(cls, value: "str | SourceName") -> "SourceName":
        """Resolve a source from its wire name (exact, then case-insensitive).

        Raises:
            ValueError: If the value does not name one of the four sources
        """
        if isinstance(value, cls):
            return value
        for member in cls:
            if member.value == value:
                return member
        lowered = str(value).strip().lower()
        for member in cls:
            if member.value.lower() == lowered:
                return member
        raise ValueError(f"Unknown source: {value!r}. Expected one of {[m.value for m in cls]}")


# Platform filter value meaning "no platform constraint"
ALL_PLATFORMS = "All"


class PlatformMatchMode(str, Enum):
    """How a platform name is tested against a record's providers string."""
    SUBSTRING = "substring"
    TOKEN = "token"
