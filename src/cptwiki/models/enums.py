"""
cptwiki Enumerations

Primitive kinds produced by the CPT compiler, revision tags, deletion reasons
and the permission filter's rejection outcomes.

String-valued enums inherit from (str, Enum) so they compare equal to their
wire names; small persisted codes are IntEnums.
"""
from __future__ import annotations

from enum import Enum, IntEnum


# =============================================================================
# Primitive Kinds
# =============================================================================

class PrimitiveKind(str, Enum):
    """Leaf content of a compiled property."""
    SHORT_TEXT = "ShortText"
    LONG_TEXT = "LongText"
    INTEGER = "Integer"
    BOOLEAN = "Boolean"
    DATE = "Date"
    REFERENCE = "Reference"    # id of another item, argument = class name
    FILE_REF = "FileRef"       # id of a file item
    CHOICE = "Choice"          # one of a fixed option set

    def __str__(self) -> str:
        return self.value


# =============================================================================
# Revision Tags
# =============================================================================

class RevisionTag(IntEnum):
    """Codes stored in a revision's tag list."""
    REVERTED = 0
    ROLLBACK = 1


# =============================================================================
# Deletion Reasons
# =============================================================================

class DeletionReason(IntEnum):
    """Reason codes for deletion-log entries."""
    OTHER = 0       # free text in reason_text
    SPAM = 1
    VANDALISM = 2


# =============================================================================
# Permission Filter Outcomes
# =============================================================================

class RejectionCode(IntEnum):
    """Why the permission filter refused a restricted submission."""
    CREATION = 1
    MALFORMED = 2
