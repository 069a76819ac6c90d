"""
cptwiki Exception Hierarchy

Domain-specific exceptions for the schema compiler and the versioned item
engine. All exceptions carry a machine-readable code for logging and for the
routing layer that turns them into responses.

Exception codes follow the pattern: CW_<CATEGORY>_<SPECIFIC>
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from .models.enums import RejectionCode


@dataclass
class CptWikiError(Exception):
    """
    Base exception for all cptwiki errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (CW_*)
        details: Additional context about the error
    """
    message: str
    code: str = "CW_INTERNAL_ERROR"
    details: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def to_dict(self) -> dict[str, Any]:
        """Serialize exception for logging/API responses."""
        result: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


# =============================================================================
# Schema Errors
# =============================================================================

@dataclass
class CompileError(CptWikiError):
    """A CPT declaration could not be compiled. Fatal at startup."""
    code: str = "CW_COMPILE_ERROR"


@dataclass
class SchemaPackError(CptWikiError):
    """A schema pack file could not be loaded or failed validation."""
    code: str = "CW_SCHEMA_PACK_ERROR"


@dataclass
class UnknownClassError(CptWikiError):
    """No class with the requested name is registered."""
    code: str = "CW_UNKNOWN_CLASS"


@dataclass
class PathNotFoundError(CptWikiError):
    """A value path does not resolve inside the target record."""
    code: str = "CW_PATH_NOT_FOUND"


# =============================================================================
# Submission Errors
# =============================================================================

@dataclass
class ValidationFailure(CptWikiError):
    """A record did not satisfy its class descriptor."""
    code: str = "CW_VALIDATION_FAILED"
    violations: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["violations"] = list(self.violations)
        return result


@dataclass
class PermissionRejection(CptWikiError):
    """A restricted actor submitted something the permission filter refuses."""
    code: str = "CW_PERMISSION_REJECTED"
    rejection: Optional[RejectionCode] = None


@dataclass
class CreationNotAllowedError(PermissionRejection):
    """Restricted actors cannot create items."""
    code: str = "CW_CREATION_NOT_ALLOWED"
    rejection: Optional[RejectionCode] = RejectionCode.CREATION


@dataclass
class MalformedSubmissionError(PermissionRejection):
    """The submission does not line up with the stored record."""
    code: str = "CW_MALFORMED_SUBMISSION"
    rejection: Optional[RejectionCode] = RejectionCode.MALFORMED


# =============================================================================
# History Errors
# =============================================================================

@dataclass
class ConsistencyViolation(CptWikiError):
    """
    An item's stored history no longer agrees with its current record.

    Raised for the one item being processed; the operation is abandoned
    without writing anything.
    """
    code: str = "CW_CONSISTENCY_VIOLATION"
    item_id: Optional[int] = None
    revision_id: Optional[int] = None
    expected: Any = None
    actual: Any = None

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["item_id"] = self.item_id
        if self.revision_id is not None:
            result["revision_id"] = self.revision_id
        if self.expected is not None or self.actual is not None:
            result["expected"] = self.expected
            result["actual"] = self.actual
        return result


@dataclass
class ItemNotFoundError(CptWikiError):
    """Requested item does not exist (or is deleted)."""
    code: str = "CW_ITEM_NOT_FOUND"


@dataclass
class StaticItemError(CptWikiError):
    """Static items are never created or deleted by users."""
    code: str = "CW_STATIC_ITEM"


@dataclass
class RevisionNotFoundError(CptWikiError):
    """Requested revision does not exist."""
    code: str = "CW_REVISION_NOT_FOUND"


@dataclass
class ReferencedItemError(CptWikiError):
    """Item cannot be deleted while other items reference it."""
    code: str = "CW_ITEM_REFERENCED"


@dataclass
class RollbackError(CptWikiError):
    """Rollback has nothing to undo or the item is not eligible."""
    code: str = "CW_ROLLBACK_ERROR"


# =============================================================================
# Maintenance Errors
# =============================================================================

@dataclass
class BackupRequiredError(CptWikiError):
    """Retro-migration was attempted without a prior backup."""
    code: str = "CW_BACKUP_REQUIRED"


@dataclass
class BackupError(CptWikiError):
    """Backup could not be written or restored."""
    code: str = "CW_BACKUP_ERROR"


@dataclass
class ConfigError(CptWikiError):
    """Environment configuration is invalid."""
    code: str = "CW_CONFIG_ERROR"
