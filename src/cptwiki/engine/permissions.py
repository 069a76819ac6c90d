"""
cptwiki Permission Filter

Merges a restricted actor's submission into the stored record. Only fields
declared openly editable (``*`` in CPT) are taken from the submission; every
other value comes from the existing record.

Openly editable paths are expanded against the existing record, so a
restricted actor can change the values of existing array elements but cannot
add or remove elements.
"""
from __future__ import annotations

import copy
import logging
from typing import Any, Optional, Union

from ..exceptions import (
    CreationNotAllowedError,
    MalformedSubmissionError,
    PathNotFoundError,
    PermissionRejection,
)
from ..models import RejectionCode
from ..schema.paths import MISSING, expand, format_value_path, read, write
from ..schema.registry import SchemaRegistry

logger = logging.getLogger(__name__)


class PermissionFilter:
    """
    Applies openly-editable paths to submissions.

    Usage:
        merged = PermissionFilter(registry).merge("song", submitted, existing, is_privileged=False)
    """

    def __init__(self, registry: SchemaRegistry):
        self.registry = registry

    def merge(
        self,
        class_name: str,
        submitted: Any,
        existing: Optional[dict[str, Any]],
        is_privileged: bool,
    ) -> Any:
        """
        Record to validate and commit.

        Raises:
            CreationNotAllowedError: Restricted actor submitted a new item
            MalformedSubmissionError: An editable location is absent from
                the submission or has no place in the stored record
        """
        if is_privileged:
            return submitted

        if existing is None:
            raise CreationNotAllowedError(
                message=f"Restricted actors cannot create {class_name} items",
                details={"class": class_name},
            )

        merged = copy.deepcopy(existing)
        for property_path in self.registry.editable_paths(class_name):
            for value_path in expand(property_path, merged):
                value = read(submitted, value_path)
                if value is MISSING:
                    location = format_value_path(value_path, class_name)
                    logger.info("Rejected malformed %s submission at %s", class_name, location)
                    raise MalformedSubmissionError(
                        message=f"Submission has no value at {location}",
                        details={"class": class_name, "path": list(value_path)},
                    )
                try:
                    write(merged, value_path, copy.deepcopy(value))
                except PathNotFoundError as e:
                    location = format_value_path(value_path, class_name)
                    logger.info("Rejected %s submission: stored record has no container for %s", class_name, location)
                    raise MalformedSubmissionError(
                        message=f"Stored record has no place for {location}",
                        details={"class": class_name, "path": list(value_path)},
                    ) from e
        return merged


def filter_by_permission(
    registry: SchemaRegistry,
    class_name: str,
    submitted: Any,
    existing: Optional[dict[str, Any]],
    is_privileged: bool,
) -> Union[Any, RejectionCode]:
    """Merged record, or the RejectionCode explaining the refusal."""
    try:
        return PermissionFilter(registry).merge(class_name, submitted, existing, is_privileged)
    except PermissionRejection as e:
        return e.rejection
