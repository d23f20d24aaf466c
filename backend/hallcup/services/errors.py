"""
Typed scheduling errors.

The core returns these inside result objects; they subclass Exception so
top-level guards (and the HTTP layer) can raise them as well.
"""

from typing import Any, Dict, Optional

INVALID_CONFIGURATION = "INVALID_CONFIGURATION"
UNSCHEDULABLE = "UNSCHEDULABLE"
INVALID_PLACEHOLDER = "INVALID_PLACEHOLDER"
STALE_RESOLUTION = "STALE_RESOLUTION"

# Constraints an Unschedulable result can name
CONSTRAINT_MIN_REST = "MIN_REST"
CONSTRAINT_FIELD_CAPACITY = "FIELD_CAPACITY"
CONSTRAINT_ITERATION_LIMIT = "ITERATION_LIMIT"


class SchedulingError(Exception):
    """Base class for all scheduling/bracket errors"""

    code = "SCHEDULING_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message}


class InvalidConfiguration(SchedulingError):
    """Input rejected before any scheduling attempt"""

    code = INVALID_CONFIGURATION

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        if self.field:
            result["field"] = self.field
        return result


class Unschedulable(SchedulingError):
    """A pending pairing could not be placed under hard constraints"""

    code = UNSCHEDULABLE

    def __init__(self, pairing: Any, constraint: str, message: str, placed_count: int = 0):
        super().__init__(message)
        self.pairing = pairing
        self.constraint = constraint
        self.placed_count = placed_count

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["constraint"] = self.constraint
        result["placed_count"] = self.placed_count
        if self.pairing is not None:
            result["pairing"] = self.pairing.to_dict()
        return result


class InvalidPlaceholder(SchedulingError):
    """A bracket node references a group, rank or node that does not exist"""

    code = INVALID_PLACEHOLDER

    def __init__(self, node_id: str, message: str, ref: Any = None):
        super().__init__(message)
        self.node_id = node_id
        self.ref = ref

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["node_id"] = self.node_id
        if self.ref is not None:
            result["ref"] = self.ref.to_dict()
        return result


class StaleResolution(SchedulingError):
    """The stored bracket advanced past the snapshot a resolution was computed on"""

    code = STALE_RESOLUTION

    def __init__(self, expected_version: int, actual_version: int):
        super().__init__(
            f"Bracket version is {actual_version}, resolution was computed against {expected_version}; "
            "re-fetch and retry"
        )
        self.expected_version = expected_version
        self.actual_version = actual_version

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["expected_version"] = self.expected_version
        result["actual_version"] = self.actual_version
        return result
