# Copyright (c) 2025 Bytedance Ltd. and/or its affiliates
# SPDX-License-Identifier: MIT

"""
Error handling for PM Core

Every error raised to callers carries a message that can be acted on without
further lookup: not-found errors list the legal values (or suggestions),
ambiguous errors list exactly the tied candidates with their IDs.
"""

from enum import Enum
from typing import Any, Dict, Iterable, List, Optional


class ErrorCode(Enum):
    """Error codes for different types of errors"""
    PROVIDER_UNKNOWN = "PROVIDER_001"
    PROVIDER_NOT_AUTHENTICATED = "PROVIDER_002"
    PROVIDER_CALL_FAILED = "PROVIDER_003"
    CAPABILITY_UNSUPPORTED = "PROVIDER_004"
    TASK_ID_INVALID = "TASK_001"
    RESOLUTION_ERROR = "RESOLVE_001"
    RESOLUTION_NOT_FOUND = "RESOLVE_002"
    RESOLUTION_AMBIGUOUS = "RESOLVE_003"
    FIELD_TYPE_UNSUPPORTED = "FIELD_001"
    FIELD_VALUE_INVALID = "FIELD_002"
    VALIDATION_ERROR = "VAL_001"
    UNKNOWN_ERROR = "UNKNOWN_001"


class PMCoreError(Exception):
    """Base exception for PM Core"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary"""
        return {
            'error_code': self.error_code.value,
            'message': self.message,
            'details': self.details
        }


# ==================== Routing ====================

class UnknownProviderError(PMCoreError):
    """Provider tag is not in the registry"""

    def __init__(self, provider: str):
        self.provider = provider
        super().__init__(
            f"Unknown provider: {provider}",
            ErrorCode.PROVIDER_UNKNOWN,
            {"provider": provider}
        )


class NotAuthenticatedError(PMCoreError):
    """Provider is registered but has no valid credentials"""

    def __init__(self, provider: str):
        self.provider = provider
        super().__init__(
            f"Not connected to {provider}. Run: pm connect {provider}",
            ErrorCode.PROVIDER_NOT_AUTHENTICATED,
            {"provider": provider}
        )


class NoProvidersConnectedError(PMCoreError):
    """No registered provider is authenticated"""

    def __init__(self):
        super().__init__(
            "No providers connected. Run: pm connect <provider>",
            ErrorCode.PROVIDER_NOT_AUTHENTICATED
        )


class InvalidTaskIdError(PMCoreError):
    """Task ID is not of the form {PROVIDER}-{externalId}"""

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(
            f"Invalid task ID format: {task_id}",
            ErrorCode.TASK_ID_INVALID,
            {"task_id": task_id}
        )


class UnsupportedCapabilityError(PMCoreError):
    """Provider does not implement an optional capability"""

    def __init__(self, provider: str, capability: str, operation: Optional[str] = None):
        self.provider = provider
        self.capability = capability
        what = operation or capability
        super().__init__(
            f"{provider} does not support {what}",
            ErrorCode.CAPABILITY_UNSUPPORTED,
            {"provider": provider, "capability": capability}
        )


class ProviderCallError(PMCoreError):
    """A provider call failed; wraps the provider's own error"""

    def __init__(self, provider: str, operation: str, original: BaseException):
        self.provider = provider
        self.operation = operation
        self.original = original
        super().__init__(
            f"{provider} API failure while trying to {operation}: {original}",
            ErrorCode.PROVIDER_CALL_FAILED,
            {"provider": provider, "operation": operation, "type": type(original).__name__}
        )


# ==================== Resolution ====================

class ResolutionError(PMCoreError):
    """Human-readable input could not be turned into provider IDs"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.RESOLUTION_ERROR,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, error_code, details)


class MissingProjectContextError(ResolutionError):
    """An operation needs a project but none could be determined"""


def _format_lines(header: str, lines: Iterable[str]) -> str:
    body = "\n".join(lines)
    return f"{header}\n{body or '(none)'}"


class NotFoundError(ResolutionError):
    """
    No exact match for a workspace/project/section/field/option.

    ``candidates`` lists every legal value; ``suggestions`` (when given) is
    the narrowed list shown instead.
    """

    def __init__(
        self,
        kind: str,
        identifier: str,
        candidates: Optional[List[str]] = None,
        suggestions: Optional[List[str]] = None,
        scope: Optional[str] = None,
        message: Optional[str] = None,
    ):
        self.kind = kind
        self.identifier = identifier
        self.candidates = list(candidates or [])
        self.suggestions = list(suggestions or [])
        if message is None:
            where = f" in {scope}" if scope else ""
            head = f'{kind.capitalize()} not found: "{identifier}"{where}.'
            if self.suggestions:
                message = _format_lines(f"{head} Possible matches:", self.suggestions)
            else:
                plural = "options" if kind == "option" else f"{kind}s"
                message = _format_lines(f"{head} Available {plural}:", self.candidates)
        super().__init__(
            message,
            ErrorCode.RESOLUTION_NOT_FOUND,
            {
                "kind": kind,
                "identifier": identifier,
                "candidates": self.candidates,
                "suggestions": self.suggestions,
            }
        )


class AmbiguousError(ResolutionError):
    """More than one exact match; ``candidates`` holds only the tied ones"""

    def __init__(
        self,
        kind: str,
        identifier: str,
        candidates: List[str],
        hint: Optional[str] = None,
        scope: Optional[str] = None,
    ):
        self.kind = kind
        self.identifier = identifier
        self.candidates = list(candidates)
        where = f" in {scope}" if scope else ""
        head = f'Ambiguous {kind}: "{identifier}"{where}.'
        if hint:
            head = f"{head} {hint}"
        super().__init__(
            _format_lines(f"{head}\nCandidates:", self.candidates),
            ErrorCode.RESOLUTION_AMBIGUOUS,
            {"kind": kind, "identifier": identifier, "candidates": self.candidates}
        )


class UnsupportedFieldTypeError(ResolutionError):
    """Custom field is neither enum nor multi_enum"""

    def __init__(self, field_id: str, field_name: str, field_type: Optional[str]):
        self.field_id = field_id
        self.field_name = field_name
        self.field_type = field_type
        super().__init__(
            f'Unsupported custom field type for "{field_name}" ({field_id}): '
            f"{field_type or 'unknown'}. Supported types: enum, multi_enum.",
            ErrorCode.FIELD_TYPE_UNSUPPORTED,
            {"field_id": field_id, "field_name": field_name, "type": field_type}
        )


class InvalidFieldValueError(ResolutionError):
    """Value list does not fit the field (e.g. several values for an enum)"""

    def __init__(self, field_name: str, values: List[str], message: Optional[str] = None):
        self.field_name = field_name
        self.values = list(values)
        super().__init__(
            message or (
                f'Custom field "{field_name}" expects a single value, '
                f"but received: {', '.join(values)}"
            ),
            ErrorCode.FIELD_VALUE_INVALID,
            {"field_name": field_name, "values": self.values}
        )


class InvalidFieldAssignmentError(PMCoreError):
    """A raw ``<Field>=<Value>`` assignment could not be parsed"""

    def __init__(self, raw: str, reason: str):
        self.raw = raw
        super().__init__(
            f'Invalid --field value "{raw}". {reason}',
            ErrorCode.VALIDATION_ERROR,
            {"raw": raw}
        )


def format_error(error: BaseException) -> str:
    """Format error for display"""
    if isinstance(error, PMCoreError):
        return error.message
    return str(error)
