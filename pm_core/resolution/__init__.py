"""
Metadata resolution: human-readable names -> provider IDs.
"""
from .custom_fields import (
    CustomFieldContext,
    ResolvedCustomFieldMutation,
    build_mutation,
    merge_custom_field_contexts,
    requested_custom_fields,
    resolve_enum_option,
    resolve_field_context,
    to_custom_field_payload,
    to_custom_field_results,
)
from .field_parser import merge_legacy_difficulty_field, parse_custom_field_flags, split_id_or_name
from .resolver import (
    MetadataResolver,
    ResolvedCreate,
    ResolvedPlacement,
    ResolvedProject,
    ResolvedSection,
    ResolvedWorkspace,
)

__all__ = [
    "CustomFieldContext",
    "ResolvedCustomFieldMutation",
    "build_mutation",
    "merge_custom_field_contexts",
    "requested_custom_fields",
    "resolve_enum_option",
    "resolve_field_context",
    "to_custom_field_payload",
    "to_custom_field_results",
    "merge_legacy_difficulty_field",
    "parse_custom_field_flags",
    "split_id_or_name",
    "MetadataResolver",
    "ResolvedCreate",
    "ResolvedPlacement",
    "ResolvedProject",
    "ResolvedSection",
    "ResolvedWorkspace",
]
