"""
Custom field resolution.

Turns ``<field>=<value[,value]>`` assignments into provider payloads using
custom field metadata merged across one or more scoped projects.
"""
from dataclasses import dataclass, field as dc_field, replace
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from pm_core.errors import (
    AmbiguousError, InvalidFieldValueError, NotFoundError, UnsupportedFieldTypeError,
)
from pm_core.providers.models import (
    CustomField, CustomFieldInput, CustomFieldPayload, CustomFieldSetting,
    CustomFieldType, EnumOption, PlacementRef, TaskCustomFieldResult,
)
from .matching import dedupe_by_id, exact_name_matches, name_suggestions

LEGACY_DIFFICULTY_FIELD = "Difficulty"

SUPPORTED_FIELD_TYPES = (CustomFieldType.ENUM.value, CustomFieldType.MULTI_ENUM.value)


@dataclass
class CustomFieldContext:
    """A custom field as seen across the scoped projects"""
    field: CustomField
    project_ids: List[str] = dc_field(default_factory=list)
    project_names: List[str] = dc_field(default_factory=list)

    def add_project(self, project: PlacementRef) -> None:
        if project.id not in self.project_ids:
            self.project_ids.append(project.id)
        if project.name not in self.project_names:
            self.project_names.append(project.name)


@dataclass
class ResolvedCustomFieldMutation:
    field_id: str
    field_name: str
    field_type: CustomFieldType
    payload_value: Union[str, List[str], None]
    option_ids: List[str] = dc_field(default_factory=list)
    option_names: List[str] = dc_field(default_factory=list)


def merge_custom_field_contexts(
    settings_by_project: Sequence[Tuple[PlacementRef, Sequence[CustomFieldSetting]]],
) -> List[CustomFieldContext]:
    """
    Merge per-project custom field listings into one context per field ID.

    Projects are processed in order. The first project to list a field
    provides its name and type; the options come from the first listing
    whose options are non-empty. Every project listing the field is
    recorded on the context. Fields without an ID or name are skipped.
    """
    contexts = {}

    for project, settings in settings_by_project:
        for setting in settings:
            custom_field = setting.field
            if not custom_field.id or not custom_field.name:
                continue

            existing = contexts.get(custom_field.id)
            if existing is not None:
                existing.add_project(project)
                if not existing.field.options and custom_field.options:
                    existing.field.options = list(custom_field.options)
                continue

            context = CustomFieldContext(
                field=replace(custom_field, options=list(custom_field.options or []))
            )
            context.add_project(project)
            contexts[custom_field.id] = context

    return list(contexts.values())


def resolve_field_context(identifier: str, contexts: Sequence[CustomFieldContext]) -> CustomFieldContext:
    """Match a field by exact ID, then by exact case-insensitive name"""
    for context in contexts:
        if context.field.id == identifier:
            return context

    by_name = exact_name_matches(contexts, identifier, lambda c: c.field.name)
    if len(by_name) == 1:
        return by_name[0]

    if len(by_name) > 1:
        candidates = [
            f"{c.field.name} ({c.field.id}) [projects: {', '.join(c.project_names)}]"
            for c in by_name
        ]
        raise AmbiguousError("custom field", identifier, candidates, hint="Use field ID.")

    available_names = list(dict.fromkeys(c.field.name for c in contexts))
    raise NotFoundError(
        "custom field",
        identifier,
        candidates=available_names,
        suggestions=name_suggestions(available_names, identifier),
    )


def resolve_enum_option(custom_field: CustomField, value: str) -> EnumOption:
    """Match an option by exact ID, then by exact case-insensitive name"""
    options = custom_field.options or []

    by_id = [option for option in options if option.id == value]
    if len(by_id) == 1:
        return by_id[0]

    by_name = exact_name_matches(options, value, lambda o: o.name)
    if len(by_name) == 1:
        return by_name[0]

    if len(by_name) > 1:
        raise AmbiguousError(
            "option",
            value,
            [f"{option.name} ({option.id})" for option in by_name],
            scope=f'custom field "{custom_field.name}"',
        )

    raise NotFoundError(
        "option",
        value,
        candidates=[f"{option.name} ({option.id})" for option in options],
        scope=f'custom field "{custom_field.name}"',
    )


def build_mutation(context: CustomFieldContext, values: Sequence[str]) -> ResolvedCustomFieldMutation:
    """Resolve the values of one assignment against its field"""
    custom_field = context.field
    if custom_field.type not in SUPPORTED_FIELD_TYPES:
        raise UnsupportedFieldTypeError(custom_field.id, custom_field.name, custom_field.type)

    if custom_field.type == CustomFieldType.ENUM.value:
        if len(values) > 1:
            raise InvalidFieldValueError(custom_field.name, list(values))

        if not values:
            return ResolvedCustomFieldMutation(
                field_id=custom_field.id,
                field_name=custom_field.name,
                field_type=CustomFieldType.ENUM,
                payload_value=None,
            )

        option = resolve_enum_option(custom_field, values[0])
        return ResolvedCustomFieldMutation(
            field_id=custom_field.id,
            field_name=custom_field.name,
            field_type=CustomFieldType.ENUM,
            payload_value=option.id,
            option_ids=[option.id],
            option_names=[option.name],
        )

    options = dedupe_by_id(
        (resolve_enum_option(custom_field, value) for value in values),
        lambda o: o.id,
    )
    return ResolvedCustomFieldMutation(
        field_id=custom_field.id,
        field_name=custom_field.name,
        field_type=CustomFieldType.MULTI_ENUM,
        payload_value=[option.id for option in options],
        option_ids=[option.id for option in options],
        option_names=[option.name for option in options],
    )


def requested_custom_fields(
    custom_fields: Optional[Iterable[CustomFieldInput]],
    difficulty: Optional[str],
) -> List[CustomFieldInput]:
    """Legacy ``difficulty`` goes first so explicit entries for the same field win"""
    fields = []
    if difficulty:
        fields.append(CustomFieldInput(field=LEGACY_DIFFICULTY_FIELD, values=[difficulty]))
    if custom_fields:
        fields.extend(custom_fields)
    return fields


def to_custom_field_payload(mutations: Sequence[ResolvedCustomFieldMutation]) -> Optional[CustomFieldPayload]:
    """field id -> payload value; later mutations for the same field override earlier ones"""
    if not mutations:
        return None
    return {mutation.field_id: mutation.payload_value for mutation in mutations}


def to_custom_field_results(mutations: Sequence[ResolvedCustomFieldMutation]) -> List[TaskCustomFieldResult]:
    return [
        TaskCustomFieldResult(
            field_id=mutation.field_id,
            field_name=mutation.field_name,
            type=mutation.field_type,
            option_ids=list(mutation.option_ids),
            option_names=list(mutation.option_names),
            status="applied",
        )
        for mutation in mutations
    ]
