"""
Parsing of ``--field <Field>=<Value[,Value]>`` assignments.
"""
import re
from typing import Iterable, List, Optional, Union

from pm_core.errors import InvalidFieldAssignmentError
from pm_core.providers.models import CustomFieldInput, ProviderType
from .custom_fields import requested_custom_fields

_ASANA_ID_PATTERN = re.compile(r"^\d+$")


def parse_custom_field_flags(raw_flags: Optional[Iterable[str]]) -> List[CustomFieldInput]:
    """
    Parse raw assignments into CustomFieldInput entries.

    ``Field=`` clears the field. Values are comma-separated and trimmed;
    empty entries are rejected.
    """
    fields = []

    for raw in raw_flags or []:
        assignment = raw.strip()
        field_name, separator, value_part = assignment.partition("=")

        if not separator:
            raise InvalidFieldAssignmentError(raw, "Expected format: <Field>=<Value>.")

        field_name = field_name.strip()
        if not field_name:
            raise InvalidFieldAssignmentError(raw, "Field name or ID cannot be empty.")

        if not value_part:
            fields.append(CustomFieldInput(field=field_name, values=[]))
            continue

        values = [value.strip() for value in value_part.split(",")]
        if any(not value for value in values):
            raise InvalidFieldAssignmentError(
                raw, "Use comma-separated values with no empty entries."
            )

        fields.append(CustomFieldInput(field=field_name, values=values))

    return fields


def merge_legacy_difficulty_field(
    fields: List[CustomFieldInput], difficulty: Optional[str]
) -> List[CustomFieldInput]:
    return requested_custom_fields(fields, difficulty)


def split_id_or_name(value: Optional[str], source: Union[ProviderType, str]) -> dict:
    """
    Decide whether a --project/--section value is an ID or a name.

    Only Asana has recognizable IDs (all digits); everything else is a name.
    """
    if not value:
        return {}

    if ProviderType(source) == ProviderType.ASANA and _ASANA_ID_PATTERN.match(value):
        return {"id": value}

    return {"name": value}
