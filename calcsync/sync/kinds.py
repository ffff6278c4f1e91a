"""Record kinds handled by the sync engine and their payload shapes."""

import copy
import json
from enum import Enum
from typing import Any, Mapping

from .exceptions import InvalidArgument


class RecordKind(str, Enum):
    """The entity collections that take part in sync."""

    CALCULATION_RECORD = "calculation_record"
    PARAMETER_SET = "parameter_set"

    @classmethod
    def parse(cls, value: "str | RecordKind") -> "RecordKind":
        """Resolve a wire value into a kind.

        Raises:
            InvalidArgument: If the value names no known kind
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise InvalidArgument(f"Unsupported record type: {value}") from None

    @property
    def label(self) -> str:
        return self.value.replace("_", " ")


# field name -> (expected type, default factory)
PAYLOAD_FIELDS: dict[RecordKind, dict[str, tuple[type, Any]]] = {
    RecordKind.CALCULATION_RECORD: {
        "calculation_type": (str, str),
        "parameters": (dict, dict),
        "results": (dict, dict),
    },
    RecordKind.PARAMETER_SET: {
        "name": (str, str),
        "calculation_type": (str, str),
        "parameters": (dict, dict),
        "is_preset": (bool, bool),
    },
}


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def parse_document(value: Any, field: str = "payload") -> dict:
    """Accept a JSON object or a JSON-encoded string holding one."""
    if isinstance(value, str):
        try:
            value = json.loads(value) if value.strip() else {}
        except json.JSONDecodeError as e:
            raise InvalidArgument(f"Malformed {field}: {e}") from e
    if not isinstance(value, dict):
        raise InvalidArgument(f"Malformed {field}: expected a JSON object")
    return value


def normalize_payload(kind: RecordKind, data: Mapping[str, Any]) -> dict[str, Any]:
    """Build the complete payload for ``kind`` from wire data.

    Keys may be snake_case or camelCase. Missing fields take their
    defaults and unknown keys are dropped, so the result always replaces
    a stored payload as a whole.

    Raises:
        InvalidArgument: If a field has the wrong type or a document
            field is not a JSON object
    """
    payload = {}
    for field, (expected, default) in PAYLOAD_FIELDS[kind].items():
        if field in data:
            value = data[field]
        elif _camel(field) in data:
            value = data[_camel(field)]
        else:
            payload[field] = default()
            continue

        if expected is dict:
            value = copy.deepcopy(parse_document(value, field))
        elif value is None:
            value = default()
        elif not isinstance(value, expected):
            raise InvalidArgument(
                f"Malformed {field}: expected {expected.__name__}, "
                f"got {type(value).__name__}"
            )
        payload[field] = value
    return payload


def has_payload_fields(kind: RecordKind, data: Mapping[str, Any]) -> bool:
    """Whether ``data`` names at least one payload field of ``kind``."""
    return any(
        field in data or _camel(field) in data for field in PAYLOAD_FIELDS[kind]
    )
