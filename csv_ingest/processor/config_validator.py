"""Builds a ProcessingConfig from a loosely-typed client payload."""

from typing import Any

from csv_ingest.exceptions import ValidationError
from csv_ingest.processor.models import ProcessingConfig

_FIELD_ALIASES = {
    "removeDuplicates": "remove_duplicates",
    "duplicateCheckColumns": "duplicate_check_columns",
    "mergeColumns": "merge_columns",
    "mergeDelimiter": "merge_delimiter",
    "columnMappings": "column_mappings",
}
_KNOWN_FIELDS = frozenset(_FIELD_ALIASES.values())


def config_from_dict(data: dict[str, Any] | None) -> ProcessingConfig:
    """Validate a camelCase or snake_case payload and build a ProcessingConfig.

    Missing or null fields take their defaults.

    Raises:
        ValidationError: on unknown fields or values of the wrong type.
    """
    if data is None:
        return ProcessingConfig()
    if not isinstance(data, dict):
        raise ValidationError("Processing config must be an object")

    values = _normalize_keys(data)
    kwargs: dict[str, Any] = {}

    remove_duplicates = values.get("remove_duplicates")
    if remove_duplicates is not None:
        if not isinstance(remove_duplicates, bool):
            raise ValidationError("'removeDuplicates' must be a boolean")
        kwargs["remove_duplicates"] = remove_duplicates

    for name in ("duplicate_check_columns", "merge_columns"):
        raw = values.get(name)
        if raw is not None:
            kwargs[name] = _ordered_set(raw, name)

    delimiter = values.get("merge_delimiter")
    if delimiter is not None:
        if not isinstance(delimiter, str):
            raise ValidationError("'mergeDelimiter' must be a string")
        kwargs["merge_delimiter"] = delimiter

    mappings = values.get("column_mappings")
    if mappings is not None:
        kwargs["column_mappings"] = _mappings(mappings)

    return ProcessingConfig(**kwargs)


def _normalize_keys(data: dict[str, Any]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for key, value in data.items():
        name = _FIELD_ALIASES.get(key, key)
        if name not in _KNOWN_FIELDS:
            raise ValidationError(f"Unknown processing config field: {key}")
        values[name] = value
    return values


def _ordered_set(raw: Any, name: str) -> tuple[str, ...]:
    if not isinstance(raw, (list, tuple)):
        raise ValidationError(f"'{name}' must be a list of column names")
    seen: dict[str, None] = {}
    for item in raw:
        if not isinstance(item, str):
            raise ValidationError(f"'{name}' must contain only strings")
        seen.setdefault(item, None)
    return tuple(seen)


def _mappings(raw: Any) -> dict[str, str]:
    if not isinstance(raw, dict):
        raise ValidationError("'columnMappings' must be an object")
    for source, target in raw.items():
        if not isinstance(source, str) or not isinstance(target, str):
            raise ValidationError("'columnMappings' keys and values must be strings")
    return dict(raw)
