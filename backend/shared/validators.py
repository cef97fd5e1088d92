"""Shared validation helpers for service settings."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from pydantic_settings import EnvSettingsSource

if TYPE_CHECKING:
    from pydantic.fields import FieldInfo


def parse_int_list(value: str | list[int], *, allow_empty: bool = False) -> list[int]:
    """Parse an integer list from environment variable or config value.

    Accepts:
    - A list of integers (returned as-is)
    - A JSON array string: '[216, 212]'
    - A comma-separated string: '216,212'

    Raises ValueError for empty string values, non-integer items or malformed JSON.
    When allow_empty is False (default), also rejects empty lists.
    """
    if isinstance(value, list):
        if not allow_empty and not value:
            raise ValueError("Integer list value must not be empty")
        return value

    stripped = value.strip()
    if not stripped:
        raise ValueError("Integer list value must not be empty")

    if stripped.startswith("["):
        try:
            parsed = json.loads(stripped)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON array: {e}") from e
        if not isinstance(parsed, list) or not all(isinstance(item, int) for item in parsed):
            raise ValueError("JSON value must be an array of integers")
        result = parsed
    else:
        try:
            result = [int(item) for item in stripped.split(",") if item.strip()]
        except ValueError as e:
            raise ValueError(f"Invalid integer list {value!r}") from e

    if not allow_empty and not result:
        raise ValueError("Integer list value must not be empty")
    return result


class IntListEnvSettingsSource(EnvSettingsSource):
    """Env settings source that passes integer-list fields as raw strings to validators.

    pydantic-settings tries to JSON-decode list-typed fields from env vars before
    validators run. This subclass bypasses that for the named fields so the
    parse_int_list validator handles both JSON and CSV formats.
    """

    def __init__(self, settings_cls: Any, list_fields: frozenset[str]) -> None:  # noqa: ANN401
        super().__init__(settings_cls)
        self._list_fields = list_fields

    def prepare_field_value(
        self,
        field_name: str,
        field: FieldInfo,
        value: Any,  # noqa: ANN401
        value_is_complex: bool,  # noqa: FBT001
    ) -> Any:  # noqa: ANN401
        if field_name in self._list_fields and isinstance(value, str):
            return value
        return super().prepare_field_value(field_name, field, value, value_is_complex)
