"""Module layer — Configuration binder.

Turns the opaque configuration payload a client sent for a module (at
initialize time) or an action (at act time) into a typed pydantic model.

Binding runs in three phases:

  1. **Defaults** — a baseline instance is built from the model's field
     defaults; if it implements :class:`Defaulter`, ``apply_defaults()`` runs
     next.
  2. **Decode** — the payload is decoded and overlaid on the baseline.  Only
     fields present in the payload are overwritten.
  3. **Validate** — pydantic constraints run on the merged value; if the
     result implements :class:`Validator`, ``validate_config()`` runs last.

Failures in phase 2 raise :class:`~pihub.exceptions.DecodeError`; failures
in phase 3 raise :class:`~pihub.exceptions.ConfigValidationError`.  Both are
input errors.
"""

from __future__ import annotations

import json
from typing import Any, Protocol, TypeVar, runtime_checkable

from pydantic import AliasChoices, BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

from pihub.exceptions import ConfigValidationError, DecodeError

ModelT = TypeVar("ModelT", bound=BaseModel)

# pydantic error types that mean "the payload has the wrong shape".
_DECODE_ERROR_TYPES = frozenset({"extra_forbidden", "json_invalid", "model_type", "model_attributes_type"})


class BindModel(BaseModel):
    """Base for driver configuration and request models.

    Unknown keys are ignored and aliased fields also accept their Python
    name, so baseline values can be overlaid by field name.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


@runtime_checkable
class Defaulter(Protocol):
    """Configuration types that compute baseline values before decoding."""

    def apply_defaults(self) -> None: ...


@runtime_checkable
class Validator(Protocol):
    """Configuration types with semantic checks beyond field constraints.

    ``validate_config`` raises ``ValueError`` to reject the value.
    """

    def validate_config(self) -> None: ...


class ConfigBinder:
    """Binds one opaque payload.

    The payload is either raw JSON text as ``bytes``, an already-decoded
    JSON tree, or ``None``.  A ``str`` is a JSON string value, never text to
    parse.  The payload is kept untouched until a driver asks for it.
    """

    def __init__(self, payload: Any = None) -> None:
        self._payload = payload

    def __repr__(self) -> str:
        return f"ConfigBinder({self._payload!r})"

    @property
    def payload(self) -> Any:
        return self._payload

    def decode(self) -> Any:
        """Return the payload as a JSON tree (``None`` for empty text)."""
        payload = self._payload
        if not isinstance(payload, (bytes, bytearray)):
            return payload
        try:
            text = bytes(payload).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodeError(f"Configuration is not valid UTF-8: {exc}") from exc
        if not text.strip():
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise DecodeError(f"Configuration is not valid JSON: {exc}") from exc

    def bind(self, target: type[ModelT]) -> ModelT:
        """Run the default → decode → validate pipeline into *target*."""
        baseline = target.model_construct()
        if isinstance(baseline, Defaulter):
            baseline.apply_defaults()

        data = self.decode()
        if data is None or (isinstance(data, str) and not data.strip()):
            data = {}
        if not isinstance(data, dict):
            raise DecodeError(
                f"Configuration for {target.__name__} must be a JSON object, "
                f"got {type(data).__name__}"
            )

        merged = _overlay(target, baseline, data)
        try:
            bound = target.model_validate(merged)
        except PydanticValidationError as exc:
            errors = exc.errors(include_url=False, include_context=False)
            message = f"Invalid configuration for {target.__name__}: {_summarise(errors)}"
            if any(_is_decode_error(e["type"]) for e in errors):
                raise DecodeError(message, errors=_jsonable(errors)) from exc
            raise ConfigValidationError(message, errors=_jsonable(errors)) from exc

        if isinstance(bound, Validator):
            try:
                bound.validate_config()
            except ValueError as exc:
                raise ConfigValidationError(
                    f"Invalid configuration for {target.__name__}: {exc}"
                ) from exc
        return bound


def _payload_keys(name: str, field: Any) -> set[str]:
    keys = {name}
    if field.alias:
        keys.add(field.alias)
    if isinstance(field.validation_alias, str):
        keys.add(field.validation_alias)
    elif isinstance(field.validation_alias, AliasChoices):
        keys.update(c for c in field.validation_alias.choices if isinstance(c, str))
    return keys


def _overlay(target: type[BaseModel], baseline: BaseModel, data: dict[str, Any]) -> dict[str, Any]:
    """Baseline field values for every field the payload does not mention, then the payload."""
    merged: dict[str, Any] = {}
    for name, field in target.model_fields.items():
        if name not in baseline.__dict__:
            continue
        if _payload_keys(name, field).isdisjoint(data):
            merged[name] = baseline.__dict__[name]
    merged.update(data)
    return merged


def _is_decode_error(error_type: str) -> bool:
    return (
        error_type in _DECODE_ERROR_TYPES
        or error_type.endswith("_type")
        or error_type.endswith("_parsing")
    )


def _summarise(errors: list[Any]) -> str:
    parts = []
    for e in errors:
        loc = ".".join(str(p) for p in e.get("loc", ())) or "<root>"
        parts.append(f"{loc}: {e.get('msg', '')}")
    return "; ".join(parts)


def _jsonable(errors: list[Any]) -> list[dict[str, Any]]:
    return [
        {"loc": [str(p) for p in e.get("loc", ())], "type": e.get("type"), "msg": e.get("msg")}
        for e in errors
    ]
