"""Parameter schemas and payloads exchanged between device, store and browser.

A device describes each configurable item as a flat JSON object tagged by
``type``. The models below parse that form strictly (no implicit coercion at
creation time) and expose ``with_value`` for the looser, form-friendly
coercion applied to human edits. Every constructed definition satisfies its
own constraints; there is no way to hold an out-of-range value.
"""

from __future__ import annotations

import re
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictInt,
    StrictStr,
    TypeAdapter,
    ValidationError,
    model_validator,
)

from .errors import MalformedSchema

_TRUE_STRINGS = frozenset({"on", "true", "1", "yes"})
_FALSE_STRINGS = frozenset({"off", "false", "0", "no", ""})
_INTEGER_PATTERN = re.compile(r"[+-]?[0-9]+")


class _StrictBaseModel(BaseModel):
    """Base model with strict extra handling."""

    model_config = ConfigDict(extra="forbid")


class Choice(_StrictBaseModel):
    """One entry of a selection parameter: stored value plus display label."""
    value: StrictStr
    title: StrictStr


class _ParameterBase(_StrictBaseModel):
    name: StrictStr = Field(min_length=1)
    title: StrictStr

    def coerce(self, raw: Any) -> Any:
        """Convert a submitted value to this parameter's type, raising ValueError if invalid."""
        raise NotImplementedError

    def with_value(self, raw: Any):
        """Return a copy of this definition carrying the coerced ``raw`` value."""
        return self.model_copy(update={"value": self.coerce(raw)})


class StringParameter(_ParameterBase):
    """Free-form text parameter."""
    type: Literal["string"] = "string"
    value: StrictStr

    def coerce(self, raw: Any) -> str:
        if not isinstance(raw, str):
            raise ValueError("expected a string")
        return raw


class IntegerParameter(_ParameterBase):
    """Integer parameter bounded by an inclusive ``[min, max]`` range."""
    type: Literal["integer"] = "integer"
    min: StrictInt
    max: StrictInt
    value: StrictInt

    @model_validator(mode="after")
    def check_range(self) -> "IntegerParameter":
        if self.min > self.max:
            raise ValueError(f"min {self.min} is greater than max {self.max}")
        if not self.min <= self.value <= self.max:
            raise ValueError(f"value {self.value} is not in range [{self.min}, {self.max}]")
        return self

    def coerce(self, raw: Any) -> int:
        if isinstance(raw, bool):
            raise ValueError("expected an integer")
        if isinstance(raw, int):
            value = raw
        elif isinstance(raw, str):
            text = raw.strip()
            if not _INTEGER_PATTERN.fullmatch(text):
                raise ValueError(f"{raw!r} is not an integer")
            value = int(text)
        else:
            raise ValueError("expected an integer")
        if not self.min <= value <= self.max:
            raise ValueError(f"{value} is not in range [{self.min}, {self.max}]")
        return value


class BoolParameter(_ParameterBase):
    """On/off parameter. Form values such as ``"on"`` are accepted on update."""
    type: Literal["bool"] = "bool"
    value: StrictBool

    def coerce(self, raw: Any) -> bool:
        if isinstance(raw, bool):
            return raw
        # JSON 0 and 1 agree with the form strings "0" and "1".
        if isinstance(raw, int) and raw in (0, 1):
            return raw == 1
        if isinstance(raw, str):
            lowered = raw.strip().lower()
            if lowered in _TRUE_STRINGS:
                return True
            if lowered in _FALSE_STRINGS:
                return False
        raise ValueError("expected a boolean")


class SelectionParameter(_ParameterBase):
    """Parameter restricted to one of an ordered list of options."""
    type: Literal["selection"] = "selection"
    value: StrictStr
    options: List[Choice] = Field(min_length=1)

    @model_validator(mode="after")
    def check_choice(self) -> "SelectionParameter":
        if self.value not in self.option_values():
            raise ValueError(f"value {self.value!r} does not match any option")
        return self

    def option_values(self) -> List[str]:
        return [choice.value for choice in self.options]

    def coerce(self, raw: Any) -> str:
        if not isinstance(raw, str) or raw not in self.option_values():
            raise ValueError(f"{raw!r} does not match any option")
        return raw


ParameterDefinition = Annotated[
    Union[StringParameter, IntegerParameter, BoolParameter, SelectionParameter],
    Field(discriminator="type"),
]

_SCHEMA_ADAPTER: TypeAdapter[List[ParameterDefinition]] = TypeAdapter(List[ParameterDefinition])


def parse_definitions(document: Any) -> List[ParameterDefinition]:
    """Validate a device schema document into an ordered list of definitions.

    Raises MalformedSchema for anything structurally wrong: not a list, an
    unknown ``type``, missing constraint fields, a value outside its own
    constraints, or duplicate parameter names.
    """
    try:
        definitions = _SCHEMA_ADAPTER.validate_python(document)
    except ValidationError as exc:
        raise MalformedSchema(_summarize(exc)) from exc

    seen: set[str] = set()
    for definition in definitions:
        if definition.name in seen:
            raise MalformedSchema(f"duplicate parameter name {definition.name!r}")
        seen.add(definition.name)
    return definitions


def _summarize(exc: ValidationError) -> str:
    """Collapse a pydantic ValidationError into a one-line reason."""
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ()))
        parts.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return "; ".join(parts) or "invalid schema"


class Identity(BaseModel):
    """Independent human-facing ``key`` and device-facing ``secret`` for one session."""
    model_config = ConfigDict(frozen=True)

    key: str
    secret: str


class Values(BaseModel):
    """Full definition set at a given revision; always sent whole, never as a diff."""
    revision: int
    values: List[ParameterDefinition]


class SessionSnapshot(BaseModel):
    """Read-only copy of a session record. Carries neither key nor secret."""
    revision: int
    dirty: bool
    values: List[ParameterDefinition]
    created_at: float
    last_touched_at: float


class UpdateResult(Values):
    """Authoritative state after an accepted edit.

    ``conflict`` is True when the caller's expected revision did not match the
    server's revision at the time the edit was applied.
    """
    conflict: bool = False
    expected_revision: Optional[int] = None
