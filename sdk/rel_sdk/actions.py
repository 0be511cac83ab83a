"""
Action types and factories for the Rel SDK.

An action is one sub-operation inside a transaction. There are exactly
seven kinds, modelled as a closed union discriminated by the wire ``type``
field:

- QueryAction: run query source and return ``outputs``
- InstallAction: install a named program source
- ModifyWorkspaceAction: delete installed sources
- ListSourceAction: list installed sources
- ListEdbAction: list base (EDB) relations
- CardinalityAction: count tuples per relation
- LoadDataAction: load external data into a relation

Each action travels wrapped in a LabeledAction whose name locates its result
in the response.

Invariants:
    - Models forbid extra fields, so no action carries another kind's fields
    - Factories are pure: no I/O, no shared state
    - Malformed input raises ValidationError, never a partial action

Example:
    >>> action = query_action("bar", "def bar = 2", ["bar"])
    >>> action.action.type
    'QueryAction'
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, StrictStr, model_validator
from pydantic import ValidationError as PydanticValidationError

from .errors import ValidationError

DEFAULT_ACTION_NAME = "action"
QUERY_SOURCE_NAME = "query"
JSON_CONTENT_TYPE = "application/json"


class WireModel(BaseModel):
    """Base for request-side wire shapes."""

    model_config = ConfigDict(extra="forbid")


class Source(WireModel):
    """A named piece of program source."""

    type: Literal["Source"] = "Source"
    name: StrictStr
    path: StrictStr = ""
    value: StrictStr


class QueryAction(WireModel):
    type: Literal["QueryAction"] = "QueryAction"
    source: Source
    outputs: list[StrictStr] = Field(default_factory=list)
    inputs: list[dict[str, Any]] = Field(default_factory=list)
    persist: list[StrictStr] = Field(default_factory=list)


class InstallAction(WireModel):
    type: Literal["InstallAction"] = "InstallAction"
    sources: list[Source]


class ModifyWorkspaceAction(WireModel):
    type: Literal["ModifyWorkspaceAction"] = "ModifyWorkspaceAction"
    delete_source: list[StrictStr]


class ListSourceAction(WireModel):
    type: Literal["ListSourceAction"] = "ListSourceAction"


class ListEdbAction(WireModel):
    type: Literal["ListEdbAction"] = "ListEdbAction"
    relname: StrictStr | None = None


class CardinalityAction(WireModel):
    type: Literal["CardinalityAction"] = "CardinalityAction"
    relname: StrictStr | None = None


class LoadData(WireModel):
    """External data payload: inline ``data`` or a server-side ``path``."""

    type: Literal["LoadData"] = "LoadData"
    content_type: StrictStr
    data: StrictStr | None = None
    path: StrictStr | None = None
    key: list[StrictStr] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_one_source(self) -> LoadData:
        if (self.data is None) == (self.path is None):
            raise ValueError("exactly one of data or path must be given")
        return self


class LoadDataAction(WireModel):
    type: Literal["LoadDataAction"] = "LoadDataAction"
    rel: StrictStr
    value: LoadData


Action = Annotated[
    Union[
        QueryAction,
        InstallAction,
        ModifyWorkspaceAction,
        ListSourceAction,
        ListEdbAction,
        CardinalityAction,
        LoadDataAction,
    ],
    Field(discriminator="type"),
]

# Kinds whose execution changes database state; readonly transactions
# must not contain them (caller contract, not enforced).
MUTATING_ACTION_TYPES = frozenset({"InstallAction", "ModifyWorkspaceAction", "LoadDataAction"})


class LabeledAction(WireModel):
    """An action paired with the name used to find its result."""

    type: Literal["LabeledAction"] = "LabeledAction"
    name: StrictStr = Field(default=DEFAULT_ACTION_NAME, min_length=1)
    action: Action


M = TypeVar("M", bound=BaseModel)


def format_errors(exc: PydanticValidationError) -> list[str]:
    """Flatten pydantic errors into ``field: message`` strings."""
    errors = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err["loc"]) or "value"
        errors.append(f"{loc}: {err['msg']}")
    return errors


def build_model(model: type[M], **fields: Any) -> M:
    """Construct a wire model, converting pydantic failures to ValidationError."""
    try:
        return model(**fields)
    except PydanticValidationError as e:
        errors = format_errors(e)
        raise ValidationError(
            f"Invalid {model.__name__}: {'; '.join(errors)}",
            errors=errors,
        ) from e


def _require_text(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value:
        raise ValidationError(f"{field_name} must be a non-empty string", field_name=field_name)
    return value


def _optional_relname(relname: str | None) -> str | None:
    # An empty relation name means "all relations"
    if relname is None or relname == "":
        return None
    if not isinstance(relname, str):
        raise ValidationError("relname must be a string", field_name="relname")
    return relname


def label(name: str | None, action: Any) -> LabeledAction:
    """Wrap an action under ``name`` (DEFAULT_ACTION_NAME when omitted)."""
    return build_model(
        LabeledAction,
        name=DEFAULT_ACTION_NAME if name is None else name,
        action=action,
    )


def query_action(
    name: str | None,
    source: str,
    outputs: list[str],
    inputs: list[dict[str, Any]] | None = None,
    persist: list[str] | None = None,
) -> LabeledAction:
    """Build a query action.

    Args:
        name: Action name
        source: Query source, passed verbatim
        outputs: Relation names to return (must be non-empty)
        inputs: Relations supplied as query input
        persist: Relation names to persist

    Returns:
        LabeledAction wrapping a QueryAction

    Raises:
        ValidationError: If outputs is empty or an argument is malformed
    """
    if not isinstance(outputs, (list, tuple)) or len(outputs) == 0:
        raise ValidationError("outputs must be non-empty", field_name="outputs")
    if not isinstance(source, str):
        raise ValidationError("source must be a string", field_name="source")

    query_source = build_model(Source, name=QUERY_SOURCE_NAME, path="", value=source)
    action = build_model(
        QueryAction,
        source=query_source,
        outputs=list(outputs),
        inputs=list(inputs or []),
        persist=list(persist or []),
    )
    return label(name, action)


def install_action(
    name: str | None,
    source_name: str,
    source_text: str,
    source_path: str | None = None,
) -> LabeledAction:
    """Build an action installing ``source_text`` as ``source_name``.

    ``source_path`` defaults to ``source_name``.
    """
    _require_text(source_name, "source_name")
    _require_text(source_text, "source_text")

    source = build_model(
        Source,
        name=source_name,
        path=source_path if source_path else source_name,
        value=source_text,
    )
    return label(name, build_model(InstallAction, sources=[source]))


def delete_source_action(name: str | None, source_name: str) -> LabeledAction:
    """Build an action deleting the installed source ``source_name``."""
    _require_text(source_name, "source_name")
    return label(name, build_model(ModifyWorkspaceAction, delete_source=[source_name]))


def list_sources_action(name: str | None = None) -> LabeledAction:
    return label(name, ListSourceAction())


def list_edb_action(name: str | None, relname: str | None = None) -> LabeledAction:
    return label(name, build_model(ListEdbAction, relname=_optional_relname(relname)))


def cardinality_action(name: str | None, relname: str | None = None) -> LabeledAction:
    return label(name, build_model(CardinalityAction, relname=_optional_relname(relname)))


def load_data_action(
    name: str | None,
    relname: str,
    content_type: str,
    *,
    data: str | None = None,
    path: str | None = None,
    key: list[str] | None = None,
) -> LabeledAction:
    """Build an action loading external data into ``relname``.

    Exactly one of ``data`` (inline content) or ``path`` (location readable
    by the service) must be given.
    """
    _require_text(relname, "relname")
    _require_text(content_type, "content_type")

    value = build_model(
        LoadData,
        content_type=content_type,
        data=data,
        path=path,
        key=list(key or []),
    )
    return label(name, build_model(LoadDataAction, rel=relname, value=value))


def json_load_action(
    name: str | None,
    relname: str,
    *,
    data: str | None = None,
    path: str | None = None,
) -> LabeledAction:
    return load_data_action(name, relname, JSON_CONTENT_TYPE, data=data, path=path)


def is_mutating(labeled: LabeledAction) -> bool:
    """Whether the action changes database state when executed."""
    action = labeled.action
    if action.type in MUTATING_ACTION_TYPES:
        return True
    return isinstance(action, QueryAction) and bool(action.persist)
