"""
Transaction results and outcome normalization.

This module provides:
- Response schemas: TransactionResult, LabeledActionResult, Relation, Problem
- Outcome: The uniform ``{error, result}`` value every operation resolves to
- normalize_transaction_response: Turns a raw transport response into an Outcome

Invariants:
    - Transport and server failures are returned in Outcome.error, never raised
    - A failed round trip still exposes whatever result the service sent,
      including ``aborted`` and ``problems``
    - Non-fatal problems on a successful response are data, not errors
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from .errors import (
    DatabaseExistsError,
    DatabaseNotFoundError,
    StaleVersionError,
    TransactionAbortedError,
    TransportError,
)

if TYPE_CHECKING:
    from .transaction import Transaction
    from .transport import RawResponse


class ResponseModel(BaseModel):
    """Base for response-side wire shapes; unknown fields are kept."""

    model_config = ConfigDict(extra="allow")


class RelKey(ResponseModel):
    type: str | None = None
    name: str = ""
    keys: list[Any] = Field(default_factory=list)
    values: list[Any] = Field(default_factory=list)


class Relation(ResponseModel):
    """A relation in column-major form."""

    type: str | None = None
    rel_key: RelKey | None = None
    columns: list[list[Any]] = Field(default_factory=list)

    @property
    def name(self) -> str | None:
        return self.rel_key.name if self.rel_key else None

    def rows(self) -> list[tuple[Any, ...]]:
        """Tuples in row-major form."""
        return list(zip(*self.columns))


class Problem(ResponseModel):
    """A diagnostic attached to a transaction result."""

    type: str | None = None
    error_code: str | None = None
    message: str | None = None
    is_error: bool | None = None
    is_exception: bool | None = None
    path: str | None = None
    report: str | None = None


class InstalledSource(ResponseModel):
    type: str | None = None
    name: str = ""
    path: str = ""
    value: str = ""


class LabeledActionResult(ResponseModel):
    """Result of one labeled action.

    ``result`` is kept as the raw mapping; the typed accessors below read the
    field each action kind populates.
    """

    type: str | None = None
    name: str | None = None
    result: dict[str, Any] = Field(default_factory=dict)

    @property
    def output(self) -> list[Relation]:
        """Query outputs."""
        return [Relation.model_validate(r) for r in self.result.get("output") or []]

    @property
    def relations(self) -> list[Relation]:
        """Cardinality results."""
        return [Relation.model_validate(r) for r in self.result.get("result") or []]

    @property
    def sources(self) -> list[InstalledSource]:
        return [InstalledSource.model_validate(s) for s in self.result.get("sources") or []]

    @property
    def rels(self) -> list[RelKey]:
        """Base relations listed by a list-EDB action."""
        return [RelKey.model_validate(r) for r in self.result.get("rels") or []]


class TransactionResult(ResponseModel):
    """The service's answer to a transaction."""

    type: str | None = None
    version: int | None = None
    aborted: bool = False
    problems: list[Problem] = Field(default_factory=list)
    actions: list[LabeledActionResult] = Field(default_factory=list)
    output: list[Relation] = Field(default_factory=list)

    def action(self, name: str) -> LabeledActionResult | None:
        """Find an action result by label."""
        for item in self.actions:
            if item.name == name:
                return item
        return None


@dataclass
class Outcome:
    """Uniform result of a single round trip.

    Attributes:
        error: Transport or service failure, None on success
        result: Parsed response (may be present alongside an error)
        status_code: HTTP status, None if the request never completed
    """

    error: TransportError | None = None
    result: Any = None
    status_code: int | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def problems(self) -> list[Problem]:
        if isinstance(self.result, TransactionResult):
            return self.result.problems
        return []

    def raise_for_error(self) -> Outcome:
        """Raise the carried error, if any; otherwise return self."""
        if self.error is not None:
            raise self.error
        return self


def parse_transaction_result(body: Any) -> TransactionResult | None:
    if not isinstance(body, dict):
        return None
    try:
        return TransactionResult.model_validate(body)
    except PydanticValidationError:
        return None


def _failure_message(raw: RawResponse, result: TransactionResult | None) -> str:
    if result is not None:
        for problem in result.problems:
            if problem.message:
                return problem.message
    if raw.error:
        return raw.error
    return f"HTTP {raw.status_code}"


def classify_failure(
    transaction: Transaction,
    raw: RawResponse,
    result: TransactionResult | None,
) -> TransportError:
    """Pick the TransportError subclass describing a non-2xx response."""
    status = raw.status_code
    message = _failure_message(raw, result)
    server_version = result.version if result is not None else None

    # A missing database reports version 0, so 404 wins over the version rule
    if status == 404:
        missing = transaction.source_dbname if transaction.mode.is_clone else transaction.dbname
        return DatabaseNotFoundError(missing or transaction.dbname, status_code=status, url=raw.url)

    if status == 409 or (server_version is not None and server_version < transaction.version):
        return StaleVersionError(
            message,
            dbname=transaction.dbname,
            requested_version=transaction.version,
            server_version=server_version,
            status_code=status,
            url=raw.url,
        )

    aborted = result is not None and result.aborted
    if aborted and transaction.mode.creates and not transaction.actions:
        return DatabaseExistsError(transaction.dbname, status_code=status, url=raw.url)

    if aborted:
        return TransactionAbortedError(message, status_code=status, url=raw.url)

    return TransportError(message, status_code=status, url=raw.url)


def normalize_transaction_response(transaction: Transaction, raw: RawResponse) -> Outcome:
    """Convert a raw transport response into an Outcome."""
    if raw.status_code is None:
        return Outcome(error=TransportError(raw.error or "Request failed", url=raw.url))

    result = parse_transaction_result(raw.body)

    if raw.is_success:
        if result is None:
            return Outcome(
                error=TransportError(
                    "Malformed transaction response",
                    status_code=raw.status_code,
                    url=raw.url,
                    code="MALFORMED_RESPONSE",
                ),
                status_code=raw.status_code,
            )
        return Outcome(result=result, status_code=raw.status_code)

    return Outcome(
        error=classify_failure(transaction, raw, result),
        result=result,
        status_code=raw.status_code,
    )


def normalize_response(raw: RawResponse) -> Outcome:
    """Outcome for non-transaction calls; the body is returned as-is."""
    if raw.status_code is None:
        return Outcome(error=TransportError(raw.error or "Request failed", url=raw.url))
    if raw.is_success:
        return Outcome(result=raw.body, status_code=raw.status_code)

    message = raw.error or f"HTTP {raw.status_code}"
    if isinstance(raw.body, dict) and isinstance(raw.body.get("message"), str):
        message = raw.body["message"]
    return Outcome(
        error=TransportError(message, status_code=raw.status_code, url=raw.url),
        result=raw.body,
        status_code=raw.status_code,
    )
