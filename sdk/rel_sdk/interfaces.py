"""
Capability interfaces for the Rel SDK.

Connection implements DatabaseLifecycle and QueryOperations directly;
administrative operations live on a separate CloudAdmin component reached
through Connection.cloud. Any object with a matching post_transaction can
stand in for the HTTP transport.
"""

from __future__ import annotations

from collections.abc import Awaitable
from typing import Any, Protocol, runtime_checkable

from .result import Outcome
from .transport import RawResponse


@runtime_checkable
class TransactionTransport(Protocol):
    """Performs the network call for a serialized transaction."""

    async def connect(self) -> None: ...

    async def close(self) -> None: ...

    async def post_transaction(self, payload: dict[str, Any]) -> RawResponse: ...


@runtime_checkable
class DatabaseLifecycle(Protocol):
    """Create, clone and open databases."""

    def create_database(
        self, dbname: str, overwrite: bool = False, *, compute_name: str | None = None
    ) -> Awaitable[Outcome]: ...

    def clone_database(
        self,
        clone_name: str,
        source_dbname: str,
        overwrite: bool = False,
        *,
        compute_name: str | None = None,
    ) -> Awaitable[Outcome]: ...

    def connect_to_database(
        self, dbname: str, *, compute_name: str | None = None
    ) -> Awaitable[Outcome]: ...


@runtime_checkable
class QueryOperations(Protocol):
    """Queries and source management within an open database."""

    def query(
        self,
        dbname: str,
        query_string: str,
        outputs: list[str],
        inputs: list[dict[str, Any]] | None = None,
        **kwargs: Any,
    ) -> Awaitable[Outcome]: ...

    def install_source(
        self, dbname: str, source_name: str, source_text: str, source_path: str | None = None, **kwargs: Any
    ) -> Awaitable[Outcome]: ...

    def delete_source(self, dbname: str, source_name: str, **kwargs: Any) -> Awaitable[Outcome]: ...

    def list_sources(self, dbname: str, **kwargs: Any) -> Awaitable[Outcome]: ...

    def list_edb(self, dbname: str, relname: str | None = None, **kwargs: Any) -> Awaitable[Outcome]: ...

    def cardinality(self, dbname: str, relname: str | None = None, **kwargs: Any) -> Awaitable[Outcome]: ...

    def load_data(
        self, dbname: str, relname: str, content_type: str, **kwargs: Any
    ) -> Awaitable[Outcome]: ...


@runtime_checkable
class AdminOperations(Protocol):
    """Compute and database management on a cloud deployment."""

    def list_computes(self, **filters: Any) -> Awaitable[Outcome]: ...

    def create_compute(
        self, name: str, size: str = "XS", region: str | None = None, dryrun: bool = False
    ) -> Awaitable[Outcome]: ...

    def delete_compute(self, name: str, dryrun: bool = False) -> Awaitable[Outcome]: ...

    def list_compute_events(self, compute_id: str) -> Awaitable[Outcome]: ...

    def list_databases(self, **filters: Any) -> Awaitable[Outcome]: ...

    def update_database(
        self,
        name: str,
        default_compute_name: str | None = None,
        remove_default_compute: bool = False,
        dryrun: bool = False,
    ) -> Awaitable[Outcome]: ...

    def remove_default_compute(self, dbname: str) -> Awaitable[Outcome]: ...
