"""
Rel client for Python SDK.

This module provides the main client interface:
- Connection: High-level operations against the service
- Plan: Multi-action transaction builder

Every public operation validates its arguments and builds its transaction
when called, raising ValidationError immediately on bad input. It returns an
awaitable that performs exactly one round trip and resolves to an Outcome;
transport and service failures arrive in ``Outcome.error``.

Example:
    >>> async with Connection(base_url="http://127.0.0.1:8010") as conn:
    ...     await conn.create_database("db", overwrite=True)
    ...     outcome = await conn.query("db", "def bar = 2", ["bar"])
    ...     outcome.result.actions[0].output[0].columns[0][0]
    2

Invariants:
    - Each transaction carries the last version observed for its database
    - The version cache only moves forward, including after failed round trips
      that still report a version
    - No retries: stale versions and transport errors are returned as-is
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Sequence
from typing import Any

import httpx

from .actions import (
    DEFAULT_ACTION_NAME,
    LabeledAction,
    cardinality_action,
    delete_source_action,
    install_action,
    is_mutating,
    json_load_action,
    list_edb_action,
    list_sources_action,
    load_data_action,
    query_action,
)
from .cloud import CloudAdmin
from .config import Settings
from .errors import TransportError
from .interfaces import TransactionTransport
from .result import Outcome, TransactionResult, normalize_transaction_response
from .transaction import Mode, Transaction, TransactionBuilder
from .transport import HttpTransport
from .version import VersionTracker

logger = logging.getLogger(__name__)


class Plan:
    """Multi-action transaction builder.

    A Plan collects labeled actions that run in one transaction, in the
    order they were added. Action names locate results in the response and
    should be unique within a plan.

    Example:
        >>> plan = conn.transaction("db")
        >>> plan.install_source("install", "defs.rel", "def foo = 1")
        >>> plan.query("check", "def out = foo", ["out"])
        >>> outcome = await plan.commit()
    """

    def __init__(
        self,
        connection: Connection,
        dbname: str,
        *,
        readonly: bool = False,
        mode: Mode = Mode.OPEN,
        compute_name: str | None = None,
    ) -> None:
        """Initialize a plan.

        Args:
            connection: Connection that will send the transaction
            dbname: Target database
            readonly: Read-only flag for the transaction
            mode: Lifecycle mode for the transaction
            compute_name: Optional compute routing
        """
        self._connection = connection
        self._dbname = dbname
        self._readonly = readonly
        self._mode = mode
        self._compute_name = compute_name
        self._actions: list[LabeledAction] = []

    @property
    def actions(self) -> list[LabeledAction]:
        return list(self._actions)

    def add(self, action: LabeledAction) -> Plan:
        """Append a prebuilt labeled action."""
        if any(existing.name == action.name for existing in self._actions):
            logger.warning(f"Duplicate action name '{action.name}' in plan for {self._dbname}")
        if self._readonly and is_mutating(action):
            logger.warning(
                f"Action '{action.name}' ({action.action.type}) modifies state "
                f"but the plan for {self._dbname} is readonly"
            )
        self._actions.append(action)
        return self

    def query(
        self,
        name: str,
        query_string: str,
        outputs: list[str],
        inputs: list[dict[str, Any]] | None = None,
        persist: list[str] | None = None,
    ) -> Plan:
        return self.add(query_action(name, query_string, outputs, inputs, persist))

    def install_source(
        self,
        name: str,
        source_name: str,
        source_text: str,
        source_path: str | None = None,
    ) -> Plan:
        return self.add(install_action(name, source_name, source_text, source_path))

    def delete_source(self, name: str, source_name: str) -> Plan:
        return self.add(delete_source_action(name, source_name))

    def list_sources(self, name: str) -> Plan:
        return self.add(list_sources_action(name))

    def list_edb(self, name: str, relname: str | None = None) -> Plan:
        return self.add(list_edb_action(name, relname))

    def cardinality(self, name: str, relname: str | None = None) -> Plan:
        return self.add(cardinality_action(name, relname))

    def load_data(
        self,
        name: str,
        relname: str,
        content_type: str,
        *,
        data: str | None = None,
        path: str | None = None,
    ) -> Plan:
        return self.add(load_data_action(name, relname, content_type, data=data, path=path))

    def commit(self) -> Awaitable[Outcome]:
        """Send all collected actions as one transaction.

        An empty plan is still sent; the service treats it as a ping.
        """
        return self._connection.run_actions(
            self._dbname,
            self._actions,
            readonly=self._readonly,
            mode=self._mode,
            compute_name=self._compute_name,
        )


class Connection:
    """Connection to the Rel service.

    Holds the per-database version cache for this connection and exposes
    database lifecycle and query operations.

    Example:
        >>> conn = Connection(host="127.0.0.1", port=8010)
        >>> outcome = await conn.connect_to_database("db")
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        transport: TransactionTransport | None = None,
        versions: VersionTracker | None = None,
        **overrides: Any,
    ) -> None:
        """Initialize the connection.

        Args:
            settings: Connection settings (defaults loaded from REL_* env vars)
            transport: Transport to send transactions with; an HttpTransport
                built from settings when omitted
            versions: Version cache to use (a fresh one when omitted)
            **overrides: Settings fields, used when settings is not given
        """
        self._settings = settings if settings is not None else Settings(**overrides)
        self._transport = (
            transport if transport is not None else HttpTransport.from_settings(self._settings)
        )
        self._versions = versions if versions is not None else VersionTracker()
        self._builder = TransactionBuilder(self._versions)
        self._write_locks: dict[str, asyncio.Lock] = {}
        self._write_waiters: dict[str, int] = {}
        self._cloud: CloudAdmin | None = None

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def transport(self) -> TransactionTransport:
        return self._transport

    @property
    def versions(self) -> VersionTracker:
        return self._versions

    @property
    def builder(self) -> TransactionBuilder:
        return self._builder

    @property
    def cloud(self) -> CloudAdmin:
        """Administrative operations (cloud deployments only)."""
        if self._cloud is None:
            if not isinstance(self._transport, HttpTransport):
                raise TypeError("Cloud administration requires an HttpTransport")
            self._cloud = CloudAdmin(self._transport, self._settings)
        return self._cloud

    async def connect(self) -> None:
        """Open the transport."""
        await self._transport.connect()

    async def close(self) -> None:
        """Close the transport."""
        await self._transport.close()

    async def __aenter__(self) -> Connection:
        await self.connect()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    def get_transaction_version(self, dbname: str) -> int:
        """Last version observed for ``dbname`` (0 if none)."""
        return self._versions.get(dbname)

    def set_transaction_version(self, dbname: str, version: int) -> None:
        """Override the cached version for ``dbname``.

        The next transaction against ``dbname`` is stamped with it. Setting a
        value the service has not reached makes that transaction stale.
        """
        self._versions.set(dbname, version)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def transaction(
        self,
        dbname: str,
        *,
        readonly: bool = False,
        mode: Mode = Mode.OPEN,
        compute_name: str | None = None,
    ) -> Plan:
        """Start a multi-action transaction plan against ``dbname``."""
        return Plan(self, dbname, readonly=readonly, mode=mode, compute_name=compute_name)

    def run_actions(
        self,
        dbname: str,
        actions: Sequence[LabeledAction],
        *,
        readonly: bool,
        mode: Mode = Mode.OPEN,
        compute_name: str | None = None,
        source_dbname: str | None = None,
    ) -> Awaitable[Outcome]:
        """Run ``actions`` as a single transaction against ``dbname``.

        Raises:
            ValidationError: If the transaction cannot be built
        """
        transaction = self._builder.build(
            dbname,
            actions,
            readonly=readonly,
            mode=mode,
            compute_name=self._compute(compute_name),
            source_dbname=source_dbname,
        )
        return self._execute(transaction)

    def run_action(
        self,
        dbname: str,
        action: LabeledAction,
        *,
        readonly: bool,
        mode: Mode = Mode.OPEN,
        compute_name: str | None = None,
    ) -> Awaitable[Outcome]:
        return self.run_actions(
            dbname, [action], readonly=readonly, mode=mode, compute_name=compute_name
        )

    # ------------------------------------------------------------------
    # Queries and sources
    # ------------------------------------------------------------------

    def query(
        self,
        dbname: str,
        query_string: str,
        outputs: list[str],
        inputs: list[dict[str, Any]] | None = None,
        *,
        readonly: bool = True,
        persist: list[str] | None = None,
        compute_name: str | None = None,
        action_name: str = DEFAULT_ACTION_NAME,
    ) -> Awaitable[Outcome]:
        """Query the database ``dbname``.

        Args:
            dbname: Database to query
            query_string: Query source, passed verbatim
            outputs: Relation names to return (must be non-empty)
            inputs: Relations loaded as query input
            readonly: Set False for a write query
            persist: Relations to persist; forces a write transaction
            compute_name: Optional compute routing
            action_name: Label of the query action

        Returns:
            Awaitable resolving to an Outcome whose result is a TransactionResult

        Raises:
            ValidationError: If outputs is empty or arguments are malformed
        """
        action = query_action(action_name, query_string, outputs, inputs, persist)
        if persist:
            readonly = False
        return self.run_action(dbname, action, readonly=readonly, compute_name=compute_name)

    def install_source(
        self,
        dbname: str,
        source_name: str,
        source_text: str,
        source_path: str | None = None,
        *,
        compute_name: str | None = None,
        action_name: str = DEFAULT_ACTION_NAME,
    ) -> Awaitable[Outcome]:
        """Install ``source_text`` as ``source_name`` (path defaults to the name)."""
        action = install_action(action_name, source_name, source_text, source_path)
        return self.run_action(dbname, action, readonly=False, compute_name=compute_name)

    def delete_source(
        self,
        dbname: str,
        source_name: str,
        *,
        compute_name: str | None = None,
        action_name: str = DEFAULT_ACTION_NAME,
    ) -> Awaitable[Outcome]:
        action = delete_source_action(action_name, source_name)
        return self.run_action(dbname, action, readonly=False, compute_name=compute_name)

    def list_sources(
        self,
        dbname: str,
        *,
        compute_name: str | None = None,
        action_name: str = DEFAULT_ACTION_NAME,
    ) -> Awaitable[Outcome]:
        action = list_sources_action(action_name)
        return self.run_action(dbname, action, readonly=True, compute_name=compute_name)

    def list_edb(
        self,
        dbname: str,
        relname: str | None = None,
        *,
        compute_name: str | None = None,
        action_name: str = DEFAULT_ACTION_NAME,
    ) -> Awaitable[Outcome]:
        """List base relations, optionally only those named ``relname``."""
        action = list_edb_action(action_name, relname)
        return self.run_action(dbname, action, readonly=True, compute_name=compute_name)

    def cardinality(
        self,
        dbname: str,
        relname: str | None = None,
        *,
        compute_name: str | None = None,
        action_name: str = DEFAULT_ACTION_NAME,
    ) -> Awaitable[Outcome]:
        """Tuple counts for ``relname``, or for every relation when omitted."""
        action = cardinality_action(action_name, relname)
        return self.run_action(dbname, action, readonly=True, compute_name=compute_name)

    def load_data(
        self,
        dbname: str,
        relname: str,
        content_type: str,
        *,
        data: str | None = None,
        path: str | None = None,
        key: list[str] | None = None,
        compute_name: str | None = None,
        action_name: str = DEFAULT_ACTION_NAME,
    ) -> Awaitable[Outcome]:
        """Load external data (inline ``data`` or a service-side ``path``) into ``relname``."""
        action = load_data_action(
            action_name, relname, content_type, data=data, path=path, key=key
        )
        return self.run_action(dbname, action, readonly=False, compute_name=compute_name)

    def load_json(
        self,
        dbname: str,
        relname: str,
        *,
        data: str | None = None,
        path: str | None = None,
        compute_name: str | None = None,
        action_name: str = DEFAULT_ACTION_NAME,
    ) -> Awaitable[Outcome]:
        action = json_load_action(action_name, relname, data=data, path=path)
        return self.run_action(dbname, action, readonly=False, compute_name=compute_name)

    # ------------------------------------------------------------------
    # Database lifecycle
    # ------------------------------------------------------------------

    def create_database(
        self,
        dbname: str,
        overwrite: bool = False,
        *,
        compute_name: str | None = None,
    ) -> Awaitable[Outcome]:
        """Create ``dbname``; with ``overwrite`` an existing database is reset.

        Without ``overwrite``, creating an existing database resolves to a
        DatabaseExistsError.
        """
        mode = Mode.CREATE_OVERWRITE if overwrite else Mode.CREATE
        return self.run_actions(dbname, [], readonly=False, mode=mode, compute_name=compute_name)

    def clone_database(
        self,
        clone_name: str,
        source_dbname: str,
        overwrite: bool = False,
        *,
        compute_name: str | None = None,
    ) -> Awaitable[Outcome]:
        """Create ``clone_name`` with the state of ``source_dbname``.

        Raises:
            ValidationError: If source_dbname is empty
        """
        mode = Mode.CLONE_OVERWRITE if overwrite else Mode.CLONE
        return self.run_actions(
            clone_name,
            [],
            readonly=False,
            mode=mode,
            compute_name=compute_name,
            source_dbname=source_dbname,
        )

    def connect_to_database(
        self,
        dbname: str,
        *,
        compute_name: str | None = None,
    ) -> Awaitable[Outcome]:
        """Ping ``dbname``; refreshes the cached version on success."""
        return self.run_actions(dbname, [], readonly=True, mode=Mode.OPEN, compute_name=compute_name)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _compute(self, compute_name: str | None) -> str | None:
        return compute_name if compute_name is not None else self._settings.default_compute_name

    async def _execute(self, transaction: Transaction) -> Outcome:
        if transaction.readonly or not self._settings.serialize_writes:
            return await self._round_trip(transaction)

        # One lock per database with queued writes; dropped once the last
        # writer releases it
        dbname = transaction.dbname
        lock = self._write_locks.get(dbname)
        if lock is None:
            lock = self._write_locks[dbname] = asyncio.Lock()
        self._write_waiters[dbname] = self._write_waiters.get(dbname, 0) + 1
        try:
            async with lock:
                return await self._round_trip(transaction)
        finally:
            remaining = self._write_waiters[dbname] - 1
            if remaining:
                self._write_waiters[dbname] = remaining
            else:
                del self._write_waiters[dbname]
                del self._write_locks[dbname]

    @staticmethod
    def _transport_failure(exc: Exception) -> TransportError:
        error = TransportError(f"Request failed: {exc}", details={"exception": type(exc).__name__})
        error.__cause__ = exc
        return error

    async def _round_trip(self, transaction: Transaction) -> Outcome:
        dbname = transaction.dbname
        # Re-read the version at dispatch; earlier writes may have advanced it
        current = self._versions.get(dbname)
        if current != transaction.version:
            transaction = transaction.model_copy(update={"version": current})

        logger.debug(
            f"Sending transaction db={dbname} mode={transaction.mode.value} "
            f"readonly={transaction.readonly} version={transaction.version} "
            f"actions={[a.name for a in transaction.actions]}"
        )

        try:
            raw = await self._transport.post_transaction(transaction.to_wire())
        except (httpx.HTTPError, OSError) as e:
            logger.warning(f"Transaction on {dbname} failed before a response: {e!r}")
            return Outcome(error=self._transport_failure(e))
        except Exception as e:
            # Custom transports may raise anything; it still resolves into the outcome
            logger.exception(f"Transport raised unexpectedly for {dbname}: {e!r}")
            return Outcome(error=self._transport_failure(e))

        outcome = normalize_transaction_response(transaction, raw)
        if isinstance(outcome.result, TransactionResult):
            self._builder.apply_response(dbname, outcome.result.version)

        if outcome.error is not None:
            logger.warning(
                f"Transaction on {dbname} failed: {outcome.error.code} {outcome.error.message}"
            )
        return outcome
