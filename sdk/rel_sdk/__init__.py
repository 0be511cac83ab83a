"""
Rel Python SDK - Client library for the Rel transactional query service.

This SDK provides an async interface to a Rel server:
- Connection for database lifecycle, queries and source management
- Plan builder for multi-action transactions
- Action factories for individual labeled sub-operations
- Per-database version tracking for optimistic concurrency

Example:
    >>> from rel_sdk import Connection
    >>>
    >>> async with Connection(base_url="http://127.0.0.1:8010") as conn:
    ...     await conn.create_database("mydb", overwrite=True)
    ...     await conn.install_source("mydb", "defs.rel", "def foo = {(1,);(2,);(3,)}")
    ...     outcome = await conn.query("mydb", "def bar = count[foo]", ["bar"])
    ...     if outcome.error:
    ...         print(outcome.error.code, outcome.problems)

Invariants:
    - Every transaction carries the last version seen for its database
    - Cached versions never decrease
    - Argument errors raise ValidationError; all other failures are returned
      in Outcome.error

Version: 1.0.0
"""

__version__ = "1.0.0"

from .actions import (
    DEFAULT_ACTION_NAME,
    Action,
    CardinalityAction,
    InstallAction,
    LabeledAction,
    ListEdbAction,
    ListSourceAction,
    LoadData,
    LoadDataAction,
    ModifyWorkspaceAction,
    QueryAction,
    Source,
    cardinality_action,
    delete_source_action,
    install_action,
    json_load_action,
    list_edb_action,
    list_sources_action,
    load_data_action,
    query_action,
)
from .client import Connection, Plan
from .cloud import CloudAdmin, ComputeSize
from .config import Settings
from .errors import (
    DatabaseExistsError,
    DatabaseNotFoundError,
    LocalServerError,
    RelSdkError,
    StaleVersionError,
    TransactionAbortedError,
    TransportError,
    ValidationError,
)
from .interfaces import (
    AdminOperations,
    DatabaseLifecycle,
    QueryOperations,
    TransactionTransport,
)
from .result import (
    LabeledActionResult,
    Outcome,
    Problem,
    Relation,
    RelKey,
    TransactionResult,
)
from .transaction import Mode, Transaction, TransactionBuilder
from .transport import HttpTransport, RawResponse
from .version import VersionTracker

__all__ = [
    # Version
    "__version__",
    # Client
    "Connection",
    "Plan",
    "Settings",
    "CloudAdmin",
    "ComputeSize",
    # Actions
    "DEFAULT_ACTION_NAME",
    "Action",
    "LabeledAction",
    "Source",
    "QueryAction",
    "InstallAction",
    "ModifyWorkspaceAction",
    "ListSourceAction",
    "ListEdbAction",
    "CardinalityAction",
    "LoadData",
    "LoadDataAction",
    "query_action",
    "install_action",
    "delete_source_action",
    "list_sources_action",
    "list_edb_action",
    "cardinality_action",
    "load_data_action",
    "json_load_action",
    # Transactions
    "Mode",
    "Transaction",
    "TransactionBuilder",
    "VersionTracker",
    # Results
    "Outcome",
    "TransactionResult",
    "LabeledActionResult",
    "Relation",
    "RelKey",
    "Problem",
    # Transport
    "HttpTransport",
    "RawResponse",
    # Interfaces
    "TransactionTransport",
    "DatabaseLifecycle",
    "QueryOperations",
    "AdminOperations",
    # Errors
    "RelSdkError",
    "ValidationError",
    "LocalServerError",
    "TransportError",
    "StaleVersionError",
    "TransactionAbortedError",
    "DatabaseExistsError",
    "DatabaseNotFoundError",
]
