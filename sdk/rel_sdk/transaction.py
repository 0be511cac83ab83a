"""
Transaction construction and version bookkeeping.

This module provides:
- Mode: Database lifecycle intent of a transaction
- Transaction: The wire request sent to the service
- TransactionBuilder: Stamps transactions with the tracked version and
  applies response versions back to the tracker

Invariants:
    - A built transaction carries version == tracker.get(dbname)
    - source_dbname is present iff mode is CLONE or CLONE_OVERWRITE
    - apply_response is the only path that advances the tracker, and it
      never moves a version backwards
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence
from enum import Enum
from typing import Any, Literal

from pydantic import Field, NonNegativeInt, StrictBool, StrictStr, model_validator

from .actions import LabeledAction, WireModel, build_model
from .errors import ValidationError
from .version import VersionTracker

logger = logging.getLogger(__name__)


class Mode(str, Enum):
    """Database lifecycle intent of a transaction."""

    OPEN = "OPEN"
    OPEN_OR_CREATE = "OPEN_OR_CREATE"
    CREATE = "CREATE"
    CREATE_OVERWRITE = "CREATE_OVERWRITE"
    CLONE = "CLONE"
    CLONE_OVERWRITE = "CLONE_OVERWRITE"

    @property
    def is_clone(self) -> bool:
        return self in (Mode.CLONE, Mode.CLONE_OVERWRITE)

    @property
    def creates(self) -> bool:
        """Whether the mode fails when the target database already exists."""
        return self in (Mode.CREATE, Mode.CLONE)


class Transaction(WireModel):
    """A transaction request.

    Attributes:
        dbname: Target database
        compute_name: Compute to route the transaction to
        mode: Lifecycle intent
        readonly: Whether the transaction may modify state
        version: Last version observed for dbname (0 if none)
        source_dbname: Database to copy from (clone modes only)
        actions: Ordered labeled actions
    """

    type: Literal["Transaction"] = "Transaction"
    dbname: StrictStr = Field(min_length=1)
    compute_name: StrictStr | None = None
    mode: Mode
    readonly: StrictBool
    version: NonNegativeInt = 0
    source_dbname: StrictStr | None = None
    actions: list[LabeledAction] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_clone_source(self) -> Transaction:
        if self.mode.is_clone and not self.source_dbname:
            raise ValueError(f"source_dbname is required for mode {self.mode.value}")
        if not self.mode.is_clone and self.source_dbname is not None:
            raise ValueError(f"source_dbname is not allowed for mode {self.mode.value}")
        return self

    def to_wire(self) -> dict[str, Any]:
        """Serialize to the JSON request body."""
        return self.model_dump(mode="json")


class TransactionBuilder:
    """Assembles transactions against a VersionTracker.

    Example:
        >>> builder = TransactionBuilder(VersionTracker())
        >>> txn = builder.build("db", [], readonly=True, mode=Mode.OPEN)
        >>> txn.version
        0
    """

    def __init__(self, versions: VersionTracker) -> None:
        self._versions = versions
        self._lock = threading.Lock()

    @property
    def versions(self) -> VersionTracker:
        return self._versions

    def build(
        self,
        dbname: str,
        actions: Sequence[LabeledAction],
        *,
        readonly: bool,
        mode: Mode,
        compute_name: str | None = None,
        source_dbname: str | None = None,
    ) -> Transaction:
        """Build a transaction stamped with the tracked version.

        Args:
            dbname: Target database
            actions: Labeled actions, in execution order
            readonly: Read-only flag
            mode: Lifecycle mode
            compute_name: Optional compute routing
            source_dbname: Clone source (required for clone modes)

        Returns:
            Transaction ready to serialize

        Raises:
            ValidationError: If dbname or the clone source is missing
        """
        try:
            mode = Mode(mode)
        except ValueError as e:
            raise ValidationError(f"Unknown mode: {mode!r}", field_name="mode") from e
        if not isinstance(dbname, str) or not dbname:
            raise ValidationError("dbname must be a non-empty string", field_name="dbname")
        if mode.is_clone and (not isinstance(source_dbname, str) or not source_dbname):
            raise ValidationError(
                f"source_dbname is required for mode {mode.value}",
                field_name="source_dbname",
            )
        for item in actions:
            if not isinstance(item, LabeledAction):
                raise ValidationError(
                    f"actions must be LabeledAction instances, got {type(item).__name__}",
                    field_name="actions",
                )

        return build_model(
            Transaction,
            dbname=dbname,
            compute_name=compute_name,
            mode=mode,
            readonly=readonly,
            version=self._versions.get(dbname),
            source_dbname=source_dbname,
            actions=list(actions),
        )

    def apply_response(self, dbname: str, response_version: Any) -> bool:
        """Advance the tracked version if the response reports a newer one.

        Runs once per completed round trip, including failed ones that still
        report a version.

        Returns:
            True if the tracker was updated
        """
        if not isinstance(response_version, int) or isinstance(response_version, bool):
            return False

        with self._lock:
            current = self._versions.get(dbname)
            if response_version <= current:
                return False
            self._versions.set(dbname, response_version)

        logger.debug(f"Version of {dbname} advanced {current} -> {response_version}")
        return True
