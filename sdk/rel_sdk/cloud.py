"""
Cloud administration for the Rel SDK.

Compute and database management calls that exist only on a cloud
deployment. They run outside transactions and never touch the version
cache.

Invariants:
    - On a local server connection every call raises LocalServerError
      at call time, before any network access
    - Request bodies are validated by their schema before sending
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable
from enum import Enum
from typing import Any

from pydantic import Field, StrictBool, StrictStr

from .actions import WireModel, build_model
from .config import Settings
from .errors import LocalServerError, ValidationError
from .result import Outcome, normalize_response
from .transport import HttpTransport

logger = logging.getLogger(__name__)

DEFAULT_REGION = "us-east"


class ComputeSize(str, Enum):
    XS = "XS"
    S = "S"
    M = "M"
    L = "L"
    XL = "XL"


class CreateComputeRequest(WireModel):
    name: StrictStr = Field(min_length=1)
    size: ComputeSize
    region: StrictStr
    dryrun: StrictBool = False


class DeleteComputeRequest(WireModel):
    name: StrictStr = Field(min_length=1)
    dryrun: StrictBool = False


class UpdateDatabaseRequest(WireModel):
    name: StrictStr = Field(min_length=1)
    default_compute_name: StrictStr | None = None
    remove_default_compute: StrictBool = False
    dryrun: StrictBool = False


def _as_list(value: str | list[str] | None) -> list[str] | None:
    if value is None:
        return None
    return [value] if isinstance(value, str) else list(value)


class CloudAdmin:
    """Administrative operations against a cloud deployment.

    Reached through ``Connection.cloud``.

    Example:
        >>> outcome = await conn.cloud.create_compute("analytics", size="S")
        >>> outcome.ok
        True
    """

    def __init__(self, transport: HttpTransport, settings: Settings) -> None:
        self._transport = transport
        self._settings = settings

    def _require_cloud(self, method_name: str) -> None:
        if self._settings.is_local_server:
            raise LocalServerError(method_name)

    async def _send(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Outcome:
        raw = await self._transport.request(method, path, json=json, params=params)
        outcome = normalize_response(raw)
        if outcome.error is not None:
            logger.warning(f"{method} {path} failed: {outcome.error.message}")
        return outcome

    def list_computes(
        self,
        *,
        id: str | list[str] | None = None,
        name: str | list[str] | None = None,
        size: str | list[str] | None = None,
        state: str | list[str] | None = None,
    ) -> Awaitable[Outcome]:
        """List computes, optionally filtered by id, name, size or state."""
        self._require_cloud("list_computes")
        params = {
            "id": _as_list(id),
            "name": _as_list(name),
            "size": _as_list(size),
            "state": _as_list(state),
        }
        return self._send("GET", "/compute", params=params)

    def create_compute(
        self,
        name: str,
        size: str = "XS",
        region: str | None = None,
        dryrun: bool = False,
    ) -> Awaitable[Outcome]:
        """Create a compute; ``region`` defaults to us-east."""
        self._require_cloud("create_compute")
        if not isinstance(size, str):
            raise ValidationError("size must be a string", field_name="size")
        body = build_model(
            CreateComputeRequest,
            name=name,
            size=size.upper(),
            region=region or DEFAULT_REGION,
            dryrun=dryrun,
        )
        return self._send("PUT", "/compute", json=body.model_dump(mode="json"))

    def delete_compute(self, name: str, dryrun: bool = False) -> Awaitable[Outcome]:
        self._require_cloud("delete_compute")
        body = build_model(DeleteComputeRequest, name=name, dryrun=dryrun)
        return self._send("DELETE", "/compute", json=body.model_dump(mode="json"))

    def list_compute_events(self, compute_id: str) -> Awaitable[Outcome]:
        self._require_cloud("list_compute_events")
        if not isinstance(compute_id, str) or not compute_id:
            raise ValidationError("compute_id must be a non-empty string", field_name="compute_id")
        return self._send("GET", f"/compute/{compute_id}/events")

    def list_databases(
        self,
        *,
        id: str | list[str] | None = None,
        name: str | list[str] | None = None,
        state: str | list[str] | None = None,
    ) -> Awaitable[Outcome]:
        """List databases, optionally filtered by id, name or state."""
        self._require_cloud("list_databases")
        params = {"id": _as_list(id), "name": _as_list(name), "state": _as_list(state)}
        return self._send("GET", "/database", params=params)

    def update_database(
        self,
        name: str,
        default_compute_name: str | None = None,
        remove_default_compute: bool = False,
        dryrun: bool = False,
    ) -> Awaitable[Outcome]:
        self._require_cloud("update_database")
        body = build_model(
            UpdateDatabaseRequest,
            name=name,
            default_compute_name=default_compute_name,
            remove_default_compute=remove_default_compute,
            dryrun=dryrun,
        )
        return self._send("POST", "/database", json=body.model_dump(mode="json"))

    def remove_default_compute(self, dbname: str) -> Awaitable[Outcome]:
        """Detach the default compute from ``dbname``."""
        self._require_cloud("remove_default_compute")
        return self.update_database(dbname, None, True, False)
