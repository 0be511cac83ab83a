"""
In-memory fake of the Rel transaction service.

Implements enough of the service to drive the SDK end to end:
- Lifecycle modes (OPEN, OPEN_OR_CREATE, CREATE[_OVERWRITE], CLONE[_OVERWRITE])
- Per-database versions, advanced by every create and write transaction
- Stale version rejection (409) when a request is ahead of the database
- Installed sources, base relations and a tiny evaluator for statements of
  the form ``def name = value`` and ``def insert[:name] = value``

Values are integers, quoted strings, tuple sets like ``{(1, 5); (2, 7)}``
or the name of another relation. ``ic ...`` always fails (aborting the
transaction) and a ``def`` with nothing after ``=`` is reported as a
non-fatal parse problem.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from rel_sdk.client import Connection
from rel_sdk.config import Settings
from rel_sdk.transport import HttpTransport

STDLIB_SOURCE = {"type": "Source", "name": "stdlib", "path": "stdlib", "value": "// builtins"}

DEF_RE = re.compile(r"^def\s+(?:(insert|delete)\[:(\w+)\]|(\w+))\s*=\s*(.*)$")
NAME_RE = re.compile(r"^\w+$")
INT_RE = re.compile(r"^-?\d+$")

MUTATING = {"InstallAction", "ModifyWorkspaceAction", "LoadDataAction"}


class Abort(Exception):
    """Fails the whole transaction."""

    def __init__(self, error_code: str, message: str, status: int = 422) -> None:
        super().__init__(message)
        self.problem = {
            "type": "ClientProblem",
            "error_code": error_code,
            "message": message,
            "is_error": True,
        }
        self.status = status


class ParseProblem(Exception):
    """Non-fatal problem reported alongside the result."""

    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__(message)
        self.problem = {
            "type": "ClientProblem",
            "error_code": "PARSE_ERROR",
            "message": message,
            "is_error": True,
            "path": path,
        }


@dataclass
class FakeDatabase:
    version: int = 1
    sources: dict[str, dict[str, str]] = field(default_factory=dict)
    edb: dict[str, set[tuple]] = field(default_factory=dict)

    def copy(self) -> FakeDatabase:
        return FakeDatabase(
            version=self.version,
            sources={k: dict(v) for k, v in self.sources.items()},
            edb={k: set(v) for k, v in self.edb.items()},
        )


def type_name(value: Any) -> str:
    if isinstance(value, int):
        return "Int64"
    if isinstance(value, str) and value.startswith(":"):
        return f"{value}"
    return "String"


def relation_json(name: str, rows: set[tuple]) -> dict[str, Any]:
    ordered = sorted(rows, key=repr)
    keys = [type_name(v) for v in ordered[0]] if ordered else []
    return {
        "type": "Relation",
        "rel_key": {"type": "RelKey", "name": name, "keys": keys, "values": []},
        "columns": [list(col) for col in zip(*ordered)],
    }


def parse_scalar(token: str) -> Any:
    token = token.strip()
    if INT_RE.match(token):
        return int(token)
    if len(token) >= 2 and token[0] == token[-1] == '"':
        return token[1:-1]
    if token.startswith(":") and NAME_RE.match(token[1:]):
        return token
    raise ParseProblem(f"cannot parse value {token!r}")


def parse_rows(text: str, env: dict[str, set[tuple]]) -> set[tuple]:
    text = text.strip()
    if not text:
        raise ParseProblem("unexpected end of input")
    if NAME_RE.match(text) and not INT_RE.match(text):
        return set(env.get(text, set()))
    if text.startswith("{") and text.endswith("}"):
        rows = set()
        for part in text[1:-1].split(";"):
            part = part.strip()
            if not part:
                continue
            if part.startswith("(") and part.endswith(")"):
                part = part[1:-1]
            rows.add(tuple(parse_scalar(x) for x in part.split(",") if x.strip()))
        return rows
    return {(parse_scalar(text),)}


def statements(source: str) -> list[str]:
    return [line.strip() for line in source.splitlines() if line.strip()]


def check_source(source: dict[str, str]) -> list[dict[str, Any]]:
    problems = []
    for line in statements(source.get("value", "")):
        match = DEF_RE.match(line)
        if match is None or not match.group(4).strip():
            problems.append(ParseProblem(f"parse error in {line!r}", path=source.get("name")).problem)
    return problems


class FakeRelService:
    """Stateful fake service; ``app`` is the ASGI application."""

    def __init__(self) -> None:
        self.databases: dict[str, FakeDatabase] = {}
        self.requests: list[dict[str, Any]] = []
        self.app = self._build_app()

    def _build_app(self) -> FastAPI:
        app = FastAPI()

        @app.post("/transaction")
        async def transaction(request: Request) -> JSONResponse:
            body = await request.json()
            self.requests.append(body)
            status, payload = self.handle(body)
            return JSONResponse(payload, status_code=status)

        return app

    # ------------------------------------------------------------------

    def handle(self, txn: dict[str, Any]) -> tuple[int, dict[str, Any]]:
        dbname = txn["dbname"]
        existing = self.databases.get(dbname)

        try:
            db, created = self._resolve(txn, existing)
        except Abort as e:
            return e.status, self._response(existing.version if existing else 0, [e.problem], aborted=True)

        if not created and txn.get("version", 0) > db.version:
            problem = Abort(
                "STALE_VERSION",
                f"requested version {txn['version']} is ahead of database version {db.version}",
            ).problem
            return 409, self._response(db.version, [problem], aborted=True)

        work = db.copy()
        problems: list[dict[str, Any]] = []
        results: list[dict[str, Any]] = []
        output: list[dict[str, Any]] = []

        try:
            for labeled in txn.get("actions", []):
                action = labeled["action"]
                if txn["readonly"] and action["type"] in MUTATING:
                    raise Abort("READONLY_VIOLATION", f"{action['type']} in a readonly transaction")
                result = self._run_action(work, action, txn["readonly"], problems, output)
                results.append(
                    {"type": "LabeledActionResult", "name": labeled["name"], "result": result}
                )
        except Abort as e:
            return e.status, self._response(db.version, problems + [e.problem], aborted=True)

        if created:
            work.version = (existing.version + 1) if existing else 1
        elif not txn["readonly"]:
            work.version = db.version + 1
        self.databases[dbname] = work
        return 200, self._response(work.version, problems, results=results, output=output)

    def _resolve(
        self,
        txn: dict[str, Any],
        existing: FakeDatabase | None,
    ) -> tuple[FakeDatabase, bool]:
        mode = txn["mode"]
        dbname = txn["dbname"]

        if mode in ("CREATE", "CLONE") and existing is not None:
            raise Abort("DATABASE_EXISTS", f"database {dbname} already exists")
        if mode in ("CREATE", "CREATE_OVERWRITE"):
            return FakeDatabase(), True
        if mode in ("CLONE", "CLONE_OVERWRITE"):
            source = self.databases.get(txn.get("source_dbname") or "")
            if source is None:
                raise Abort("DATABASE_NOT_FOUND", f"database {txn.get('source_dbname')} not found", 404)
            return source.copy(), True
        if existing is None:
            if mode == "OPEN_OR_CREATE":
                return FakeDatabase(), True
            raise Abort("DATABASE_NOT_FOUND", f"database {dbname} not found", 404)
        return existing, False

    def _run_action(
        self,
        db: FakeDatabase,
        action: dict[str, Any],
        readonly: bool,
        problems: list[dict[str, Any]],
        output: list[dict[str, Any]],
    ) -> dict[str, Any]:
        kind = action["type"]

        if kind == "QueryAction":
            env = self._evaluate(db, action, readonly, problems)
            for name in action.get("persist", []):
                db.edb[name] = set(env.get(name, set()))
            if "output" in env:
                output.append(relation_json("output", env["output"]))
            return {
                "type": "QueryActionResult",
                "output": [relation_json(name, env.get(name, set())) for name in action["outputs"]],
            }

        if kind == "InstallAction":
            for source in action["sources"]:
                problems.extend(check_source(source))
                db.sources[source["name"]] = dict(source)
            return {"type": "InstallActionResult"}

        if kind == "ModifyWorkspaceAction":
            for name in action["delete_source"]:
                db.sources.pop(name, None)
            return {"type": "ModifyWorkspaceActionResult"}

        if kind == "ListSourceAction":
            return {"type": "ListSourceActionResult", "sources": [STDLIB_SOURCE, *db.sources.values()]}

        if kind == "ListEdbAction":
            rels = []
            for name, rows in sorted(db.edb.items()):
                if action.get("relname") not in (None, name):
                    continue
                signatures = sorted({tuple(type_name(v) for v in row) for row in rows})
                for keys in signatures:
                    rels.append({"type": "RelKey", "name": name, "keys": list(keys), "values": []})
            return {"type": "ListEdbActionResult", "rels": rels}

        if kind == "CardinalityAction":
            names = [action["relname"]] if action.get("relname") else sorted(db.edb)
            return {
                "type": "CardinalityActionResult",
                "result": [relation_json(name, {(len(db.edb.get(name, set())),)}) for name in names],
            }

        if kind == "LoadDataAction":
            value = action["value"]
            if value.get("path") is not None:
                problems.append(ParseProblem("path loading is not supported", path=value["path"]).problem)
                return {"type": "LoadDataActionResult"}
            data = json.loads(value["data"])
            items = data if isinstance(data, list) else [data]
            rows = {tuple(item) if isinstance(item, list) else (item,) for item in items}
            db.edb.setdefault(action["rel"], set()).update(rows)
            return {"type": "LoadDataActionResult"}

        raise Abort("UNKNOWN_ACTION", f"unknown action type {kind}")

    def _evaluate(
        self,
        db: FakeDatabase,
        action: dict[str, Any],
        readonly: bool,
        problems: list[dict[str, Any]],
    ) -> dict[str, set[tuple]]:
        env: dict[str, set[tuple]] = {name: set(rows) for name, rows in db.edb.items()}
        for relation in action.get("inputs", []):
            env[relation["rel_key"]["name"]] = set(zip(*relation["columns"]))

        # Installed definitions are visible to every query
        for source in db.sources.values():
            for line in statements(source.get("value", "")):
                match = DEF_RE.match(line)
                if match is None or match.group(1) is not None:
                    continue
                try:
                    rows = parse_rows(match.group(4), env)
                except ParseProblem:
                    continue
                env[match.group(3)] = env.get(match.group(3), set()) | rows

        for line in statements(action["source"]["value"]):
            if re.match(r"^ic\b", line):
                raise Abort("INTEGRITY_CONSTRAINT_VIOLATION", f"integrity constraint violated: {line}")

            match = DEF_RE.match(line)
            if match is None:
                problems.append(ParseProblem(f"parse error in {line!r}").problem)
                continue
            op, target, name, rhs = match.groups()
            try:
                rows = parse_rows(rhs, env)
            except ParseProblem as e:
                problems.append(e.problem)
                continue

            if op is None:
                env[name] = env.get(name, set()) | rows
                continue
            if readonly:
                raise Abort("READONLY_VIOLATION", f"{op} into :{target} in a readonly transaction")
            base = db.edb.setdefault(target, set())
            if op == "insert":
                base |= rows
            else:
                base -= rows
            env[target] = set(base)

        return env

    @staticmethod
    def _response(
        version: int,
        problems: list[dict[str, Any]],
        *,
        aborted: bool = False,
        results: list[dict[str, Any]] | None = None,
        output: list[dict[str, Any]] | None = None,
    ) -> dict[str, Any]:
        return {
            "type": "TransactionResult",
            "version": version,
            "aborted": aborted,
            "problems": problems,
            "actions": results or [],
            "output": output or [],
        }


def connect(service: FakeRelService) -> Connection:
    """Create a Connection routed to ``service`` through ASGI."""
    settings = Settings(base_url="http://rel.test")
    transport = HttpTransport.from_settings(
        settings, transport=httpx.ASGITransport(app=service.app)
    )
    return Connection(settings, transport=transport)
