"""Structured operation logging for storalloc.

Each allocation call is recorded as a single JSON document appended to
``operations.jsonl`` inside the configured log directory. Records capture the
command, its arguments, the target account, intermediate steps, lock wait time
and the final result so that contention and partial failures can be diagnosed
after the adapter process has exited.

Logging must never break allocation: if the directory cannot be created or a
write fails the logger disables itself and later operations become no-ops.
"""
from __future__ import annotations

import json
import logging
import os
import time
import uuid
from collections.abc import Iterable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Literal

LOGGER = logging.getLogger(__name__)

ResultStatus = Literal["success", "warning", "error"]

OPERATIONS_LOG_NAME = "operations.jsonl"


def _utc_timestamp() -> str:
    return datetime.now(tz=UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _json_safe(value: object) -> object:
    """Return *value* converted into something ``json.dumps`` accepts."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, Mapping):
        return {str(key): _json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(item) for item in value]
    return str(value)


@dataclass(slots=True)
class OperationResult:
    """Final outcome recorded for an operation."""

    status: ResultStatus
    message: str
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    changed: int = 0
    context: dict[str, object] = field(default_factory=dict)

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "status": self.status,
            "message": self.message,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "changed": self.changed,
            "context": _json_safe(self.context),
        }


class OperationScope:
    """Collects steps and the result for one logged operation."""

    def __init__(
        self,
        command: str,
        *,
        args: Mapping[str, object] | None = None,
        target: Mapping[str, object] | None = None,
    ) -> None:
        """Initialise a scope for *command*."""
        self.op_id = uuid.uuid4().hex
        self.command = command
        self.args = dict(args or {})
        self.target = dict(target or {})
        self.steps: list[dict[str, object]] = []
        self.lock_wait_ms: int | None = None
        self.result: OperationResult | None = None
        self._started = time.monotonic()
        self._started_at = _utc_timestamp()

    def add_step(self, name: str, *, status: str = "success", detail: object = None) -> None:
        """Record an intermediate step."""
        entry: dict[str, object] = {"name": name, "status": status}
        if detail is not None:
            entry["detail"] = _json_safe(detail)
        self.steps.append(entry)

    def set_lock_wait_ms(self, wait_ms: int) -> None:
        """Record how long the operation waited on a named lock."""
        self.lock_wait_ms = max(0, int(wait_ms))

    def success(
        self,
        message: str,
        *,
        changed: int = 0,
        warnings: Iterable[str] | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as successful."""
        self.result = OperationResult(
            status="success",
            message=message,
            warnings=list(warnings or []),
            changed=changed,
            context=dict(context or {}),
        )

    def warning(
        self,
        message: str,
        *,
        warnings: Iterable[str] | None = None,
        errors: Iterable[str] | None = None,
        changed: int = 0,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as completed with warnings."""
        self.result = OperationResult(
            status="warning",
            message=message,
            errors=list(errors or []),
            warnings=list(warnings or [message]),
            changed=changed,
            context=dict(context or {}),
        )

    def error(
        self,
        message: str,
        *,
        errors: Iterable[str] | None = None,
        changed: int = 0,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as failed."""
        self.result = OperationResult(
            status="error",
            message=message,
            errors=list(errors or [message]),
            changed=changed,
            context=dict(context or {}),
        )

    def to_record(self) -> dict[str, object]:
        """Return the JSON document written for this operation."""
        result = self.result or OperationResult(status="success", message="completed")
        return {
            "op_id": self.op_id,
            "ts": self._started_at,
            "pid": os.getpid(),
            "command": self.command,
            "args": _json_safe(self.args),
            "target": _json_safe(self.target),
            "steps": list(self.steps),
            "lock_wait_ms": self.lock_wait_ms,
            "duration_ms": int((time.monotonic() - self._started) * 1000),
            "result": result.to_dict(),
        }


class StructuredLogger:
    """Append-only JSONL writer for allocation operations."""

    def __init__(self, log_dir: Path) -> None:
        """Prepare *log_dir*; disable logging if it cannot be created."""
        self._log_dir = Path(log_dir).expanduser()
        self._operations_log_path = self._log_dir / OPERATIONS_LOG_NAME
        self._enabled = True
        try:
            self._log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            LOGGER.warning("Structured logging disabled; cannot create %s: %s", self._log_dir, exc)
            self._enabled = False

    @property
    def operations_log_path(self) -> Path:
        """Return the path of the operations log file."""
        return self._operations_log_path

    @contextmanager
    def operation(
        self,
        command: str,
        *,
        args: Mapping[str, object] | None = None,
        target: Mapping[str, object] | None = None,
    ) -> Iterator[OperationScope]:
        """Record one operation; exceptions are logged as errors and re-raised."""
        scope = OperationScope(command, args=args, target=target)
        try:
            yield scope
        except BaseException as exc:
            scope.error(str(exc) or type(exc).__name__, context={"exception": type(exc).__name__})
            raise
        finally:
            self._write(scope.to_record())

    def _write(self, record: Mapping[str, object]) -> None:
        if not self._enabled:
            return
        line = json.dumps(record, sort_keys=True)
        try:
            with self._operations_log_path.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")
        except OSError as exc:
            LOGGER.warning(
                "Structured logging disabled after write failure to %s: %s",
                self._operations_log_path,
                exc,
            )
            self._enabled = False


__all__ = ["OperationResult", "OperationScope", "StructuredLogger"]
