"""Tests for the structured operation log."""
from __future__ import annotations

import json
from pathlib import Path

import pytest

from storalloc.logging import OperationScope, StructuredLogger


def _records(logger: StructuredLogger) -> list[dict[str, object]]:
    lines = logger.operations_log_path.read_text(encoding="utf-8").splitlines()
    return [json.loads(line) for line in lines]


def test_operation_writes_single_record(tmp_path: Path) -> None:
    """A successful operation appends one JSON document with its steps."""
    logger = StructuredLogger(tmp_path / "logs")

    with logger.operation(
        "account create", args={"location": "westus"}, target={"name": "sa1"}
    ) as op:
        op.add_step("account.create", detail="sa1")
        op.set_lock_wait_ms(12)
        op.success("Storage account created.", changed=1)

    (record,) = _records(logger)
    assert record["command"] == "account create"
    assert record["args"] == {"location": "westus"}
    assert record["target"] == {"name": "sa1"}
    assert record["steps"] == [{"name": "account.create", "status": "success", "detail": "sa1"}]
    assert record["lock_wait_ms"] == 12
    assert record["result"]["status"] == "success"
    assert record["result"]["changed"] == 1


def test_operation_records_exception_and_reraises(tmp_path: Path) -> None:
    """Exceptions escaping the scope are logged as errors and propagate."""
    logger = StructuredLogger(tmp_path / "logs")

    with pytest.raises(ValueError, match="boom"):
        with logger.operation("account default"):
            raise ValueError("boom")

    (record,) = _records(logger)
    assert record["result"]["status"] == "error"
    assert record["result"]["errors"] == ["boom"]
    assert record["result"]["context"] == {"exception": "ValueError"}


def test_structured_logger_disables_when_directory_unavailable(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Logger gracefully disables itself when log directory cannot be created."""
    log_dir = tmp_path / "logs"

    original_mkdir = Path.mkdir

    def fail_mkdir(self: Path, *args: object, **kwargs: object) -> None:
        if self == log_dir:
            raise PermissionError("no access")
        original_mkdir(self, *args, **kwargs)

    monkeypatch.setattr(Path, "mkdir", fail_mkdir)

    logger = StructuredLogger(log_dir)
    assert logger._enabled is False  # type: ignore[attr-defined]

    with logger.operation("account resolve", args={"storage_account_name": "sa1"}) as op:
        op.success("done")

    assert not logger.operations_log_path.exists()


def test_structured_logger_disables_after_write_failure(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Write failures mark the logger disabled so subsequent writes are skipped."""
    logger = StructuredLogger(tmp_path / "logs")
    operations_path = logger.operations_log_path

    original_open = Path.open

    def fail_open(self: Path, *args: object, **kwargs: object) -> object:
        if self == operations_path:
            raise OSError("disk full")
        return original_open(self, *args, **kwargs)

    monkeypatch.setattr(Path, "open", fail_open)

    with logger.operation("account diagnostics") as op:
        op.success("done")

    assert logger._enabled is False  # type: ignore[attr-defined]

    with logger.operation("account diagnostics") as op:
        op.success("done")


def test_operation_scope_warning_sanitises_context(tmp_path: Path) -> None:
    """Warnings should be recorded with JSON-safe context values."""
    logger = StructuredLogger(tmp_path / "logs")

    class Custom:
        def __str__(self) -> str:
            return "<custom>"

    with logger.operation("account default", args={"path": Path("foo")}) as op:
        op.warning(
            "warned",
            warnings=("note",),
            errors=("err",),
            changed=1,
            context={"path": Path("/var/lib"), "obj": Custom(), "tags": ("a", "b")},
        )

    (record,) = _records(logger)
    assert record["args"] == {"path": "foo"}
    result = record["result"]
    assert result["status"] == "warning"
    assert result["warnings"] == ["note"]
    assert result["errors"] == ["err"]
    assert result["context"] == {"path": "/var/lib", "obj": "<custom>", "tags": ["a", "b"]}


def test_operation_scope_defaults_when_no_result() -> None:
    """A scope without an explicit result records a generic success."""
    scope = OperationScope("account create", target={"name": "sa1"})
    scope.set_lock_wait_ms(-5)

    record = scope.to_record()

    assert record["lock_wait_ms"] == 0
    assert record["result"]["status"] == "success"
    assert record["result"]["message"] == "completed"
