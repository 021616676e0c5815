"""Shared versioned contracts for machine-readable roster-mapper outputs."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

CONTRACT_VERSIONS = {
    "roster_mapper.import_summary": "1.0.0",
    "roster_mapper.import_log": "1.0.0",
    "roster_mapper.template": "1.0.0",
}


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def build_contract(name: str) -> dict[str, str]:
    version = CONTRACT_VERSIONS[name]
    return {"name": name, "version": version}


def build_run_summary(
    *,
    command: str,
    input_file: str | None = None,
    status: str = "ok",
    output_path: str | None = None,
    metrics: dict[str, Any] | None = None,
    warnings: list[str] | None = None,
    error: dict[str, Any] | None = None,
) -> dict[str, Any]:
    return {
        "tool": "roster-mapper",
        "command": command,
        "status": status,
        "generated_at": utc_now_iso(),
        "input_file": input_file,
        "output_file": output_path,
        "warnings_count": len(warnings or []),
        "warnings": list(warnings or []),
        "metrics": metrics or {},
        "error": error,
    }


def with_contract(name: str, payload: dict[str, Any]) -> dict[str, Any]:
    contract = build_contract(name)
    return {"contract": contract, "schema_version": contract["version"], **payload}
