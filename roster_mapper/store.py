"""
JSON-file store for templates, delivery settings and import logs.

The whole store is one JSON document, rewritten atomically (temp file +
rename) on each change.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any

from roster_mapper.contracts import utc_now_iso
from roster_mapper.errors import ConfigError, TemplateNotFoundError
from roster_mapper.templates import Template

RECIPIENT_SETTING = "import_recipient_email"
ACCESS_CODE_SETTING = "access_code"


def _empty_document() -> dict[str, Any]:
    return {"next_template_id": 1, "templates": [], "settings": {}, "import_logs": []}


class JsonStore:
    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    # ── persistence ────────────────────────────────────────────────────────────

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return _empty_document()
        try:
            document = json.loads(self.path.read_text(encoding="utf-8"))
        except ValueError as exc:
            raise ConfigError(f"Could not read store {self.path}: {exc}") from exc
        if not isinstance(document, dict):
            raise ConfigError(f"Could not read store {self.path}: root must be a JSON object")
        merged = _empty_document()
        merged.update(document)
        return merged

    def _write(self, document: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=".roster-mapper-", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(document, handle, indent=2, ensure_ascii=False, sort_keys=True)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    # ── templates ──────────────────────────────────────────────────────────────

    def list_templates(self) -> list[Template]:
        return [Template.from_dict(item) for item in self._read()["templates"]]

    def get_template(self, template_id: int) -> Template:
        for template in self.list_templates():
            if template.id == template_id:
                return template
        raise TemplateNotFoundError("Template not found.")

    def create_template(self, template: Template) -> Template:
        document = self._read()
        payload = template.to_dict()
        payload["id"] = document["next_template_id"]
        payload["created_at"] = payload.get("created_at") or utc_now_iso()
        document["next_template_id"] += 1
        document["templates"].append(payload)
        self._write(document)
        return Template.from_dict(payload)

    def delete_template(self, template_id: int) -> None:
        document = self._read()
        remaining = [item for item in document["templates"] if item.get("id") != template_id]
        if len(remaining) == len(document["templates"]):
            raise TemplateNotFoundError("Template not found.")
        document["templates"] = remaining
        self._write(document)

    # ── settings ───────────────────────────────────────────────────────────────

    def get_setting(self, key: str) -> str | None:
        return self._read()["settings"].get(key)

    def set_setting(self, key: str, value: str) -> None:
        document = self._read()
        document["settings"][key] = value
        self._write(document)

    # ── import logs ────────────────────────────────────────────────────────────

    def append_import_log(self, entry: dict[str, Any]) -> dict[str, Any]:
        document = self._read()
        record = {"id": len(document["import_logs"]) + 1, "created_at": utc_now_iso(), **entry}
        document["import_logs"].append(record)
        self._write(document)
        return record

    def list_import_logs(self, limit: int | None = None) -> list[dict[str, Any]]:
        logs = list(reversed(self._read()["import_logs"]))
        return logs[:limit] if limit else logs
