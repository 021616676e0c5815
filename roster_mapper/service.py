"""
Import submission: the caller-side workflow around the engine.

Looks the template up, parses the uploader's default field values, runs the
engine, delivers the CSV (email or download) and records the outcome as an
import log row. Errors are logged and then re-raised unchanged.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from roster_mapper.delivery import ImportEmail, Mailer, build_import_email, output_file_name
from roster_mapper.engine import ImportResult, run_import
from roster_mapper.errors import DeliveryError, InvalidFieldValuesError, RosterMapperError
from roster_mapper.store import RECIPIENT_SETTING, JsonStore
from roster_mapper.templates import Template

DELIVERY_EMAIL = "email"
DELIVERY_DOWNLOAD = "download"
DELIVERY_MODES = (DELIVERY_EMAIL, DELIVERY_DOWNLOAD)


@dataclass
class ImportOutcome:
    template: Template
    result: ImportResult
    delivery: str
    output_file_name: str
    recipient: str | None = None
    log: dict[str, Any] = field(default_factory=dict)

    @property
    def row_count(self) -> int:
        return self.result.row_count


def parse_field_defaults(fields_raw: str | dict | None) -> dict[str, str]:
    if fields_raw is None or fields_raw == "":
        return {}
    if isinstance(fields_raw, dict):
        payload: Any = fields_raw
    else:
        try:
            payload = json.loads(fields_raw)
        except ValueError as exc:
            raise InvalidFieldValuesError("Invalid field values.") from exc
    if not isinstance(payload, dict):
        raise InvalidFieldValuesError("Invalid field values.")
    defaults: dict[str, str] = {}
    for key, value in payload.items():
        if value is None:
            continue
        if isinstance(value, (dict, list)):
            raise InvalidFieldValuesError("Invalid field values.")
        defaults[str(key)] = str(value)
    return defaults


def _log_entry(
    template: Template,
    file_name: str,
    row_count: int | None,
    status: str,
    recipient: str | None,
    error: RosterMapperError | None = None,
) -> dict[str, Any]:
    return {
        "file_name": file_name,
        "row_count": row_count,
        "template_id": template.id,
        "event_name": template.event_name,
        "race_name": template.race_name,
        "ticket_name": template.ticket_name,
        "status": status,
        "recipient_email": recipient,
        "error_message": str(error) if error else None,
        "error_kind": error.kind if error else None,
    }


def submit_import(
    store: JsonStore,
    template_id: int,
    file_name: str,
    content: bytes,
    fields_raw: str | dict | None = None,
    *,
    mailer: Mailer | None = None,
    delivery: str = DELIVERY_EMAIL,
    now: datetime | None = None,
) -> ImportOutcome:
    if delivery not in DELIVERY_MODES:
        raise ValueError(f"Unknown delivery mode: {delivery}")

    field_defaults = parse_field_defaults(fields_raw)
    template = store.get_template(template_id)
    recipient = store.get_setting(RECIPIENT_SETTING) if delivery == DELIVERY_EMAIL else None

    result: ImportResult | None = None
    try:
        result = run_import(content, template, field_defaults, file_name=file_name)
        filename = output_file_name(now)
        if delivery == DELIVERY_EMAIL:
            if not recipient:
                raise DeliveryError("Recipient email is not configured.")
            if mailer is None:
                raise DeliveryError("No mailer is configured.")
            email: ImportEmail = build_import_email(template, result.csv_bytes, recipient, now)
            filename = email.filename
            mailer.send(email)
    except RosterMapperError as exc:
        store.append_import_log(
            _log_entry(template, file_name, result.row_count if result else None, "error", recipient, exc)
        )
        raise

    log = store.append_import_log(_log_entry(template, file_name, result.row_count, "success", recipient))
    return ImportOutcome(
        template=template,
        result=result,
        delivery=delivery,
        output_file_name=filename,
        recipient=recipient,
        log=log,
    )
