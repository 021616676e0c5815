from __future__ import annotations

import argparse
import json
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from roster_mapper import __version__ as TOOL_VERSION
from roster_mapper.contracts import build_run_summary, with_contract
from roster_mapper.delivery import ResendMailer, output_file_name
from roster_mapper.errors import (
    ConfigError,
    DeliveryError,
    InvalidFieldValuesError,
    MissingRequiredFieldsError,
    RosterMapperError,
    RowValueError,
    StructuralError,
    TemplateError,
)
from roster_mapper.settings import DEFAULT_CONFIG_PATH, Settings, load_settings, starter_config
from roster_mapper.store import ACCESS_CODE_SETTING, RECIPIENT_SETTING, JsonStore
from roster_mapper.service import DELIVERY_DOWNLOAD, DELIVERY_EMAIL, parse_field_defaults, submit_import
from roster_mapper.templates import template_from_upload

EXIT_SUCCESS = 0
EXIT_COMMAND_ERROR = 1
EXIT_STRUCTURAL = 2
EXIT_REJECTED = 3
EXIT_DELIVERY_FAILED = 4


class CliError(Exception):
    def __init__(self, message: str, code: int = EXIT_COMMAND_ERROR) -> None:
        super().__init__(message)
        self.code = code


class RosterMapperArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        raise CliError(message, EXIT_COMMAND_ERROR)


EXPLAIN_RULES = {
    "unambiguous_value": {
        "description": "When exactly one of the two leading numbers is above 12, that number is the day.",
        "evidence": "Values such as 13/02/2024 or 02/13/2024.",
        "applies_to": "N/N/YYYY and N/N/YY values in any date column.",
    },
    "birth_date_day_first": {
        "description": "Birth-date columns (Date of Birth, DOB, Birthdate) are read and written day-first.",
        "evidence": "Column header canonicalises to dateofbirth.",
        "applies_to": "Ambiguous values and output orientation; header hints are ignored.",
    },
    "day_month_hint": {
        "description": "A dd/mm style hint in the column header selects day-first.",
        "evidence": "Header such as 'Start Date (dd/mm/yyyy)'.",
        "applies_to": "Any date column that is not a birth-date column.",
    },
    "month_day_hint": {
        "description": "An mm/dd style hint in the column header selects month-first.",
        "evidence": "Header such as 'Start Date (mm/dd/yyyy)'.",
        "applies_to": "Any date column without a dd/mm hint.",
    },
    "booking_month_first": {
        "description": "Booking timestamp columns default to month-first.",
        "evidence": "Header canonicalises to something containing bookedat.",
        "applies_to": "Booking columns without header hints.",
    },
    "default_month_first": {
        "description": "Every other date column defaults to month-first.",
        "evidence": "Header contains 'date' and no rule above fired.",
        "applies_to": "Remaining date columns.",
    },
}


def eprint(message: str) -> None:
    print(message, file=sys.stderr)


def emit_human(message: str, *, quiet: bool = False) -> None:
    if not quiet:
        eprint(message)


def json_dumps(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, sort_keys=True)


def timestamp_token() -> str:
    override = os.environ.get("ROSTER_MAPPER_OUTPUT_STAMP")
    if override:
        return override
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def default_output_dir(input_path: Path) -> Path:
    return Path.cwd() / "roster-mapper-output" / f"{input_path.stem}-{timestamp_token()}"


def ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def write_text(path: Path, payload: str) -> None:
    ensure_parent(path)
    path.write_text(payload, encoding="utf-8")


def maybe_emit_json_stdout(payload: Any, enabled: bool) -> None:
    if enabled:
        print(json_dumps(payload))


def safe_output_path(explicit: Path | None, default_path: Path) -> Path:
    path = explicit or default_path
    if path.exists():
        raise CliError(f"Refusing to overwrite existing output: {path}", EXIT_COMMAND_ERROR)
    return path


def classify_exception(exc: Exception) -> int:
    if isinstance(exc, CliError):
        return exc.code
    if isinstance(exc, StructuralError):
        return EXIT_STRUCTURAL
    if isinstance(exc, (MissingRequiredFieldsError, RowValueError, InvalidFieldValuesError)):
        return EXIT_REJECTED
    if isinstance(exc, DeliveryError):
        return EXIT_DELIVERY_FAILED
    if isinstance(exc, (TemplateError, ConfigError, FileNotFoundError)):
        return EXIT_COMMAND_ERROR
    return EXIT_COMMAND_ERROR


def resolve_settings(args: argparse.Namespace) -> Settings:
    return load_settings(getattr(args, "config", None))


def open_store(args: argparse.Namespace, settings: Settings) -> JsonStore:
    return JsonStore(args.store or settings.store_path)


def parse_field_args(pairs: list[str] | None) -> dict[str, str]:
    fields: dict[str, str] = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise CliError(f"--field expects COLUMN=VALUE, got {pair!r}", EXIT_COMMAND_ERROR)
        fields[key.strip()] = value
    return fields


def collect_field_defaults(args: argparse.Namespace) -> dict[str, str]:
    raw = args.fields
    if args.fields_file:
        raw = Path(args.fields_file).read_text(encoding="utf-8")
    merged = parse_field_defaults(raw or "")
    merged.update(parse_field_args(args.field))
    return merged


# ══════════════════════════════════════════════════════════════════════════════
# RENDERING
# ══════════════════════════════════════════════════════════════════════════════

def render_import_text(payload: dict[str, Any]) -> str:
    result = payload.get("result", {})
    lines = [
        "roster-mapper import",
        f"Template: {payload['template']['name']} (#{payload['template']['id']})",
        f"Rows: {result.get('row_count', 0)}",
        f"Columns: {result.get('column_count', 0)}",
        f"Delivery: {payload.get('delivery')}",
    ]
    if payload.get("recipient"):
        lines.append(f"Recipient: {payload['recipient']}")
    if payload.get("output_file"):
        lines.append(f"Output: {payload['output_file']}")
    mapping = result.get("column_mapping", {})
    unmatched = [column for column, header in mapping.items() if header is None]
    if unmatched:
        lines.append(f"Filled from defaults: {', '.join(unmatched)}")
    for warning in result.get("warnings", []):
        lines.append(f"Warning: {warning}")
    return "\n".join(lines)


def render_template_text(template: dict[str, Any]) -> str:
    required = set(template["required_columns"])
    lines = [
        f"#{template['id']} {template['name']}",
        f"  Event/Race/Ticket: {template['event_name']} / {template['race_name']} / {template['ticket_name']}",
        "  Columns:",
    ]
    for column in template["columns"]:
        lines.append(f"    - {column}{' (required)' if column in required else ''}")
    return "\n".join(lines)


# ══════════════════════════════════════════════════════════════════════════════
# PARSER
# ══════════════════════════════════════════════════════════════════════════════

def build_parser() -> argparse.ArgumentParser:
    parser = RosterMapperArgumentParser(
        prog="roster-mapper",
        description="Map participant rosters onto import templates.",
    )
    parser.add_argument("--config", help="JSON config path (defaults to ./roster-mapper.json when present)")
    parser.add_argument("--store", help="Store path (overrides config and ROSTER_MAPPER_STORE)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser("import", help="Map a roster onto a template and produce the import CSV.")
    run.add_argument("input", help="Roster file (.csv, .tsv, .txt, .xlsx, .xlsm)")
    run.add_argument("-t", "--template", dest="template_id", type=int, required=True, help="Template id")
    run.add_argument("--fields", help="Default field values as a JSON object")
    run.add_argument("--fields-file", dest="fields_file", help="Path to a JSON file of default field values")
    run.add_argument("--field", action="append", metavar="COLUMN=VALUE", help="Default value for one column (repeatable)")
    run.add_argument("--email", action="store_true", help="Email the CSV to the configured recipient instead of writing it")
    run.add_argument("-o", "--out", dest="out_dir", help="Output directory")
    run.add_argument("--output", help="Explicit output CSV path")
    run.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    run.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")

    template = subparsers.add_parser("template", help="Manage import templates.")
    template_sub = template.add_subparsers(dest="template_command", required=True)
    template_add = template_sub.add_parser("add", help="Create a template from a header-row CSV.")
    template_add.add_argument("input", help="Template CSV (first row = output columns, '#' marks required)")
    template_add.add_argument("--event", required=True, help="Event name")
    template_add.add_argument("--race", required=True, help="Race name")
    template_add.add_argument("--ticket", required=True, help="Ticket name")
    template_add.add_argument("--name", default="", help="Display name (defaults to event / race / ticket)")
    template_add.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    template_list = template_sub.add_parser("list", help="List templates.")
    template_list.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    template_show = template_sub.add_parser("show", help="Show one template.")
    template_show.add_argument("template_id", type=int)
    template_show.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    template_remove = template_sub.add_parser("remove", help="Delete a template.")
    template_remove.add_argument("template_id", type=int)

    settings = subparsers.add_parser("settings", help="Inspect or change delivery settings.")
    settings_sub = settings.add_subparsers(dest="settings_command", required=True)
    settings_show = settings_sub.add_parser("show", help="Show effective settings.")
    settings_show.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    recipient = settings_sub.add_parser("set-recipient", help="Set the import recipient email.")
    recipient.add_argument("email")
    access = settings_sub.add_parser("set-access-code", help="Set the import page access code ('' clears it).")
    access.add_argument("code")

    logs = subparsers.add_parser("logs", help="List recent import attempts.")
    logs.add_argument("--limit", type=int, default=20, help="Number of entries to show")
    logs.add_argument("--json", action="store_true", help="Write machine JSON to stdout")

    config = subparsers.add_parser("config", help="Generate configuration.")
    config_subparsers = config.add_subparsers(dest="config_command", required=True)
    config_init = config_subparsers.add_parser("init", help="Write a starter config file.")
    config_init.add_argument("--path", default=str(DEFAULT_CONFIG_PATH), help="Config output path")

    explain = subparsers.add_parser("explain", help="Explain a date orientation rule.")
    explain.add_argument("rule_id", help="Rule identifier")
    explain.add_argument("--json", action="store_true", help="Write machine JSON to stdout")

    subparsers.add_parser("version", help="Print version")
    return parser


# ══════════════════════════════════════════════════════════════════════════════
# COMMANDS
# ══════════════════════════════════════════════════════════════════════════════

def run_import_command(args: argparse.Namespace) -> int:
    input_path = Path(args.input)
    if not input_path.exists():
        eprint(f"File not found: {input_path}")
        return EXIT_COMMAND_ERROR

    try:
        settings = resolve_settings(args)
        store = open_store(args, settings)
        fields = collect_field_defaults(args)
        delivery = DELIVERY_EMAIL if args.email else DELIVERY_DOWNLOAD
        mailer = ResendMailer(settings.resend_api_key, settings.mail_from) if args.email else None
        now = datetime.now(timezone.utc)

        # A refused output path must leave no import log behind.
        output_path: Path | None = None
        if delivery == DELIVERY_DOWNLOAD:
            out_dir = Path(args.out_dir) if args.out_dir else default_output_dir(input_path)
            output_path = safe_output_path(
                Path(args.output) if args.output else None,
                out_dir / output_file_name(now),
            )

        outcome = submit_import(
            store,
            args.template_id,
            input_path.name,
            input_path.read_bytes(),
            fields,
            mailer=mailer,
            delivery=delivery,
            now=now,
        )
        if output_path is not None:
            write_text(output_path, outcome.result.csv_text)

        payload = with_contract(
            "roster_mapper.import_summary",
            {
                "template": outcome.template.to_dict(),
                "delivery": outcome.delivery,
                "recipient": outcome.recipient,
                "output_file": str(output_path) if output_path else None,
                "result": outcome.result.summary(),
                "run_summary": build_run_summary(
                    command="import",
                    input_file=str(input_path),
                    output_path=str(output_path) if output_path else None,
                    metrics={"row_count": outcome.row_count},
                    warnings=outcome.result.warnings,
                ),
            },
        )
        if args.json:
            maybe_emit_json_stdout(payload, True)
        else:
            emit_human(render_import_text(payload), quiet=args.quiet)
        return EXIT_SUCCESS
    except (RosterMapperError, CliError, OSError) as exc:
        code = classify_exception(exc)
        if args.json and isinstance(exc, RosterMapperError):
            maybe_emit_json_stdout(
                build_run_summary(command="import", input_file=str(input_path), status="error", error=exc.to_dict()),
                True,
            )
        eprint(str(exc))
        return code


def run_template_command(args: argparse.Namespace) -> int:
    try:
        settings = resolve_settings(args)
        store = open_store(args, settings)
        if args.template_command == "add":
            input_path = Path(args.input)
            if not input_path.exists():
                raise CliError(f"File not found: {input_path}", EXIT_COMMAND_ERROR)
            template = template_from_upload(
                input_path.read_bytes(),
                event_name=args.event,
                race_name=args.race,
                ticket_name=args.ticket,
                name=args.name,
                max_bytes=settings.template_max_file_bytes,
            )
            created = store.create_template(template).to_dict()
            if args.json:
                maybe_emit_json_stdout(with_contract("roster_mapper.template", {"template": created}), True)
            else:
                eprint(f"Template created: #{created['id']} {created['name']}")
            return EXIT_SUCCESS

        if args.template_command == "list":
            templates = [template.to_dict() for template in store.list_templates()]
            if args.json:
                maybe_emit_json_stdout({"templates": templates}, True)
            elif not templates:
                print("No templates.")
            else:
                print("\n".join(render_template_text(template) for template in templates))
            return EXIT_SUCCESS

        if args.template_command == "show":
            template = store.get_template(args.template_id).to_dict()
            if args.json:
                maybe_emit_json_stdout(with_contract("roster_mapper.template", {"template": template}), True)
            else:
                print(render_template_text(template))
            return EXIT_SUCCESS

        if args.template_command == "remove":
            store.delete_template(args.template_id)
            eprint(f"Template removed: #{args.template_id}")
            return EXIT_SUCCESS
        raise CliError(f"Unknown template command: {args.template_command}", EXIT_COMMAND_ERROR)
    except (RosterMapperError, CliError, OSError) as exc:
        eprint(str(exc))
        return classify_exception(exc)


def run_settings_command(args: argparse.Namespace) -> int:
    try:
        settings = resolve_settings(args)
        store = open_store(args, settings)
        if args.settings_command == "show":
            payload = {
                "settings": settings.to_dict(),
                "store": str(store.path),
                "recipient_email": store.get_setting(RECIPIENT_SETTING),
                "access_code_set": bool(store.get_setting(ACCESS_CODE_SETTING) or settings.access_code),
            }
            if args.json:
                maybe_emit_json_stdout(payload, True)
            else:
                print(f"Store: {payload['store']}")
                print(f"Recipient: {payload['recipient_email'] or '[not configured]'}")
                print(f"Access code: {'set' if payload['access_code_set'] else 'not set'}")
                for key, value in sorted(payload["settings"].items()):
                    print(f"{key}: {value}")
            return EXIT_SUCCESS

        if args.settings_command == "set-recipient":
            email = args.email.strip()
            if not email:
                raise CliError("Recipient email is required.", EXIT_COMMAND_ERROR)
            store.set_setting(RECIPIENT_SETTING, email)
            eprint(f"Recipient set: {email}")
            return EXIT_SUCCESS

        if args.settings_command == "set-access-code":
            store.set_setting(ACCESS_CODE_SETTING, args.code.strip())
            eprint("Access code cleared." if not args.code.strip() else "Access code updated.")
            return EXIT_SUCCESS
        raise CliError(f"Unknown settings command: {args.settings_command}", EXIT_COMMAND_ERROR)
    except (RosterMapperError, CliError, OSError) as exc:
        eprint(str(exc))
        return classify_exception(exc)


def run_logs(args: argparse.Namespace) -> int:
    try:
        store = open_store(args, resolve_settings(args))
        logs = store.list_import_logs(limit=args.limit)
    except (RosterMapperError, OSError) as exc:
        eprint(str(exc))
        return classify_exception(exc)
    if args.json:
        maybe_emit_json_stdout({"import_logs": logs}, True)
        return EXIT_SUCCESS
    if not logs:
        print("No imports recorded.")
    for entry in logs:
        line = (
            f"{entry.get('created_at')}  {entry.get('status'):7}  {entry.get('file_name')}  "
            f"rows={entry.get('row_count')}  template=#{entry.get('template_id')}"
        )
        if entry.get("error_message"):
            line += f"  error={entry['error_message']}"
        print(line)
    return EXIT_SUCCESS


def run_config_init(args: argparse.Namespace) -> int:
    config_path = Path(args.path)
    if config_path.exists():
        eprint(f"Refusing to overwrite existing config: {config_path}")
        return EXIT_COMMAND_ERROR
    write_text(config_path, starter_config())
    emit_human(f"Config written: {config_path}")
    return EXIT_SUCCESS


def run_explain(args: argparse.Namespace) -> int:
    rule = EXPLAIN_RULES.get(args.rule_id)
    if rule is None:
        eprint(f"Unknown rule id: {args.rule_id}")
        return EXIT_COMMAND_ERROR
    payload = {"rule_id": args.rule_id, **rule}
    if args.json:
        maybe_emit_json_stdout(payload, True)
    else:
        print(
            "\n".join(
                [
                    f"Rule: {args.rule_id}",
                    f"What it does: {rule['description']}",
                    f"What triggers it: {rule['evidence']}",
                    f"Applies to: {rule['applies_to']}",
                ]
            )
        )
    return EXIT_SUCCESS


def run_version() -> int:
    print(TOOL_VERSION)
    return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    try:
        parser = build_parser()
        args = parser.parse_args(argv)
        if args.command == "import":
            return run_import_command(args)
        if args.command == "template":
            return run_template_command(args)
        if args.command == "settings":
            return run_settings_command(args)
        if args.command == "logs":
            return run_logs(args)
        if args.command == "config":
            if args.config_command == "init":
                return run_config_init(args)
        if args.command == "explain":
            return run_explain(args)
        if args.command == "version":
            return run_version()
        raise CliError(f"Unknown command: {args.command}", EXIT_COMMAND_ERROR)
    except CliError as exc:
        eprint(str(exc))
        return exc.code


if __name__ == "__main__":
    raise SystemExit(main())
