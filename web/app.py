#!/usr/bin/env python3
from __future__ import annotations

import json
import sys
from pathlib import Path

import pandas as pd
import streamlit as st

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from roster_mapper.access import is_access_code_valid
from roster_mapper.delivery import ResendMailer
from roster_mapper.errors import RosterMapperError
from roster_mapper.forms import default_field_specs
from roster_mapper.loader import ALL_FORMATS, load_roster
from roster_mapper.ratelimit import SlidingWindowLimiter, client_key
from roster_mapper.service import DELIVERY_DOWNLOAD, DELIVERY_EMAIL, submit_import
from roster_mapper.settings import load_settings
from roster_mapper.store import ACCESS_CODE_SETTING, JsonStore


@st.cache_resource(show_spinner=False)
def get_settings():
    return load_settings()


@st.cache_resource(show_spinner=False)
def get_store() -> JsonStore:
    return JsonStore(get_settings().store_path)


@st.cache_resource(show_spinner=False)
def get_limiter() -> SlidingWindowLimiter:
    settings = get_settings()
    return SlidingWindowLimiter(settings.rate_limit_window_seconds, settings.rate_limit_max)


def ensure_state() -> None:
    st.session_state.setdefault("unlocked", False)
    st.session_state.setdefault("last_download", None)


def configured_access_code() -> str:
    return get_store().get_setting(ACCESS_CODE_SETTING) or get_settings().access_code


def request_headers() -> dict[str, str]:
    context = getattr(st, "context", None)
    headers = getattr(context, "headers", None) if context else None
    return dict(headers or {})


def render_access_gate() -> bool:
    configured = configured_access_code()
    if is_access_code_valid(configured, None) or st.session_state["unlocked"]:
        return True

    st.subheader("Enter access code")
    with st.form("access_code_form"):
        code = st.text_input("Access code", type="password")
        submitted = st.form_submit_button("Continue")
    if submitted:
        if is_access_code_valid(configured, code.strip()):
            st.session_state["unlocked"] = True
            st.rerun()
        st.error("Access code not recognized." if code.strip() else "Access code required.")
    return False


def render_field_inputs(specs, disabled: bool) -> dict[str, str]:
    values: dict[str, str] = {}
    for spec in specs:
        key = f"field_{spec.column}"
        if spec.covered_by:
            st.caption(f"{spec.label}: taken from roster column '{spec.covered_by}'")
            continue
        if spec.kind == "select":
            choice = st.selectbox(spec.label, [""] + list(spec.options), key=key, disabled=disabled)
            values[spec.column] = choice
        elif spec.kind == "date":
            picked = st.date_input(spec.label, value=None, key=key, disabled=disabled, format="DD/MM/YYYY")
            values[spec.column] = picked.isoformat() if picked else ""
        else:
            values[spec.column] = st.text_input(spec.label, key=key, disabled=disabled)
    return {column: value for column, value in values.items() if value}


def main() -> None:
    st.set_page_config(page_title="Participant Import", layout="centered")
    ensure_state()
    st.title("Participant Import")

    if not render_access_gate():
        return

    store = get_store()
    templates = store.list_templates()
    if not templates:
        st.info("No templates yet. Ask an admin to upload one with `roster-mapper template add`.")
        return

    template = st.selectbox("Event / race / ticket", templates, format_func=lambda item: item.label)
    upload = st.file_uploader(
        "Participant roster",
        type=[ext.lstrip(".") for ext in sorted(ALL_FORMATS)],
        help="Needs First Name, Last Name and Email columns (any common header spelling).",
    )

    headers: list[str] = []
    if upload is not None:
        try:
            roster = load_roster(upload.getvalue(), upload.name)
            headers = roster["headers"]
            st.caption(f"{roster['row_count']} rows detected")
            st.dataframe(pd.DataFrame(roster["rows"][:10]), use_container_width=True)
        except RosterMapperError as exc:
            st.error(str(exc))

    st.subheader("Fields applied to every row")
    st.caption("Only fields marked with * are required.")
    fields = render_field_inputs(default_field_specs(template, headers), disabled=upload is None)

    delivery = st.radio("Delivery", [DELIVERY_EMAIL, DELIVERY_DOWNLOAD], horizontal=True)
    if not st.button("Generate import file", type="primary", disabled=upload is None):
        return

    limit = get_limiter().hit(client_key(request_headers()))
    if not limit.ok:
        st.error(f"Too many imports. Try again in {limit.retry_after} seconds.")
        return

    try:
        settings = get_settings()
        mailer = ResendMailer(settings.resend_api_key, settings.mail_from) if delivery == DELIVERY_EMAIL else None
        outcome = submit_import(
            store,
            template.id,
            upload.name,
            upload.getvalue(),
            json.dumps(fields),
            mailer=mailer,
            delivery=delivery,
        )
    except RosterMapperError as exc:
        st.error(str(exc))
        return

    if delivery == DELIVERY_EMAIL:
        st.success(f"Sent {outcome.row_count} rows to {outcome.recipient}.")
    else:
        st.success(f"Generated {outcome.row_count} rows.")
        st.download_button(
            "Download CSV",
            data=outcome.result.csv_bytes,
            file_name=outcome.output_file_name,
            mime="text/csv",
        )


if __name__ == "__main__":
    main()
