from __future__ import annotations

import base64
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Protocol

import requests

from roster_mapper.errors import DeliveryError
from roster_mapper.templates import Template

RESEND_EMAILS_URL = "https://api.resend.com/emails"
REQUEST_TIMEOUT_SECONDS = 30


@dataclass(frozen=True)
class ImportEmail:
    to: list[str]
    subject: str
    text: str
    filename: str
    content: bytes


class Mailer(Protocol):
    def send(self, email: ImportEmail) -> dict[str, Any]:
        ...


def output_file_name(now: datetime | None = None) -> str:
    moment = now or datetime.now(timezone.utc)
    return f"import-{moment.strftime('%Y-%m-%d-%H-%M-%S')}.csv"


def build_import_email(
    template: Template,
    csv_bytes: bytes,
    recipient: str,
    now: datetime | None = None,
) -> ImportEmail:
    return ImportEmail(
        to=[recipient],
        subject=f"Participant Import ({template.label})",
        text=f"Attached is the generated import file for {template.name or template.label}.",
        filename=output_file_name(now),
        content=csv_bytes,
    )


class ResendMailer:
    """Sends import emails through the Resend HTTP API."""

    def __init__(
        self,
        api_key: str,
        sender: str,
        *,
        session: requests.Session | None = None,
        url: str = RESEND_EMAILS_URL,
    ) -> None:
        if not api_key:
            raise DeliveryError("RESEND_API_KEY is not configured.")
        self.api_key = api_key
        self.sender = sender
        self.session = session or requests.Session()
        self.url = url

    def payload(self, email: ImportEmail) -> dict[str, Any]:
        return {
            "from": self.sender,
            "to": list(email.to),
            "subject": email.subject,
            "text": email.text,
            "attachments": [
                {
                    "filename": email.filename,
                    "content": base64.b64encode(email.content).decode("ascii"),
                }
            ],
        }

    def send(self, email: ImportEmail) -> dict[str, Any]:
        try:
            response = self.session.post(
                self.url,
                json=self.payload(email),
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=REQUEST_TIMEOUT_SECONDS,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            raise DeliveryError(f"Could not send import email: {exc}") from exc
        try:
            return response.json()
        except ValueError:
            return {}
