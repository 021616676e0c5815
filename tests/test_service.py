import base64
import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path

import requests

from roster_mapper.delivery import ResendMailer, build_import_email, output_file_name
from roster_mapper.errors import (
    ConfigError,
    DeliveryError,
    InvalidFieldValuesError,
    MissingRequiredFieldsError,
    StructuralError,
    TemplateNotFoundError,
)
from roster_mapper.service import DELIVERY_DOWNLOAD, parse_field_defaults, submit_import
from roster_mapper.store import RECIPIENT_SETTING, JsonStore
from roster_mapper.templates import Template

NOW = datetime(2024, 3, 5, 9, 15, 30, tzinfo=timezone.utc)
ROSTER = b"First Name,Last Name,Email\nAvery,Reed,avery@example.com\nJo,Blake,jo@example.com\n"


class RecordingMailer:
    def __init__(self, fail: bool = False) -> None:
        self.sent = []
        self.fail = fail

    def send(self, email):
        if self.fail:
            raise DeliveryError("Could not send import email: boom")
        self.sent.append(email)
        return {"id": "email-1"}


class FakeResponse:
    def __init__(self, status_code: int = 200, body=None) -> None:
        self.status_code = status_code
        self.body = body

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Client Error")

    def json(self):
        if self.body is None:
            raise ValueError("no body")
        return self.body


class FakeSession:
    def __init__(self, response: FakeResponse) -> None:
        self.response = response
        self.calls = []

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        return self.response


class StoreTestCase(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.store = JsonStore(Path(self._tmp.name) / "store.json")
        self.template = self.store.create_template(
            Template.from_columns(
                ["#email", "first_name", "last_name", "#shirt_size"],
                name="Spring 10K",
                event_name="Spring Run",
                race_name="10K",
                ticket_name="General",
            )
        )

    def tearDown(self):
        self._tmp.cleanup()


class JsonStoreTests(StoreTestCase):
    def test_templates_get_sequential_ids_and_survive_reopen(self):
        second = self.store.create_template(Template.from_columns(["email"], event_name="E"))
        self.assertEqual((self.template.id, second.id), (1, 2))
        self.assertIsNotNone(self.template.created_at)

        reopened = JsonStore(self.store.path)
        self.assertEqual([t.id for t in reopened.list_templates()], [1, 2])
        self.assertEqual(reopened.get_template(1).required_columns, ("#email", "#shirt_size"))

    def test_missing_template(self):
        with self.assertRaisesRegex(TemplateNotFoundError, "Template not found."):
            self.store.get_template(99)
        with self.assertRaises(TemplateNotFoundError):
            self.store.delete_template(99)

    def test_corrupt_store_is_a_config_error(self):
        self.store.path.write_text("{not json", encoding="utf-8")
        with self.assertRaisesRegex(ConfigError, "Could not read store"):
            self.store.list_templates()
        self.store.path.write_text("[]", encoding="utf-8")
        with self.assertRaisesRegex(ConfigError, "JSON object"):
            self.store.get_setting(RECIPIENT_SETTING)

    def test_delete_template(self):
        self.store.delete_template(self.template.id)
        self.assertEqual(self.store.list_templates(), [])

    def test_settings_and_logs(self):
        self.assertIsNone(self.store.get_setting(RECIPIENT_SETTING))
        self.store.set_setting(RECIPIENT_SETTING, "ops@example.com")
        self.assertEqual(self.store.get_setting(RECIPIENT_SETTING), "ops@example.com")

        self.store.append_import_log({"file_name": "a.csv"})
        self.store.append_import_log({"file_name": "b.csv"})
        logs = self.store.list_import_logs()
        self.assertEqual([log["file_name"] for log in logs], ["b.csv", "a.csv"])
        self.assertEqual(len(self.store.list_import_logs(limit=1)), 1)


class ParseFieldDefaultsTests(unittest.TestCase):
    def test_accepts_json_object(self):
        self.assertEqual(parse_field_defaults('{"shirt_size": "M", "bib": 7, "skip": null}'), {"shirt_size": "M", "bib": "7"})
        self.assertEqual(parse_field_defaults(None), {})
        self.assertEqual(parse_field_defaults(""), {})

    def test_rejects_bad_payloads(self):
        for raw in ("{not json", "[1, 2]", '{"a": {"b": 1}}'):
            with self.subTest(raw=raw):
                with self.assertRaisesRegex(InvalidFieldValuesError, "Invalid field values."):
                    parse_field_defaults(raw)


class SubmitImportTests(StoreTestCase):
    def test_email_delivery_logs_success(self):
        self.store.set_setting(RECIPIENT_SETTING, "ops@example.com")
        mailer = RecordingMailer()
        outcome = submit_import(
            self.store, self.template.id, "roster.csv", ROSTER, '{"#shirt_size": "M"}', mailer=mailer, now=NOW
        )
        self.assertEqual(outcome.row_count, 2)
        self.assertEqual(outcome.output_file_name, "import-2024-03-05-09-15-30.csv")
        self.assertEqual(len(mailer.sent), 1)
        email = mailer.sent[0]
        self.assertEqual(email.to, ["ops@example.com"])
        self.assertEqual(email.subject, "Participant Import (Spring Run / 10K / General)")
        self.assertTrue(email.content.startswith(b"#email,first_name,last_name,#shirt_size\n"))

        log = self.store.list_import_logs()[0]
        self.assertEqual(log["status"], "success")
        self.assertEqual(log["row_count"], 2)
        self.assertEqual(log["recipient_email"], "ops@example.com")
        self.assertIsNone(log["error_message"])

    def test_download_needs_no_recipient_or_mailer(self):
        outcome = submit_import(
            self.store, self.template.id, "roster.csv", ROSTER, {"#shirt_size": "L"}, delivery=DELIVERY_DOWNLOAD, now=NOW
        )
        self.assertIn("avery@example.com,Avery,Reed,L", outcome.result.csv_text)
        self.assertIsNone(self.store.list_import_logs()[0]["recipient_email"])

    def test_rejection_is_logged_and_reraised(self):
        with self.assertRaises(MissingRequiredFieldsError):
            submit_import(self.store, self.template.id, "roster.csv", ROSTER, delivery=DELIVERY_DOWNLOAD)
        log = self.store.list_import_logs()[0]
        self.assertEqual(log["status"], "error")
        self.assertEqual(log["error_kind"], "missing_required_fields")
        self.assertEqual(log["error_message"], "Missing required fields: #shirt_size")
        self.assertIsNone(log["row_count"])

        with self.assertRaises(StructuralError):
            submit_import(self.store, self.template.id, "roster.csv", b"First Name,Email\nA,a@x\n", delivery=DELIVERY_DOWNLOAD)
        self.assertEqual(len(self.store.list_import_logs()), 2)

    def test_missing_recipient_is_a_delivery_error(self):
        with self.assertRaisesRegex(DeliveryError, "Recipient email is not configured."):
            submit_import(self.store, self.template.id, "roster.csv", ROSTER, {"#shirt_size": "M"}, mailer=RecordingMailer())
        log = self.store.list_import_logs()[0]
        self.assertEqual(log["error_kind"], "delivery")
        self.assertEqual(log["row_count"], 2)

    def test_mailer_failure_is_logged(self):
        self.store.set_setting(RECIPIENT_SETTING, "ops@example.com")
        with self.assertRaises(DeliveryError):
            submit_import(
                self.store, self.template.id, "roster.csv", ROSTER, {"#shirt_size": "M"}, mailer=RecordingMailer(fail=True)
            )
        self.assertEqual(self.store.list_import_logs()[0]["status"], "error")

    def test_unknown_template_is_not_logged(self):
        with self.assertRaises(TemplateNotFoundError):
            submit_import(self.store, 42, "roster.csv", ROSTER, delivery=DELIVERY_DOWNLOAD)
        self.assertEqual(self.store.list_import_logs(), [])

    def test_invalid_fields_rejected_before_lookup(self):
        with self.assertRaises(InvalidFieldValuesError):
            submit_import(self.store, 42, "roster.csv", ROSTER, "{oops", delivery=DELIVERY_DOWNLOAD)


class ResendMailerTests(unittest.TestCase):
    def setUp(self):
        template = Template.from_columns(["#email"], name="Spring 10K", event_name="E", race_name="R", ticket_name="T")
        self.email = build_import_email(template, b"#email\na@example.com\n", "ops@example.com", NOW)

    def test_requires_api_key(self):
        with self.assertRaisesRegex(DeliveryError, "RESEND_API_KEY"):
            ResendMailer("", "from@example.com")

    def test_posts_base64_attachment(self):
        session = FakeSession(FakeResponse(body={"id": "abc"}))
        mailer = ResendMailer("key-123", "Imports <from@example.com>", session=session)
        self.assertEqual(mailer.send(self.email), {"id": "abc"})

        url, kwargs = session.calls[0]
        self.assertEqual(url, "https://api.resend.com/emails")
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer key-123")
        attachment = kwargs["json"]["attachments"][0]
        self.assertEqual(attachment["filename"], output_file_name(NOW))
        self.assertEqual(base64.b64decode(attachment["content"]), b"#email\na@example.com\n")
        self.assertEqual(kwargs["json"]["subject"], "Participant Import (E / R / T)")

    def test_http_failure_becomes_delivery_error(self):
        mailer = ResendMailer("key", "from@example.com", session=FakeSession(FakeResponse(status_code=422)))
        with self.assertRaisesRegex(DeliveryError, "Could not send import email"):
            mailer.send(self.email)

    def test_non_json_response_is_empty_dict(self):
        mailer = ResendMailer("key", "from@example.com", session=FakeSession(FakeResponse()))
        self.assertEqual(mailer.send(self.email), {})


if __name__ == "__main__":
    unittest.main()
