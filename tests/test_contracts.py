from __future__ import annotations

import re
import unittest

from roster_mapper.contracts import CONTRACT_VERSIONS, build_contract, build_run_summary, utc_now_iso, with_contract
from roster_mapper.engine import run_import
from roster_mapper.errors import MissingRequiredFieldsError, RowValueError, StructuralError
from roster_mapper.templates import Template


class ContractTests(unittest.TestCase):
    def test_every_contract_has_a_semver(self):
        for name, version in CONTRACT_VERSIONS.items():
            with self.subTest(name=name):
                self.assertTrue(name.startswith("roster_mapper."))
                self.assertRegex(version, r"^\d+\.\d+\.\d+$")
                self.assertEqual(build_contract(name), {"name": name, "version": version})

    def test_with_contract_prefixes_payload(self):
        payload = with_contract("roster_mapper.template", {"template": {"id": 1}})
        self.assertEqual(payload["contract"]["name"], "roster_mapper.template")
        self.assertEqual(payload["schema_version"], payload["contract"]["version"])
        self.assertEqual(payload["template"], {"id": 1})

    def test_unknown_contract_is_a_key_error(self):
        with self.assertRaises(KeyError):
            build_contract("roster_mapper.unknown")

    def test_run_summary_counts_warnings(self):
        summary = build_run_summary(command="import", input_file="roster.csv", warnings=["a", "b"], metrics={"row_count": 3})
        self.assertEqual(summary["tool"], "roster-mapper")
        self.assertEqual(summary["status"], "ok")
        self.assertEqual(summary["warnings_count"], 2)
        self.assertEqual(summary["metrics"], {"row_count": 3})
        self.assertIsNone(summary["error"])

    def test_timestamps_are_utc_seconds(self):
        self.assertRegex(utc_now_iso(), r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}Z$")

    def test_import_summary_shape(self):
        template = Template.from_columns(["#email", "first_name", "last_name"])
        result = run_import(b"First Name,Last Name,Email\nAvery,Reed,a@example.com\n", template)
        summary = result.summary()
        self.assertEqual(
            sorted(summary),
            ["column_count", "column_mapping", "row_count", "stage", "warnings"],
        )
        self.assertEqual(summary["stage"], "serialized")


class ErrorPayloadTests(unittest.TestCase):
    def test_error_payloads_carry_kind_and_stage(self):
        self.assertEqual(
            StructuralError("CSV has no rows.", stage="received").to_dict(),
            {"kind": "structural", "message": "CSV has no rows.", "stage": "received"},
        )
        missing = MissingRequiredFieldsError(["shirt_size"], stage="header_matched").to_dict()
        self.assertEqual(missing["missing"], ["shirt_size"])
        row = RowValueError(2, "last_name", stage="rows_transformed").to_dict()
        self.assertEqual((row["row"], row["column"], row["kind"]), (2, "last_name", "row_value"))
        self.assertTrue(re.match(r"Row 2 ", row["message"]))


if __name__ == "__main__":
    unittest.main()
