import os
import unittest
from unittest import mock

from auth import CredentialStore
from config import Settings, load_settings, parse_users


class TestSettings(unittest.TestCase):
    def test_defaults(self):
        settings = Settings()
        self.assertEqual(settings.sheet_names, ("sheet1", "sheet2", "sheet3"))
        self.assertEqual(settings.period_labels, ("July", "June", "May"))
        self.assertEqual(settings.due_offset, 500.0)
        self.assertEqual(settings.rows_per_page, 100)

    def test_load_from_environment(self):
        env = {
            "SHEET_NAMES": "main, aug, jul",
            "PERIOD_LABELS": "September,August,July",
            "DUE_FORMULA": "Clamped",
            "DUE_OFFSET": "300",
            "ROWS_PER_PAGE": "25",
            "DASHBOARD_USERS": "alice:pw1, bob:p:w2",
            "FLASK_SECRET_KEY": "fixed",
            "STORE_TTL": "600",
        }
        with mock.patch.dict(os.environ, env):
            settings = load_settings()
        self.assertEqual(settings.sheet_names, ("main", "aug", "jul"))
        self.assertEqual(settings.period_labels, ("September", "August", "July"))
        self.assertEqual(settings.due_formula, "clamped")
        self.assertEqual(settings.due_offset, 300.0)
        self.assertEqual(settings.rows_per_page, 25)
        self.assertEqual(settings.users, (("alice", "pw1"), ("bob", "p:w2")))
        self.assertEqual(settings.secret_key, "fixed")
        self.assertEqual(settings.store_ttl, 600.0)

    def test_sheet_and_period_counts_must_match(self):
        with self.assertRaises(ValueError):
            Settings(sheet_names=("a", "b"), period_labels=("July",))

    def test_rejects_unknown_formula(self):
        with self.assertRaises(ValueError):
            Settings(due_formula="guess")

    def test_rejects_duplicate_periods(self):
        with self.assertRaises(ValueError):
            Settings(sheet_names=("a", "b"), period_labels=("July", "July"))

    def test_parse_users_skips_malformed_entries(self):
        self.assertEqual(parse_users("nopassword,ok:1,"), [("ok", "1")])


class TestCredentialStore(unittest.TestCase):
    def setUp(self):
        self.store = CredentialStore([("01815128906", "Abc1234#"), ("ops", "pw")])

    def test_verify(self):
        self.assertTrue(self.store.verify("01815128906", "Abc1234#"))
        self.assertTrue(self.store.verify(" ops ", "pw"))

    def test_rejects_wrong_or_missing(self):
        self.assertFalse(self.store.verify("01815128906", "abc1234#"))
        self.assertFalse(self.store.verify("nobody", "pw"))
        self.assertFalse(self.store.verify("", ""))
        self.assertFalse(self.store.verify("ops", None))

    def test_len(self):
        self.assertEqual(len(self.store), 2)


if __name__ == "__main__":
    unittest.main()
