import unittest
from urllib.parse import unquote

from pipeline import build_status_rows
from reminders import (
    build_reminder_message,
    bulk_reminders,
    normalize_phone,
    reminder_for,
    tel_link,
    whatsapp_link,
)

PERIODS = ["July", "June", "May"]


def _rows():
    primary = [
        {"customer_id": "101", "PPPoE_Name": "alice", "client_phone": "01815-128906", "area": "North", "balance": -800},
        {"customer_id": "102", "PPPoE_Name": "bob", "client_phone": "12345", "area": "South", "balance": 200},
    ]
    return build_status_rows(primary, [[{"customer_id": "101"}], []], PERIODS)


class TestNormalizePhone(unittest.TestCase):
    def test_accepted_variants(self):
        for raw in [
            "01815128906",
            "+880 1815-128906",
            "(018) 1512-8906",
            "1815128906",
            "008801815128906",
            "8801815128906",
            1815128906,
        ]:
            with self.subTest(raw=raw):
                self.assertEqual(normalize_phone(raw), "8801815128906")

    def test_idempotent_on_normalized_numbers(self):
        once = normalize_phone("8801712345678")
        self.assertEqual(once, "8801712345678")
        self.assertEqual(normalize_phone(once), once)

    def test_rejects_wrong_lengths(self):
        for raw in ["", None, "12345", "88018151289061", "0181512890", "9991815128906", "abc"]:
            with self.subTest(raw=raw):
                self.assertIsNone(normalize_phone(raw))

    def test_other_country_code(self):
        self.assertEqual(normalize_phone("0712 345 678", country_code="44", national_digits=10), None)
        self.assertEqual(normalize_phone("07123456789", country_code="44"), "447123456789")


class TestLinks(unittest.TestCase):
    def test_whatsapp_link_encodes_message(self):
        link = whatsapp_link("01815128906", "Hi there & more")
        self.assertEqual(link, "https://wa.me/8801815128906?text=Hi%20there%20%26%20more")

    def test_whatsapp_link_none_for_bad_phone(self):
        self.assertIsNone(whatsapp_link("123", "hello"))

    def test_tel_link(self):
        self.assertEqual(tel_link("01815128906"), "tel:01815128906")
        self.assertIsNone(tel_link(""))

    def test_message_mentions_unpaid_periods_and_due(self):
        message = build_reminder_message(_rows()[0])
        self.assertIn("alice", message)
        self.assertIn("Client ID: 101", message)
        self.assertIn("July, June", message)
        self.assertIn("1300 TK", message)

    def test_reminder_for_round_trips_message(self):
        item = reminder_for(_rows()[0])
        self.assertTrue(item["link"].startswith("https://wa.me/8801815128906?text="))
        self.assertEqual(unquote(item["link"].split("text=", 1)[1]), item["message"])

    def test_reminder_for_custom_message(self):
        item = reminder_for(_rows()[0], message="Pay now")
        self.assertEqual(item["message"], "Pay now")
        self.assertTrue(item["link"].endswith("text=Pay%20now"))


class TestBulkReminders(unittest.TestCase):
    def test_splits_usable_and_skipped(self):
        reminders, skipped = bulk_reminders(_rows())
        self.assertEqual([r["customer_id"] for r in reminders], ["101"])
        self.assertEqual(skipped, [{"customer_id": "102", "name": "bob", "phone": "12345"}])

    def test_empty_view(self):
        self.assertEqual(bulk_reminders([]), ([], []))


if __name__ == "__main__":
    unittest.main()
