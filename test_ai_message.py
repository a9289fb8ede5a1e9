import unittest
from unittest import mock

import requests

from ai_message import MAX_ATTEMPTS, build_reminder_prompt, call_text_model, generate_reminder_text
from config import Settings
from pipeline import build_status_rows

PERIODS = ["July", "June", "May"]

OK_BODY = {"candidates": [{"content": {"parts": [{"text": "Dear alice, please pay 1300 TK."}]}}]}


def _row():
    primary = [{"customer_id": "101", "PPPoE_Name": "alice", "client_phone": "01815128906", "area": "North", "balance": -800}]
    return build_status_rows(primary, [[{"customer_id": "101"}], []], PERIODS)[0]


def _response(status=200, body=None, text=""):
    resp = mock.Mock()
    resp.status_code = status
    resp.text = text
    resp.json.return_value = body if body is not None else {}
    return resp


def _call(**kwargs):
    defaults = dict(api_key="key", api_url="https://ai.example/{model}:generate", model="m1", sleep=mock.Mock())
    defaults.update(kwargs)
    return call_text_model("prompt", **defaults)


class TestPrompt(unittest.TestCase):
    def test_prompt_is_grounded_in_row(self):
        prompt = build_reminder_prompt(_row())
        self.assertIn("Client ID: 101", prompt)
        self.assertIn("Unpaid months: July, June", prompt)
        self.assertIn("Total due: 1300 TK", prompt)


class TestCallTextModel(unittest.TestCase):
    @mock.patch("ai_message.requests.post")
    def test_missing_key_skips_request(self, mock_post):
        result = _call(api_key="")
        self.assertIsNone(result["content"])
        self.assertIn("not configured", result["error"])
        mock_post.assert_not_called()

    @mock.patch("ai_message.requests.post")
    def test_success(self, mock_post):
        mock_post.return_value = _response(body=OK_BODY)
        result = _call()
        self.assertEqual(result, {"content": "Dear alice, please pay 1300 TK.", "error": None})
        url = mock_post.call_args[0][0]
        self.assertEqual(url, "https://ai.example/m1:generate")
        self.assertEqual(mock_post.call_args[1]["headers"]["x-goog-api-key"], "key")

    @mock.patch("ai_message.requests.post")
    def test_retries_busy_then_succeeds(self, mock_post):
        sleep = mock.Mock()
        mock_post.side_effect = [_response(503), _response(429), _response(body=OK_BODY)]
        result = _call(sleep=sleep)
        self.assertIsNone(result["error"])
        self.assertEqual(mock_post.call_count, 3)
        self.assertEqual([c[0][0] for c in sleep.call_args_list], [1, 2])

    @mock.patch("ai_message.requests.post")
    def test_any_server_error_is_retried(self, mock_post):
        mock_post.side_effect = [_response(501), _response(505), _response(body=OK_BODY)]
        result = _call()
        self.assertEqual(result["content"], "Dear alice, please pay 1300 TK.")
        self.assertEqual(mock_post.call_count, 3)

    @mock.patch("ai_message.requests.post")
    def test_gives_up_after_max_attempts(self, mock_post):
        mock_post.side_effect = requests.exceptions.ConnectionError("offline")
        result = _call()
        self.assertIsNone(result["content"])
        self.assertIn("Could not reach AI service", result["error"])
        self.assertEqual(mock_post.call_count, MAX_ATTEMPTS)

    @mock.patch("ai_message.requests.post")
    def test_client_error_is_not_retried(self, mock_post):
        mock_post.return_value = _response(400, text="bad request")
        result = _call()
        self.assertIn("(400)", result["error"])
        self.assertEqual(mock_post.call_count, 1)

    @mock.patch("ai_message.requests.post")
    def test_empty_or_malformed_response(self, mock_post):
        mock_post.return_value = _response(body={"candidates": []})
        self.assertEqual(_call()["error"], "Empty response from AI model")

        bad = _response()
        bad.json.side_effect = ValueError("not json")
        mock_post.return_value = bad
        self.assertIn("parse error", _call()["error"])

    @mock.patch("ai_message.call_text_model")
    def test_generate_uses_settings(self, mock_call):
        mock_call.return_value = {"content": "hi", "error": None}
        settings = Settings(ai_api_key="k", ai_model="m2", secret_key="s")
        self.assertEqual(generate_reminder_text(_row(), settings)["content"], "hi")
        kwargs = mock_call.call_args[1]
        self.assertEqual(kwargs["api_key"], "k")
        self.assertEqual(kwargs["model"], "m2")


if __name__ == "__main__":
    unittest.main()
