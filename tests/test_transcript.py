"""
Tests for transcript normalisation and the Transcribe Call Analytics conversion
"""
import unittest

from utils.error_handler import ValidationError
from utils.transcript import (
    MAX_SPEAKER_CHARS, analytics_to_raw, ms_to_timestamp, normalise_transcript,
)


def _utterance(speaker="AGENT", text="Thanks for calling, how can I help?",
               begin="00:01.250", end="00:03.900"):
    return {"speaker": speaker, "text": text, "beginTime": begin, "endTime": end}


class TestNormaliseTranscript(unittest.TestCase):

    def test_valid_transcript(self):
        raw = {"summary": "Caller discussed stress at work.",
               "transcript": [_utterance(), _utterance("CUSTOMER", "I just need to talk", "00:04.000", "00:06.120")]}

        canonical = normalise_transcript(raw)

        self.assertEqual(canonical.summary, "Caller discussed stress at work.")
        self.assertEqual(len(canonical.transcript), 2)
        self.assertEqual(canonical.transcript[1].speaker, "CUSTOMER")
        self.assertEqual(
            canonical.as_prompt_text(),
            "00:01.250 AGENT: Thanks for calling, how can I help?\n\n00:04.000 CUSTOMER: I just need to talk",
        )

    def test_missing_summary_defaults_to_empty(self):
        canonical = normalise_transcript({"transcript": [_utterance()]})
        self.assertEqual(canonical.summary, "")

    def test_speaker_is_sanitised_and_truncated(self):
        raw = {"transcript": [_utterance(speaker="Agent #1 (Jane)"),
                              _utterance(speaker="A" * 80)]}

        canonical = normalise_transcript(raw)

        self.assertEqual(canonical.transcript[0].speaker, "Agent1Jane")
        self.assertEqual(len(canonical.transcript[1].speaker), MAX_SPEAKER_CHARS)

    def test_script_injection_names_index(self):
        raw = {"transcript": [_utterance(), _utterance(text="hello <script>alert(1)</script>")]}

        with self.assertRaises(ValidationError) as ctx:
            normalise_transcript(raw)

        self.assertIn("transcript[1].text", ctx.exception.message)
        self.assertEqual(ctx.exception.field, "transcript[1].text")

    def test_injection_in_summary_rejected(self):
        with self.assertRaises(ValidationError) as ctx:
            normalise_transcript({"summary": "<iframe src=x>", "transcript": [_utterance()]})
        self.assertEqual(ctx.exception.field, "summary")

    def test_bad_timestamp_rejected(self):
        for bad in ["1:02.000", "00:61.000", "00:01", "00:01.25", 1250]:
            with self.subTest(begin=bad):
                with self.assertRaises(ValidationError) as ctx:
                    normalise_transcript({"transcript": [_utterance(begin=bad)]})
                self.assertIn("transcript[0].beginTime", ctx.exception.message)

    def test_three_digit_minutes_accepted(self):
        canonical = normalise_transcript({"transcript": [_utterance(begin="125:00.000", end="125:03.000")]})
        self.assertEqual(canonical.transcript[0].beginTime, "125:00.000")

    def test_empty_or_non_list_transcript_rejected(self):
        for raw in [{"transcript": []}, {"transcript": "hello"}, {}, "not-a-dict"]:
            with self.subTest(raw=raw):
                with self.assertRaises(ValidationError):
                    normalise_transcript(raw)

    def test_oversized_text_rejected(self):
        with self.assertRaises(ValidationError):
            normalise_transcript({"transcript": [_utterance(text="x" * 10001)]})
        with self.assertRaises(ValidationError):
            normalise_transcript({"summary": "x" * 5001, "transcript": [_utterance()]})

    def test_non_string_speaker_rejected(self):
        with self.assertRaises(ValidationError) as ctx:
            normalise_transcript({"transcript": [_utterance(speaker=None)]})
        self.assertEqual(ctx.exception.field, "transcript[0].speaker")

    def test_speaker_empty_after_sanitising(self):
        with self.assertRaises(ValidationError):
            normalise_transcript({"transcript": [_utterance(speaker="!!!")]})


class TestAnalyticsConversion(unittest.TestCase):

    def test_ms_to_timestamp(self):
        self.assertEqual(ms_to_timestamp(0), "00:00.000")
        self.assertEqual(ms_to_timestamp(61250), "01:01.250")
        self.assertEqual(ms_to_timestamp(7260001), "121:00.001")
        with self.assertRaises(ValueError):
            ms_to_timestamp(-1)

    def test_analytics_to_raw(self):
        analytics = {
            "Transcript": [
                {"ParticipantRole": "AGENT", "Content": "Crisis line, this is Jane.",
                 "BeginOffsetMillis": 1200, "EndOffsetMillis": 3400},
                {"ParticipantRole": "CUSTOMER", "Content": "Hi.",
                 "BeginOffsetMillis": 3500, "EndOffsetMillis": 3900},
            ],
            "ConversationCharacteristics": {
                "ContactSummary": {"AutoGenerated": {"OverallSummary": {"Content": "Brief check-in call."}}}
            },
        }

        raw = analytics_to_raw(analytics)
        canonical = normalise_transcript(raw)

        self.assertEqual(raw["summary"], "Brief check-in call.")
        self.assertEqual(raw["transcript"][0]["beginTime"], "00:01.200")
        self.assertEqual([u.speaker for u in canonical.transcript], ["AGENT", "CUSTOMER"])

    def test_analytics_without_summary(self):
        raw = analytics_to_raw({"Transcript": []})
        self.assertEqual(raw, {"summary": "", "transcript": []})


if __name__ == '__main__':
    unittest.main()
