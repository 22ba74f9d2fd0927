import json
import os
import unittest

os.environ.setdefault("ANALYTICS_ENABLED", "0")

from app.ai.response_parser import extract_block, parse
from app.core.errors import ParseError
from app.schemas.ai_output import AnalysisOutput, RewriteOutput, TagsOutput, TemplateRecommendationOutput


def _analysis(**subscores) -> dict:
    scores = {
        "clarity": 70,
        "technicalDepth": 65,
        "seniority": 60,
        "atsAlignment": 55,
        "completeness": 75,
        "toneConsistency": 80,
    }
    scores.update(subscores)
    return {
        "subscores": scores,
        "recommendations": [
            {"title": "Quantify impact", "description": "Add numbers.", "dimension": "atsAlignment"}
        ],
    }


def _fenced(payload: dict) -> str:
    return f"Here is the analysis you asked for.\n```json\n{json.dumps(payload)}\n```\nLet me know!"


class ExtractBlockTests(unittest.TestCase):
    def test_prefers_fenced_block(self):
        raw = 'Note {"ignored": true}\n```json\n{"picked": 1}\n```'
        self.assertEqual(extract_block(raw), {"picked": 1})

    def test_falls_back_to_first_balanced_object(self):
        raw = 'Sure! {"summary": "Uses {braces} inside strings"} trailing text'
        self.assertEqual(extract_block(raw), {"summary": "Uses {braces} inside strings"})

    def test_unfenced_language_less_block(self):
        self.assertEqual(extract_block('```\n{"a": [1, 2]}\n```'), {"a": [1, 2]})

    def test_skips_unbalanced_brace_before_valid_object(self):
        raw = 'Here is the result { as requested: {"improved": "ok"}'
        self.assertEqual(extract_block(raw), {"improved": "ok"})

    def test_skips_balanced_non_json_wrapper(self):
        raw = 'Result {note: {"improved": "ok"} } done'
        self.assertEqual(extract_block(raw), {"improved": "ok"})

    def test_rejects_empty_and_unreadable_text(self):
        for raw in ("", "   ", "no json here", "```json\n[1, 2]\n```", '{"unterminated": '):
            with self.assertRaises(ParseError):
                extract_block(raw)


class ParseTests(unittest.TestCase):
    def test_valid_analysis(self):
        result = parse(_fenced(_analysis()), AnalysisOutput)
        self.assertEqual(result.subscores.clarity, 70)
        self.assertEqual(result.recommendations[0].dimension, "atsAlignment")

    def test_scores_within_tolerance_are_clamped(self):
        result = parse(_fenced(_analysis(clarity=104.6, seniority=-3)), AnalysisOutput)
        self.assertEqual(result.subscores.clarity, 100)
        self.assertEqual(result.subscores.seniority, 0)

    def test_scores_outside_tolerance_are_rejected(self):
        for bad in (111, -11, "80", True, None):
            with self.subTest(value=bad):
                with self.assertRaises(ParseError):
                    parse(_fenced(_analysis(clarity=bad)), AnalysisOutput)

    def test_missing_key_is_rejected(self):
        payload = _analysis()
        del payload["subscores"]["toneConsistency"]
        with self.assertRaises(ParseError):
            parse(_fenced(payload), AnalysisOutput)

    def test_unknown_dimension_is_rejected(self):
        payload = _analysis()
        payload["recommendations"][0]["dimension"] = "charisma"
        with self.assertRaises(ParseError):
            parse(_fenced(payload), AnalysisOutput)

    def test_extra_keys_are_ignored(self):
        payload = _analysis()
        payload["overallScore"] = 99
        result = parse(_fenced(payload), AnalysisOutput)
        self.assertFalse(hasattr(result, "overallScore"))

    def test_no_string_to_number_coercion(self):
        raw = _fenced({"sections": [{"order": "0", "type": "summary", "content": "Hi"}]})
        with self.assertRaises(ParseError):
            parse(raw, RewriteOutput)

    def test_unknown_section_type_is_rejected(self):
        raw = _fenced({
            "recommendedTemplate": "timeline",
            "recommendedTheme": "light-blue",
            "recommendedSectionOrder": ["summary", "hobbies"],
            "rationale": "Fits.",
        })
        with self.assertRaises(ParseError):
            parse(raw, TemplateRecommendationOutput)

    def test_tag_confidence_bounds(self):
        ok = parse(_fenced({"tags": [{"label": "python", "confidence": 1}]}), TagsOutput)
        self.assertEqual(ok.tags[0].confidence, 1.0)
        with self.assertRaises(ParseError):
            parse(_fenced({"tags": [{"label": "python", "confidence": 1.5}]}), TagsOutput)

    def test_invalid_output_is_logged(self):
        with self.assertLogs("app.ai.response_parser", level="WARNING") as logs:
            with self.assertRaises(ParseError):
                parse(_fenced({"sections": "nope"}), RewriteOutput, operation="rewrite")
        self.assertIn("operation=rewrite", logs.output[0])


if __name__ == "__main__":
    unittest.main()
