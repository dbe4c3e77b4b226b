"""
Tests for the rubric table and the deterministic aggregation engine
"""
import unittest

from utils.models import CriterionVerdict
from utils.rubric import (
    CATEGORIES, RUBRIC_MAX, TOTAL_POSSIBLE_SCORE, Band,
    aggregate, aggregate_artifact, band_for, canonical_criterion,
    category_record_scores, verdicts_from_llm,
)


def _all_max():
    return {name: CriterionVerdict(score=max_score, label="Demonstrated")
            for name, max_score in RUBRIC_MAX.items()}


class TestRubricTable(unittest.TestCase):

    def test_totals(self):
        self.assertEqual(len(RUBRIC_MAX), 18)
        self.assertEqual(sum(RUBRIC_MAX.values()), 23)
        self.assertEqual(TOTAL_POSSIBLE_SCORE, 92)

    def test_canonical_criterion_aliases(self):
        self.assertEqual(canonical_criterion("tone"), "Tone")
        self.assertEqual(canonical_criterion(" SSA "),
                         "Suicide Safety Assessment-SSA Initiation and Completion")
        self.assertEqual(canonical_criterion("Protective Factors"), "Exploration of Buffers")
        self.assertIsNone(canonical_criterion("Overall Impression"))
        self.assertIsNone(canonical_criterion(3))


class TestBands(unittest.TestCase):

    def test_band_boundaries(self):
        self.assertEqual(band_for(100.0), Band.MEETS)
        self.assertEqual(band_for(80.0), Band.MEETS)
        self.assertEqual(band_for(79.9), Band.IMPROVEMENT_NEEDED)
        self.assertEqual(band_for(70.0), Band.IMPROVEMENT_NEEDED)
        self.assertEqual(band_for(69.9), Band.NOT_AT)
        self.assertEqual(band_for(0.0), Band.NOT_AT)


class TestAggregate(unittest.TestCase):

    def test_all_max_scores(self):
        evaluation = aggregate(_all_max())

        self.assertEqual(evaluation.totalRawScore, 23)
        self.assertEqual(evaluation.totalMultipliedScore, 92)
        self.assertEqual(evaluation.totalPossibleScore, 92)
        self.assertEqual(evaluation.percentageScore, 100.0)
        self.assertEqual(evaluation.criteria, "Meets Criteria")
        self.assertEqual(evaluation.categories["RAPPORT SKILLS"].rawScore, 10)
        self.assertEqual(evaluation.categories["COUNSELING SKILLS"].multipliedScore, 40)
        self.assertIsNone(evaluation.processingWarning)

    def test_empty_verdicts(self):
        evaluation = aggregate({})

        self.assertEqual(evaluation.totalRawScore, 0)
        self.assertEqual(evaluation.percentageScore, 0.0)
        self.assertEqual(evaluation.criteria, "Not at Criteria")
        self.assertEqual(set(evaluation.categories), set(CATEGORIES))

    def test_absent_criteria_contribute_zero(self):
        verdicts = _all_max()
        del verdicts["Suicide Safety Assessment-SSA Initiation and Completion"]
        del verdicts["Identifies a Concrete Plan of Safety and Well-being"]

        evaluation = aggregate(verdicts)

        self.assertEqual(evaluation.totalRawScore, 17)
        self.assertEqual(evaluation.totalMultipliedScore, 68)
        self.assertAlmostEqual(evaluation.percentageScore, 68 / 92 * 100)
        self.assertEqual(evaluation.criteria, "Improvement Needed")
        self.assertNotIn("Suicide Safety Assessment-SSA Initiation and Completion",
                         evaluation.categories["COUNSELING SKILLS"].criteria)

    def test_pure_and_idempotent(self):
        verdicts = _all_max()
        first = aggregate(verdicts, "job-1")
        second = aggregate(verdicts, "job-1")

        self.assertEqual(first.model_dump(), second.model_dump())
        self.assertEqual(verdicts, _all_max())

    def test_score_over_rubric_max_not_clamped(self):
        evaluation = aggregate({"Tone": CriterionVerdict(score=3)})

        self.assertEqual(evaluation.categories["RAPPORT SKILLS"].rawScore, 3)
        self.assertEqual(evaluation.totalMultipliedScore, 12)

    def test_category_record_scores(self):
        columns = category_record_scores(aggregate(_all_max()))

        self.assertEqual(columns, {"RapportSkills": 40, "CounselingSkills": 40,
                                   "OrganizationalSkills": 8, "TechnicalSkills": 4})


class TestVerdictsFromLLM(unittest.TestCase):

    def test_canonicalises_and_coerces(self):
        payload = {
            "tone": {"score": "1", "label": "Demonstrated", "observation": "Warm", "evidence": ""},
            "SSA": {"score": 4.0, "label": "Demonstrated"},
            "Greeting": 1,
            "Overall": {"score": 5},
        }

        verdicts = verdicts_from_llm(payload)

        self.assertEqual(set(verdicts), {"Tone", "Greeting",
                                         "Suicide Safety Assessment-SSA Initiation and Completion"})
        self.assertEqual(verdicts["Tone"].score, 1)
        self.assertEqual(verdicts["Tone"].evidence, "N/A")
        self.assertEqual(verdicts["Suicide Safety Assessment-SSA Initiation and Completion"].score, 4)

    def test_invalid_scores_are_dropped(self):
        payload = {
            "Tone": {"score": -1},
            "Professional": {"score": "high"},
            "Greeting": {"score": 0.5},
            "Non-Judgmental": {"score": True},
            "Values the Person": {"score": 1},
        }

        verdicts = verdicts_from_llm(payload)

        self.assertEqual(list(verdicts), ["Values the Person"])

    def test_non_finite_scores_are_dropped(self):
        payload = {
            "Tone": {"score": float("inf")},
            "Professional": {"score": float("nan")},
            "Greeting": {"score": "-inf"},
            "Values the Person": {"score": 1},
        }

        verdicts = verdicts_from_llm(payload)

        self.assertEqual(list(verdicts), ["Values the Person"])

    def test_null_text_fields_keep_the_score(self):
        verdicts = verdicts_from_llm({"Tone": {"score": 1, "label": None, "observation": None}})

        self.assertEqual(verdicts["Tone"].score, 1)
        self.assertEqual(verdicts["Tone"].label, "")
        self.assertEqual(verdicts["Tone"].observation, "")
        self.assertEqual(aggregate(verdicts).totalRawScore, 1)


class TestAggregateArtifact(unittest.TestCase):

    def test_normal_artifact(self):
        artifact = {name: {"score": m, "label": "Demonstrated"} for name, m in RUBRIC_MAX.items()}

        evaluation, degraded = aggregate_artifact(artifact)

        self.assertFalse(degraded)
        self.assertEqual(evaluation.percentageScore, 100.0)

    def test_degraded_artifact_scores_empty_with_warning(self):
        evaluation, degraded = aggregate_artifact({"raw_analysis": "not json", "summary": "s"})

        self.assertTrue(degraded)
        self.assertEqual(evaluation.totalRawScore, 0)
        self.assertEqual(evaluation.criteria, "Not at Criteria")
        self.assertIsNotNone(evaluation.processingWarning)


if __name__ == '__main__':
    unittest.main()
