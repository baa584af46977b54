import unittest
import sys
import os
import types

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from review_coach.curriculum import CurriculumAnalyzer


class TestClassify(unittest.TestCase):
    def setUp(self):
        self.analyzer = CurriculumAnalyzer()

    def test_empty_concepts(self):
        result = self.analyzer.classify([])
        self.assertEqual(result.to_dict(), {
            "grade": None,
            "subject": None,
            "unit": None,
            "subConcepts": [],
            "confidence": 0,
        })

    def test_none_and_blank_concepts(self):
        self.assertIsNone(self.analyzer.classify(None).unit)
        self.assertEqual(self.analyzer.classify(["", "   "]).confidence, 0)

    def test_circle_properties_scenario(self):
        result = self.analyzer.classify(["원주각", "반지름"])
        self.assertEqual(result.grade, "중학교 3학년")
        self.assertEqual(result.subject, "기하")
        self.assertEqual(result.unit, "원의 성질")
        self.assertIn("원주각", result.sub_concepts)
        self.assertIn("반지름", result.sub_concepts)
        self.assertGreater(result.confidence, 0)
        self.assertLessEqual(result.confidence, 1.0)

    def test_keyword_only_match(self):
        result = self.analyzer.classify(["sin"])
        self.assertEqual(result.unit, "삼각비")
        self.assertEqual(result.sub_concepts, ["sin"])
        self.assertEqual(result.confidence, 1.0)

    def test_case_insensitive(self):
        result = self.analyzer.classify(["SIN"])
        self.assertEqual(result.unit, "삼각비")

    def test_integral_unit(self):
        result = self.analyzer.classify(["적분"])
        self.assertEqual(result.unit, "적분법")
        self.assertGreater(result.confidence, 0)

    def test_no_match(self):
        result = self.analyzer.classify(["xyz"])
        self.assertIsNone(result.grade)
        self.assertEqual(result.sub_concepts, [])
        self.assertEqual(result.confidence, 0)

    def test_tie_keeps_first_declared_unit(self):
        curriculum = types.MappingProxyType({
            "grade A": {"subject": {"unit A": ("벡터",)}},
            "grade B": {"subject": {"unit B": ("벡터",)}},
        })
        analyzer = CurriculumAnalyzer(curriculum=curriculum, unit_keywords={})
        result = analyzer.classify(["벡터"])
        self.assertEqual(result.grade, "grade A")
        self.assertEqual(result.unit, "unit A")

    def test_higher_score_wins_over_declaration_order(self):
        curriculum = types.MappingProxyType({
            "grade A": {"subject": {"unit A": ("벡터",)}},
            "grade B": {"subject": {"unit B": ("벡터", "벡터의 내적")}},
        })
        analyzer = CurriculumAnalyzer(curriculum=curriculum, unit_keywords={})
        result = analyzer.classify(["벡터"])
        self.assertEqual(result.unit, "unit B")
        self.assertEqual(result.sub_concepts, ["벡터", "벡터의 내적"])
        self.assertEqual(result.confidence, 1.0)

    def test_partial_coverage_confidence(self):
        curriculum = types.MappingProxyType({
            "grade": {"subject": {"unit": ("행렬",)}},
        })
        analyzer = CurriculumAnalyzer(curriculum=curriculum, unit_keywords={})
        result = analyzer.classify(["행렬", "xyz", "abc", "def"])
        self.assertAlmostEqual(result.confidence, 0.25)


class TestDifficultyLevel(unittest.TestCase):
    def setUp(self):
        self.analyzer = CurriculumAnalyzer()

    def test_known_grades(self):
        self.assertEqual(self.analyzer.get_difficulty_level("중학교 1학년"), "Basic")
        self.assertEqual(self.analyzer.get_difficulty_level("고등학교 2학년"), "Intermediate-Advanced")
        self.assertEqual(self.analyzer.get_difficulty_level("고등학교 3학년"), "Advanced")

    def test_unknown_grades_fall_back(self):
        for grade in ("", None, "대학교 1학년", "grade 12"):
            self.assertEqual(self.analyzer.get_difficulty_level(grade), "Intermediate")


if __name__ == "__main__":
    unittest.main()
