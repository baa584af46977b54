import unittest
import sys
import os
from unittest.mock import MagicMock, patch

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from review_coach.coach_ai import CoachAIUtil, split_concepts
from review_coach.vision import OCRResult

QUESTION_REPLY = """**질문:**
중심각이 100°로 바뀌면 원주각은 어떻게 될까요?

**핵심 개념:**
원주각, 중심각

**추론 과정:**
원주각은 같은 호에 대한 중심각의 절반입니다."""


class TestSplitConcepts(unittest.TestCase):
    def test_inputs(self):
        self.assertEqual(split_concepts("원주각, 반지름 ,"), ["원주각", "반지름"])
        self.assertEqual(split_concepts(["원주각", " ", "반지름"]), ["원주각", "반지름"])
        self.assertEqual(split_concepts(None), [])


class TestCoachAIUtil(unittest.TestCase):
    def setUp(self):
        self.openai = MagicMock()
        self.ai = CoachAIUtil("sk-test", openai=self.openai)

    def test_generate_question(self):
        self.openai.chat.return_value = QUESTION_REPLY
        ocr = OCRResult(latex="\\angle APB", text="원주각을 구하시오", concepts=["원주각", "반지름"])

        result = self.ai.generate_question(ocr)

        self.assertEqual(result.question, "중심각이 100°로 바뀌면 원주각은 어떻게 될까요?")
        self.assertEqual(result.core_concepts, "원주각, 중심각")
        self.assertEqual(result.curriculum.unit, "원의 성질")
        self.assertEqual(result.concept, ", ".join(result.curriculum.sub_concepts))
        self.assertEqual(result.level, "Intermediate")
        self.assertEqual(result.latex, "\\angle APB")
        self.assertEqual(result.parse_status, "complete")

        kwargs = self.openai.chat.call_args.kwargs
        self.assertEqual(kwargs["max_tokens"], 800)
        self.assertIn("원의 성질", kwargs["user_prompt"])
        self.assertIn("원주각을 구하시오", kwargs["user_prompt"])

        body = result.to_dict()
        self.assertEqual(set(body), {"question", "latex", "concept", "level", "coreConcepts", "reasoning", "curriculum", "parseStatus"})
        self.assertEqual(body["parseStatus"], "complete")
        self.assertEqual(body["curriculum"]["grade"], "중학교 3학년")

    def test_generate_question_without_classification(self):
        self.openai.chat.return_value = "형식 없는 답변"
        result = self.ai.generate_question(OCRResult(latex="", text="", concepts=["xyz"]))
        self.assertEqual(result.concept, "xyz")
        self.assertEqual(result.question, "형식 없는 답변")
        self.assertEqual(result.parse_status, "unparsed")

    def test_generate_specialized_questions(self):
        self.openai.chat.return_value = (
            "**1. 개념 진단 질문:**\n[질문 1] 원주각의 정의를 설명해 보세요.\n"
            "**2. 조건 변경 질문:**\n[질문 1] 호의 길이가 두 배가 되면 어떻게 될까요?\n"
        )
        result = self.ai.generate_specialized_questions(concepts="원주각, 반지름", problem_text="문제")

        self.assertEqual(result.concept_diagnosis, ["원주각의 정의를 설명해 보세요."])
        self.assertEqual(result.condition_change, ["호의 길이가 두 배가 되면 어떻게 될까요?"])
        self.assertEqual(result.misconception_exploration, [])
        self.assertEqual(result.parse_status, "partial")
        self.assertEqual(self.openai.chat.call_args.kwargs["max_tokens"], 2000)

    def test_generate_feedback(self):
        self.openai.chat.return_value = "**피드백:** 좋아요\n**개선점:** 근거\n**추가 질문:** 왜?"
        result = self.ai.generate_feedback(user_answer="40°", question="원주각은?")

        self.assertEqual(result.to_dict(), {"feedback": "좋아요", "improvements": "근거", "followUpQuestion": "왜?", "parseStatus": "complete"})
        prompt = self.openai.chat.call_args.kwargs["user_prompt"]
        self.assertIn("40°", prompt)
        self.assertIn("원주각은?", prompt)

    def test_generate_concept_question(self):
        self.openai.chat.return_value = "Question: 극한이 존재하지 않는 예는?\nQuestion Type: 반례 탐구"
        out = self.ai.generate_concept_question(concept="극한", level="Advanced")

        self.assertEqual(out["question"], "극한이 존재하지 않는 예는?")
        self.assertEqual(out["questionType"], "반례 탐구")
        self.assertEqual(out["conceptLevel"], "intermediate")
        self.assertIn("미분", out["relatedConcepts"])
        self.assertEqual(out["parseStatus"], "partial")
        self.assertEqual(out["level"], "Advanced")

    def test_enrich_concepts(self):
        ocr = OCRResult(latex="\\int_0^1 x dx", text="", concepts=["적분"])
        enriched = self.ai.enrich_concepts(ocr)
        self.assertEqual(enriched.concepts, ["적분"])
        self.assertTrue(enriched.concept_details)
        self.assertGreater(enriched.concept_confidence, 0)

        enriched = self.ai.enrich_concepts(OCRResult(latex="\\int_0^1 x dx", text="", concepts=[]))
        self.assertEqual(enriched.concepts, ["적분"])

    @patch("review_coach.coach_ai.vision.analyze_image")
    def test_analyze_image_enriches(self, mock_analyze):
        mock_analyze.return_value = OCRResult(latex="\\lim_{x \\to 0} x", text="극한값", concepts=[])
        ocr = self.ai.analyze_image(b"img", mime_type="image/png")

        self.assertIn("극한", ocr.concepts)
        self.assertIsNotNone(ocr.concept_confidence)
        args, kwargs = mock_analyze.call_args
        self.assertEqual(args[0], b"img")
        self.assertEqual(args[1].api_key, "sk-test")
        self.assertEqual(kwargs["mime_type"], "image/png")


if __name__ == "__main__":
    unittest.main()
