import unittest
import sys
import os

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from review_coach import prompts
from review_coach.curriculum import CurriculumAnalysis, CurriculumAnalyzer


SPECIALIZED_REPLY = """**1. 개념 진단 질문:**
[질문 1] 원주각과 중심각의 관계를 설명해 보세요.
[질문 2] 같은 호에 대한 원주각은 왜 모두 같을까요?

**2. 조건 변경 질문:**
1. 만약 점 P가 호 위가 아니라 원 내부에 있다면 각의 크기는 어떻게 될까요?
2. 짧음

**3. 오개념 탐색 질문:**
• 원주각이 중심각과 같다고 생각하는 학생에게 어떤 반례를 보여줄 수 있을까요?

**엄격한 제한사항:**
- 이 블록은 질문이 아닙니다
"""


class TestParseQuestionResponse(unittest.TestCase):
    def test_labelled_sections(self):
        parsed = prompts.parse_question_response("**질문:** Q1\n\n**핵심 개념:** C1")
        self.assertEqual(parsed.get("question"), "Q1")
        self.assertEqual(parsed.get("concepts"), "C1")
        self.assertEqual(parsed.get("reasoning"), "")
        self.assertEqual(parsed.status, "partial")

    def test_no_markers_falls_back_to_whole_text(self):
        parsed = prompts.parse_question_response("  원주각이 중심각의 절반인 이유는?  ")
        self.assertEqual(parsed.get("question"), "원주각이 중심각의 절반인 이유는?")
        self.assertEqual(parsed.get("concepts"), "")
        self.assertEqual(parsed.status, "unparsed")

    def test_reordered_headers(self):
        parsed = prompts.parse_question_response("**추론 과정:** R1\n**핵심 개념:** C1\n**질문:** Q1")
        self.assertEqual(parsed.get("question"), "Q1")
        self.assertEqual(parsed.get("concepts"), "C1")
        self.assertEqual(parsed.get("reasoning"), "R1")
        self.assertEqual(parsed.status, "complete")

    def test_trailing_restriction_block_is_not_captured(self):
        parsed = prompts.parse_question_response(
            "**질문:**\nQ1\n\n**핵심 개념:**\nC1\n\n**추론 과정:**\nR1\n\n**엄격한 제한사항:**\n- 금지"
        )
        self.assertEqual(parsed.get("reasoning"), "R1")

    def test_empty_text(self):
        parsed = prompts.parse_question_response("")
        self.assertEqual(parsed.get("question"), "")
        self.assertEqual(parsed.status, "unparsed")


class TestParseFeedbackResponse(unittest.TestCase):
    def test_sections(self):
        parsed = prompts.parse_feedback_response(
            "**피드백:** 잘했어요\n**개선점:** 근거를 더 쓰세요\n**추가 질문:** 조건이 바뀐다면?"
        )
        self.assertEqual(parsed.get("feedback"), "잘했어요")
        self.assertEqual(parsed.get("improvements"), "근거를 더 쓰세요")
        self.assertEqual(parsed.get("followUpQuestion"), "조건이 바뀐다면?")

    def test_fallback(self):
        parsed = prompts.parse_feedback_response("좋은 답변입니다.")
        self.assertEqual(parsed.get("feedback"), "좋은 답변입니다.")
        self.assertEqual(parsed.get("improvements"), "")


class TestParseSpecializedResponse(unittest.TestCase):
    def test_split_and_filter(self):
        questions, status = prompts.parse_specialized_response(SPECIALIZED_REPLY)
        self.assertEqual(status, "complete")
        self.assertEqual(questions["conceptDiagnosis"], [
            "원주각과 중심각의 관계를 설명해 보세요.",
            "같은 호에 대한 원주각은 왜 모두 같을까요?",
        ])
        self.assertEqual(questions["conditionChange"], [
            "만약 점 P가 호 위가 아니라 원 내부에 있다면 각의 크기는 어떻게 될까요?",
        ])
        self.assertEqual(questions["misconceptionExploration"], [
            "원주각이 중심각과 같다고 생각하는 학생에게 어떤 반례를 보여줄 수 있을까요?",
        ])

    def test_missing_sections(self):
        questions, status = prompts.parse_specialized_response("아무 형식도 없는 답변")
        self.assertEqual(status, "unparsed")
        self.assertEqual(questions, {
            "conceptDiagnosis": [],
            "conditionChange": [],
            "misconceptionExploration": [],
        })


class TestBuildPrompts(unittest.TestCase):
    def setUp(self):
        concepts = ["원주각", "반지름"]
        analysis = CurriculumAnalyzer().classify(concepts)
        self.ctx = prompts.PromptContext(
            concepts=concepts,
            analysis=analysis,
            level="Intermediate",
            problem_text="원 O에서 중심각이 80°일 때 원주각을 구하시오.",
        )

    def test_question_prompt_content(self):
        prompt = prompts.build_question_prompt(self.ctx)
        self.assertIn("원주각, 반지름", prompt)
        self.assertIn("원의 성질", prompt)
        self.assertIn("중학교 3학년", prompt)
        self.assertIn("실생활 예시나 다른 분야로의 확장을 절대 금지합니다", prompt)
        self.assertNotIn("**수학 표현식:**", prompt)

    def test_latex_block(self):
        ctx = prompts.PromptContext(
            concepts=["적분"], analysis=CurriculumAnalysis.empty(), level="Intermediate", latex="\\int_0^1 x dx"
        )
        prompt = prompts.build_specialized_prompt(ctx)
        self.assertIn("**수학 표현식:**\n\\int_0^1 x dx", prompt)
        self.assertIn("미분류", prompt)

    def test_main_concepts(self):
        self.assertEqual(self.ctx.main_concepts, ", ".join(self.ctx.analysis.sub_concepts))
        empty = prompts.PromptContext(concepts=["a", "b"], analysis=CurriculumAnalysis.empty(), level="Intermediate")
        self.assertEqual(empty.main_concepts, "a, b")

    def test_question_round_trip(self):
        prompt = prompts.build_question_prompt(self.ctx)
        answers = {
            "question": "중심각이 100°로 바뀌면 원주각은 어떻게 될까요?",
            "concepts": "원주각, 중심각",
            "reasoning": "원주각은 같은 호에 대한 중심각의 절반이다.",
        }
        completion = []
        for header, field in prompts.QUESTION_SECTIONS:
            self.assertIn(f"**{header}:**", prompt)
            completion.append(f"**{header}:**\n{answers[field]}")
        parsed = prompts.parse_question_response("\n\n".join(completion))
        self.assertEqual(parsed.fields, answers)
        self.assertEqual(parsed.status, "complete")

    def test_feedback_round_trip(self):
        prompt = prompts.build_feedback_prompt(question="Q", user_answer="A")
        answers = {"feedback": "F", "improvements": "I", "followUpQuestion": "N"}
        completion = []
        for header, field in prompts.FEEDBACK_SECTIONS:
            self.assertIn(f"**{header}:**", prompt)
            completion.append(f"**{header}:**\n{answers[field]}")
        self.assertEqual(prompts.parse_feedback_response("\n\n".join(completion)).fields, answers)

    def test_concept_question_prompt(self):
        prompt = prompts.build_concept_question_prompt(concept="극한", level="Advanced", focus="좌극한과 우극한")
        self.assertTrue(prompt.startswith("한국어로"))
        self.assertIn("Concept: 극한", prompt)
        self.assertIn("Focus: 좌극한과 우극한", prompt)
        english = prompts.build_concept_question_prompt(concept="limit", language="en")
        self.assertTrue(english.startswith("In English"))
        self.assertNotIn("\nFocus:", english)


class TestParseConceptQuestionResponse(unittest.TestCase):
    def test_complete_reply(self):
        reply = "\n".join([
            "Question: 좌극한과 우극한이 다르면 극한은 존재할까요?",
            "Question Type: 조건 분석",
            "Conceptual Focus:",
            "- 극한의 존재 조건",
            "- 좌극한과 우극한",
            "Expected Reasoning:",
            "1. 두 값을 비교한다",
            "2. 같지 않으면 극한이 없다",
            "Difficulty Indicators: 표면적 이해: 공식 암기 깊은 이해: 존재 조건 설명",
            "Follow-up Questions:",
            "- 연속과의 관계는?",
        ])
        out, status = prompts.parse_concept_question_response(reply)
        self.assertEqual(status, "complete")
        self.assertEqual(out["question"], "좌극한과 우극한이 다르면 극한은 존재할까요?")
        self.assertEqual(out["questionType"], "조건 분석")
        self.assertEqual(out["conceptualFocus"], ["극한의 존재 조건", "좌극한과 우극한"])
        self.assertEqual(out["expectedReasoning"], ["두 값을 비교한다", "같지 않으면 극한이 없다"])
        self.assertEqual(out["difficultyIndicators"], {"surface": "공식 암기", "deep": "존재 조건 설명"})
        self.assertEqual(out["followUpQuestions"], ["연속과의 관계는?"])

    def test_unparsed_reply(self):
        out, status = prompts.parse_concept_question_response("그냥 한 문장")
        self.assertEqual(status, "unparsed")
        self.assertEqual(out["question"], "그냥 한 문장")
        self.assertEqual(out["followUpQuestions"], [])
        self.assertEqual(out["difficultyIndicators"], {})


if __name__ == "__main__":
    unittest.main()
