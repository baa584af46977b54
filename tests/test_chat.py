import unittest
import sys
import os
from unittest.mock import MagicMock

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from review_coach.chat import FEEDBACK_ERROR, IMAGE_ERROR, ChatSession, render
from review_coach.coach_ai import Feedback
from review_coach.errors import CompletionServiceError, VisionServiceError
from review_coach.vision import OCRResult


class TestChatSession(unittest.TestCase):
    def setUp(self):
        self.ai = MagicMock()
        self.ai.analyze_image.return_value = OCRResult(latex="x^2", text="이차함수", concepts=["함수"])
        self.ai.generate_question.return_value.to_dict.return_value = {
            "question": "꼭짓점이 바뀌면?",
            "concept": "함수",
            "level": "Intermediate",
        }
        self.ai.generate_feedback.return_value = Feedback(
            feedback="좋아요", improvements="근거", follow_up_question="왜?", parse_status="complete"
        )
        self.session = ChatSession(self.ai)

    def test_upload_image(self):
        added = self.session.upload_image(b"png", filename="p.png", mime_type="image/png")

        self.assertEqual([m.type for m in added], ["image", "ocr", "question"])
        self.assertEqual([m.sender for m in added], ["user", "assistant", "assistant"])
        self.assertEqual([m.id for m in added], [1, 2, 3])
        self.assertEqual(added[0].content, {"filename": "p.png", "size": 3})
        self.assertEqual(added[1].content["concepts"], ["함수"])
        self.assertEqual(self.session.last_question().content["question"], "꼭짓점이 바뀌면?")

    def test_upload_image_failure(self):
        self.ai.analyze_image.side_effect = VisionServiceError("OpenAI API error: 500", status=500)
        added = self.session.upload_image(b"png")

        self.assertEqual([m.type for m in added], ["image", "error"])
        self.assertEqual(added[1].content, IMAGE_ERROR)
        self.assertIsNone(self.session.last_question())

    def test_text_without_question(self):
        added = self.session.send_text("안녕하세요")
        self.assertEqual([m.type for m in added], ["text"])
        self.ai.generate_feedback.assert_not_called()

    def test_blank_text_is_ignored(self):
        self.assertEqual(self.session.send_text("   "), [])
        self.assertEqual(self.session.messages, ())

    def test_answer_gets_feedback(self):
        self.session.upload_image(b"png")
        added = self.session.send_text("꼭짓점이 이동합니다")

        self.assertEqual([m.type for m in added], ["text", "feedback"])
        self.assertEqual(added[1].content["followUpQuestion"], "왜?")
        self.ai.generate_feedback.assert_called_once_with(user_answer="꼭짓점이 이동합니다", question="꼭짓점이 바뀌면?")

    def test_feedback_failure(self):
        self.session.upload_image(b"png")
        self.ai.generate_feedback.side_effect = CompletionServiceError("OpenAI request failed: timed out")
        added = self.session.send_text("답")

        self.assertEqual([m.type for m in added], ["text", "error"])
        self.assertEqual(added[1].content, FEEDBACK_ERROR)

    def test_render(self):
        added = self.session.upload_image(b"png", filename="p.png")
        self.assertIn("p.png", render(added[0]))
        self.assertIn("x^2", render(added[1]))
        self.assertIn("꼭짓점이 바뀌면?", render(added[2]))
        self.assertEqual(added[0].to_dict()["type"], "image")


if __name__ == "__main__":
    unittest.main()
