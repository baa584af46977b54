"""In-memory chat transcript for one study session, plus a small terminal
client.

Usage:
  python -m review_coach.chat --api-key sk-... problem.png
"""
from __future__ import annotations

import dataclasses
import datetime as dt
import itertools
import logging
import mimetypes
import typing as t

from review_coach.coach_ai import CoachAIUtil

JsonDict = dict[str, t.Any]

MessageType = t.Literal["image", "ocr", "question", "text", "feedback", "error"]
Sender = t.Literal["user", "assistant"]

IMAGE_ERROR = "Sorry, there was an error processing your image. Please try again."
FEEDBACK_ERROR = "Sorry, there was an error generating feedback. Please try again."

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class ChatMessage:
    id: int
    type: MessageType
    content: t.Any
    timestamp: dt.datetime
    sender: Sender

    def to_dict(self) -> JsonDict:
        return {
            "id": self.id,
            "type": self.type,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
            "sender": self.sender,
        }


class ChatSession:
    def __init__(self, ai: CoachAIUtil) -> None:
        self.ai = ai
        self._messages: list[ChatMessage] = []
        self._ids = itertools.count(1)

    @property
    def messages(self) -> tuple[ChatMessage, ...]:
        return tuple(self._messages)

    def append(self, kind: MessageType, content: t.Any, sender: Sender) -> ChatMessage:
        msg = ChatMessage(
            id=next(self._ids),
            type=kind,
            content=content,
            timestamp=dt.datetime.now(dt.timezone.utc),
            sender=sender,
        )
        self._messages.append(msg)
        return msg

    def last_question(self) -> ChatMessage | None:
        for msg in reversed(self._messages):
            if msg.type == "question":
                return msg
        return None

    def upload_image(self, image_bytes: bytes, *, filename: str = "image", mime_type: str = "image/jpeg") -> list[ChatMessage]:
        start = len(self._messages)
        self.append("image", {"filename": filename, "size": len(image_bytes)}, "user")
        try:
            ocr = self.ai.analyze_image(image_bytes, mime_type=mime_type)
            self.append("ocr", ocr.to_dict(), "assistant")
            question = self.ai.generate_question(ocr)
            self.append("question", question.to_dict(), "assistant")
        except Exception as e:
            logger.exception("Error processing image: %s", e)
            self.append("error", IMAGE_ERROR, "assistant")
        return list(self._messages[start:])

    def send_text(self, text: str) -> list[ChatMessage]:
        if not text.strip():
            return []
        start = len(self._messages)
        question = self.last_question()
        self.append("text", text, "user")
        if question is None:
            return list(self._messages[start:])
        try:
            feedback = self.ai.generate_feedback(user_answer=text, question=question.content.get("question", ""))
            self.append("feedback", feedback.to_dict(), "assistant")
        except Exception as e:
            logger.exception("Error generating feedback: %s", e)
            self.append("error", FEEDBACK_ERROR, "assistant")
        return list(self._messages[start:])


def render(msg: ChatMessage) -> str:
    c = msg.content
    if msg.type == "ocr":
        return f"[OCR] {c.get('text', '')}\n  LaTeX: {c.get('latex', '')}\n  개념: {', '.join(c.get('concepts', []))}"
    if msg.type == "question":
        return f"[질문 · {c.get('level', '')}] {c.get('question', '')}\n  개념: {c.get('concept', '')}"
    if msg.type == "feedback":
        return (
            f"[피드백] {c.get('feedback', '')}\n"
            f"  개선점: {c.get('improvements', '')}\n"
            f"  추가 질문: {c.get('followUpQuestion', '')}"
        )
    if msg.type == "image":
        return f"[이미지] {c.get('filename', '')} ({c.get('size', 0)} bytes)"
    return f"[{msg.type}] {c}"


def main(argv: list[str] | None = None) -> int:
    import argparse
    import os

    parser = argparse.ArgumentParser(description="Upload a math problem image and chat about it.")
    parser.add_argument("image", help="Path to the problem image")
    parser.add_argument("--api-key", default=os.environ.get("OPENAI_API_KEY"), help="LLM API key")
    parser.add_argument("--app-id", default=None, help="Mathpix app id (with OCR_BACKEND=mathpix)")
    args = parser.parse_args(argv)
    if not args.api_key:
        parser.error("--api-key (or OPENAI_API_KEY) is required")

    logging.basicConfig(level=logging.WARNING, format="%(asctime)s [%(levelname)s] %(message)s")
    session = ChatSession(CoachAIUtil(args.api_key, app_id=args.app_id))

    with open(args.image, "rb") as fh:
        image_bytes = fh.read()
    mime_type = mimetypes.guess_type(args.image)[0] or "image/jpeg"
    for msg in session.upload_image(image_bytes, filename=os.path.basename(args.image), mime_type=mime_type):
        print(render(msg))

    while True:
        try:
            line = input("> ")
        except EOFError:
            break
        if line.strip() in {"/quit", "/exit"}:
            break
        for msg in session.send_text(line):
            if msg.sender == "assistant":
                print(render(msg))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
