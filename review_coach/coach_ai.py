from __future__ import annotations

import dataclasses
import logging
import typing as t

from review_coach.concept_mapper import ConceptMapper
from review_coach.curriculum import CurriculumAnalysis, CurriculumAnalyzer
from review_coach.openai_client import OpenAIClient
from review_coach import prompts
from review_coach import vision

JsonDict = dict[str, t.Any]

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class GeneratedQuestion:
    question: str
    latex: str
    concept: str
    level: str
    core_concepts: str
    reasoning: str
    curriculum: CurriculumAnalysis
    parse_status: str

    def to_dict(self) -> JsonDict:
        return {
            "question": self.question,
            "latex": self.latex,
            "concept": self.concept,
            "level": self.level,
            "coreConcepts": self.core_concepts,
            "reasoning": self.reasoning,
            "curriculum": self.curriculum.to_dict(),
            "parseStatus": self.parse_status,
        }


@dataclasses.dataclass(frozen=True)
class SpecializedQuestions:
    concept_diagnosis: list[str]
    condition_change: list[str]
    misconception_exploration: list[str]
    parse_status: str

    def to_dict(self) -> JsonDict:
        return {
            "conceptDiagnosis": list(self.concept_diagnosis),
            "conditionChange": list(self.condition_change),
            "misconceptionExploration": list(self.misconception_exploration),
            "parseStatus": self.parse_status,
        }


@dataclasses.dataclass(frozen=True)
class Feedback:
    feedback: str
    improvements: str
    follow_up_question: str
    parse_status: str

    def to_dict(self) -> JsonDict:
        return {
            "feedback": self.feedback,
            "improvements": self.improvements,
            "followUpQuestion": self.follow_up_question,
            "parseStatus": self.parse_status,
        }


def split_concepts(value: t.Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple)):
        items = [str(v) for v in value]
    else:
        items = [str(value)]
    return [c.strip() for c in items if c and c.strip()]


class CoachAIUtil:
    """Per-request facade over the OCR adapter, the classifiers and the LLM.

    Holds only the caller's credential; the curriculum and concept tables are
    shared module constants.
    """

    def __init__(
        self,
        api_key: str,
        *,
        app_id: str | None = None,
        openai: OpenAIClient | None = None,
        curriculum: CurriculumAnalyzer | None = None,
        concept_mapper: ConceptMapper | None = None,
    ) -> None:
        self.credentials = vision.Credentials(api_key=api_key, app_id=app_id)
        self.openai = openai or OpenAIClient(api_key)
        self.curriculum = curriculum or CurriculumAnalyzer()
        self.concept_mapper = concept_mapper or ConceptMapper()

    def _context(self, concepts: list[str], problem_text: str, latex: str) -> prompts.PromptContext:
        analysis = self.curriculum.classify(concepts)
        return prompts.PromptContext(
            concepts=concepts,
            analysis=analysis,
            level=self.curriculum.get_difficulty_level(analysis.grade),
            problem_text=problem_text,
            latex=latex,
        )

    def analyze_image(
        self,
        image_bytes: bytes,
        *,
        mime_type: str = "image/jpeg",
        backend: str | None = None,
    ) -> vision.OCRResult:
        ocr = vision.analyze_image(image_bytes, self.credentials, mime_type=mime_type, backend=backend)
        return self.enrich_concepts(ocr)

    def enrich_concepts(self, ocr: vision.OCRResult) -> vision.OCRResult:
        extraction = self.concept_mapper.map_to_concepts({"latex": ocr.latex, "text": ocr.text})
        concepts = list(ocr.concepts)
        for concept in extraction.concepts:
            if concept not in concepts:
                concepts.append(concept)
        return dataclasses.replace(
            ocr,
            concepts=concepts,
            concept_details=[c.to_dict() for c in extraction.detailed],
            concept_confidence=round(extraction.confidence, 4),
        )

    def generate_question(self, ocr: vision.OCRResult) -> GeneratedQuestion:
        ctx = self._context(list(ocr.concepts), ocr.text, ocr.latex)
        content = self.openai.chat(
            system_prompt=prompts.QUESTION_SYSTEM_PROMPT,
            user_prompt=prompts.build_question_prompt(ctx),
            max_tokens=800,
            temperature=0.7,
        )
        parsed = prompts.parse_question_response(content)
        if parsed.status != "complete":
            logger.info("Question reply parsed as %s", parsed.status)
        return GeneratedQuestion(
            question=parsed.get("question"),
            latex=ocr.latex,
            concept=ctx.main_concepts,
            level=ctx.level,
            core_concepts=parsed.get("concepts"),
            reasoning=parsed.get("reasoning"),
            curriculum=ctx.analysis,
            parse_status=parsed.status,
        )

    def generate_specialized_questions(
        self,
        *,
        concepts: t.Any,
        problem_text: str = "",
        latex: str = "",
    ) -> SpecializedQuestions:
        ctx = self._context(split_concepts(concepts), problem_text, latex)
        content = self.openai.chat(
            system_prompt=prompts.SPECIALIZED_SYSTEM_PROMPT,
            user_prompt=prompts.build_specialized_prompt(ctx),
            max_tokens=2000,
            temperature=0.7,
        )
        questions, status = prompts.parse_specialized_response(content)
        if status != "complete":
            logger.info("Specialized reply parsed as %s", status)
        return SpecializedQuestions(
            concept_diagnosis=questions["conceptDiagnosis"],
            condition_change=questions["conditionChange"],
            misconception_exploration=questions["misconceptionExploration"],
            parse_status=status,
        )

    def generate_feedback(self, *, user_answer: str, question: str) -> Feedback:
        content = self.openai.chat(
            system_prompt=prompts.FEEDBACK_SYSTEM_PROMPT,
            user_prompt=prompts.build_feedback_prompt(question=question, user_answer=user_answer),
            max_tokens=1000,
            temperature=0.7,
        )
        parsed = prompts.parse_feedback_response(content)
        return Feedback(
            feedback=parsed.get("feedback"),
            improvements=parsed.get("improvements"),
            follow_up_question=parsed.get("followUpQuestion"),
            parse_status=parsed.status,
        )

    def generate_concept_question(
        self,
        *,
        concept: str,
        level: str = "Intermediate",
        focus: str = "",
        language: str = "ko",
    ) -> JsonDict:
        content = self.openai.chat(
            system_prompt=prompts.CONCEPT_QUESTION_SYSTEM_PROMPT,
            user_prompt=prompts.build_concept_question_prompt(
                concept=concept, level=level, focus=focus, language=language
            ),
            max_tokens=1500,
            temperature=0.7,
        )
        out, status = prompts.parse_concept_question_response(content)
        out.update(
            {
                "concept": concept,
                "level": level,
                "conceptLevel": self.concept_mapper.get_concept_level(concept),
                "relatedConcepts": self.concept_mapper.get_related_concepts(concept),
                "parseStatus": status,
            }
        )
        return out
