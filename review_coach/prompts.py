"""Prompt templates for the tutor endpoints and the parser that reads the
labelled sections back out of a completion."""
from __future__ import annotations

import dataclasses
import re
import typing as t

from review_coach.curriculum import CurriculumAnalysis

JsonDict = dict[str, t.Any]

ParseStatus = t.Literal["complete", "partial", "unparsed"]

UNCLASSIFIED = "미분류"

QUESTION_SYSTEM_PROMPT = "당신은 수학 교육 전문가입니다. 학생들의 이해를 돕는 명확하고 교육적인 질문을 생성합니다."

SPECIALIZED_SYSTEM_PROMPT = (
    "당신은 수학 전문 튜터입니다. 업로드된 문제 안에서만 질문을 출제하며, 실생활 예시나 다른 분야로의 확장을 "
    "절대 금지합니다. 해당 문제의 조건 변경과 개념적 이해에만 집중하여, 학습자가 해당 문제에 대해 더 깊이 "
    "사고하도록 유도합니다."
)

FEEDBACK_SYSTEM_PROMPT = (
    "당신은 수학 교육 전문가입니다. 학생들의 답변에 대해 친절하고 건설적인 피드백을 제공하고, 학습을 돕는 "
    "후속 질문을 제시합니다."
)

CONCEPT_QUESTION_SYSTEM_PROMPT = """당신은 고등학교 수학의 깊이 있는 개념적 이해를 평가하는 전문가입니다. 주어진 수학 개념에 대해 학생의 비판적 사고력과 개념적 이해를 테스트하는 질문을 생성해주세요.

## 핵심 원칙
1. **계산보다 개념에 집중**: 단순한 계산이 아닌 개념적 이해를 테스트
2. **비판적 사고 유도**: "왜 그런가?", "어떤 경우에 실패하는가?" 질문
3. **조건의 중요성 탐구**: 조건을 제거하거나 변경했을 때의 결과 분석
4. **관련 개념과의 연결**: 다른 개념과의 관계와 차이점 탐구
5. **예외 상황 분석**: 개념이 적용되지 않는 경우나 반례 탐구

## 질문 스타일
- **개방형 질문**: "왜 그런가요?", "어떤 경우에 실패하나요?"
- **비교 분석**: "A와 B의 차이점은 무엇인가요?"
- **조건 변경**: "만약 ~ 조건이 없다면 어떻게 될까요?"
- **반례 탐구**: "이 개념이 적용되지 않는 예를 들어보세요"

## 난이도 조절
- **기초**: 정의와 기본 성질의 이해
- **중급**: 조건 분석과 예외 상황 인식
- **고급**: 복합 개념 분석과 창의적 사고

## 피해야 할 질문 유형
1. **단순 암기**: 정의나 공식의 단순 나열
2. **계산 중심**: 복잡한 계산만 요구하는 문제
3. **모호한 질문**: 명확한 답변이 어려운 질문
4. **과도한 복잡성**: 여러 개념을 동시에 요구하는 혼란스러운 질문"""

# (header, field) pairs in the order the templates ask for them.
QUESTION_SECTIONS = (("질문", "question"), ("핵심 개념", "concepts"), ("추론 과정", "reasoning"))
FEEDBACK_SECTIONS = (("피드백", "feedback"), ("개선점", "improvements"), ("추가 질문", "followUpQuestion"))
SPECIALIZED_SECTIONS = (
    ("1. 개념 진단 질문", "conceptDiagnosis"),
    ("2. 조건 변경 질문", "conditionChange"),
    ("3. 오개념 탐색 질문", "misconceptionExploration"),
)
# Trailing blocks a model may echo back; they end a section but are not fields.
STOP_HEADERS = ("엄격한 제한사항", "주의사항")

CONCEPT_QUESTION_LABELS = (
    ("Question", "question"),
    ("Question Type", "questionType"),
    ("Conceptual Focus", "conceptualFocus"),
    ("Expected Reasoning", "expectedReasoning"),
    ("Difficulty Indicators", "difficultyIndicators"),
    ("Follow-up Questions", "followUpQuestions"),
)

MIN_QUESTION_LENGTH = 10
_QUESTION_SPLIT_RE = re.compile(r"\n\s*\[질문\s*\d+\]|\n\s*[•·]\s*|\n\s*\d+\.\s*")
_LIST_SPLIT_RE = re.compile(r"\n\s*[-•*]\s*|\n\s*\d+\.\s*")


@dataclasses.dataclass(frozen=True)
class PromptContext:
    concepts: list[str]
    analysis: CurriculumAnalysis
    level: str
    problem_text: str = ""
    latex: str = ""

    @property
    def main_concepts(self) -> str:
        if self.analysis.sub_concepts:
            return ", ".join(self.analysis.sub_concepts)
        return ", ".join(self.concepts)


@dataclasses.dataclass(frozen=True)
class ParsedResponse:
    fields: dict[str, str]
    status: ParseStatus

    def get(self, field: str) -> str:
        return self.fields.get(field, "")


def _curriculum_block(ctx: PromptContext) -> str:
    a = ctx.analysis
    return (
        "**커리큘럼 분석 결과:**\n"
        f"- 학년: {a.grade or UNCLASSIFIED}\n"
        f"- 단원: {a.unit or UNCLASSIFIED}\n"
        f"- 세부 개념: {', '.join(a.sub_concepts) or UNCLASSIFIED}\n"
        f"- 난이도: {ctx.level}"
    )


def _latex_block(latex: str) -> str:
    return f"**수학 표현식:**\n{latex}\n" if latex else ""


def _scope_rules(concept_list: str) -> str:
    return (
        f"- 반드시 업로드된 이미지에서 추출된 개념들({concept_list})을 바탕으로 출제하세요\n"
        "- 실생활 예시나 다른 분야로의 확장을 절대 금지합니다\n"
        "- 추출된 개념과 전혀 관련 없는 문제(예: 원주각 문제인데 사각형 둘레 문제)를 출제하지 마세요"
    )


def build_question_prompt(ctx: PromptContext) -> str:
    concept_list = ", ".join(ctx.concepts)
    return f"""다음 수학 문제를 바탕으로, 해당 문제 안에서만 질문을 생성해주세요.

**업로드된 이미지에서 추출된 개념들:**
{concept_list}

{_curriculum_block(ctx)}

**원본 문제 내용:**
{ctx.problem_text or '이미지에서 추출된 텍스트'}

{_latex_block(ctx.latex)}
[질문 생성 지침]
- 반드시 업로드된 이미지에서 추출된 개념들({concept_list})을 바탕으로 질문을 생성할 것
- 해당 문제의 조건을 바꾸어 답이나 풀이, 개념이 어떻게 변경되는지 물어보는 질문
- '왜 그렇게 되는지?' 또는 '조건이 바뀐다면?' 식으로 사고를 유도할 것
- 해당 개념에서 헷갈릴 만한 포인트를 정확히 집어낼 것

다음 형식으로 답변해주세요:

**질문:**
[업로드된 이미지의 개념을 바탕으로 한 구체적인 수학 문제]

**핵심 개념:**
[이 문제에서 테스트하는 핵심 수학 개념들 - 반드시 업로드된 이미지의 개념 포함]

**추론 과정:**
[학생이 따라야 할 논리적 추론 과정]

**엄격한 제한사항:**
{_scope_rules(concept_list)}
- 해당 문제의 조건 변경과 이해에만 집중하세요"""


def build_specialized_prompt(ctx: PromptContext) -> str:
    concept_list = ", ".join(ctx.concepts)
    return f"""다음 수학 문제를 바탕으로, 해당 문제 안에서만 질문을 생성해주세요.

**업로드된 이미지에서 추출된 개념들:**
{concept_list}

{_curriculum_block(ctx)}

**원본 문제:**
{ctx.problem_text or '이미지에서 추출된 문제'}

{_latex_block(ctx.latex)}
다음 세 가지 유형의 질문을 각각 1~2개씩 생성해주세요:

## 1. 개념 진단 질문
- 학생이 해당 문제에서 사용되는 핵심 개념을 정확히 이해하고 있는지 확인하는 질문
- 해당 문제 내에서 나타나는 정의나 성질에 대한 정확한 이해를 테스트

## 2. 조건 변경 질문
- 해당 문제의 조건을 바꾸어 답이나 풀이, 개념이 어떻게 변경되는지 물어보는 질문
- "만약 이 문제에서 ~가 바뀐다면 답은 어떻게 될까?" 형태

## 3. 오개념 탐색 질문
- 해당 문제를 풀 때 학생들이 자주 틀리는 부분이나 헷갈리는 개념을 집어내는 질문
- 해당 문제 내에서 발생할 수 있는 오개념을 유발하는 상황을 제시

다음 형식으로 답변해주세요:

**1. 개념 진단 질문:**
[질문 1]
[질문 2]

**2. 조건 변경 질문:**
[질문 1]
[질문 2]

**3. 오개념 탐색 질문:**
[질문 1]
[질문 2]

**엄격한 제한사항:**
{_scope_rules(concept_list)}
- 해당 문제의 조건 변경과 개념적 이해에만 집중하세요
- 문제의 목적은 학습자가 해당 문제에 대해 더 깊이 사고하는 것을 유도하는 것입니다"""


def build_feedback_prompt(*, question: str, user_answer: str) -> str:
    return f"""다음 수학 문제에 대한 학생의 답변을 평가하고 피드백을 제공해주세요:

**문제:**
{question}

**학생 답변:**
{user_answer}

다음 형식으로 답변해주세요:

**피드백:**
[학생 답변에 대한 구체적이고 건설적인 피드백 - 정확한 부분과 개선이 필요한 부분을 명확히 구분]

**개선점:**
[학생이 개선할 수 있는 부분들 - 해당 문제 내에서의 구체적인 학습 방향 제시]

**추가 질문:**
[해당 문제와 관련된 후속 질문 - '왜 그렇게 되는지?' 또는 '조건이 바뀐다면?' 형태로 해당 문제에 대한 더 깊은 이해 유도]

**엄격한 제한사항:**
- 반드시 해당 문제 내에서만 피드백과 후속 질문을 제공하세요
- 실생활 예시나 다른 분야로의 확장을 절대 금지합니다
- 해당 문제의 조건 변경과 개념적 이해에만 집중하세요"""


def build_concept_question_prompt(*, concept: str, level: str = "Intermediate", focus: str = "", language: str = "ko") -> str:
    prefix = "한국어로" if language == "ko" else "In English"
    lines = [
        f"{prefix} 다음 수학 개념에 대한 깊이 있는 개념적 질문을 생성해주세요:",
        "",
        f"Concept: {concept}",
        f"Level: {level}",
    ]
    if focus:
        lines.append(f"Focus: {focus}")
    lines += [
        "",
        "위의 지침에 따라 다음 형식으로 답변해주세요:",
        "",
        "Question: [생성된 질문]",
        "",
        "Question Type: [질문 유형]",
        "",
        "Conceptual Focus: [테스트하는 개념적 이해의 측면]",
        "",
        "Expected Reasoning: [학생이 보여야 할 추론 과정]",
        "",
        "Difficulty Indicators: [표면적 이해 vs 깊은 이해의 구분]",
        "",
        "Follow-up Questions: [추가 심화 질문 2-3개]",
    ]
    return "\n".join(lines)


def _header_re(header: str) -> str:
    return r"\*\*" + re.escape(header) + r":\*\*"


def parse_sections(
    text: str,
    sections: t.Sequence[tuple[str, str]],
    *,
    fallback: str | None = None,
    stop_headers: t.Sequence[str] = STOP_HEADERS,
) -> ParsedResponse:
    """Extract ``**header:**`` sections from ``text``.

    Each section runs until the next known header (in any order) or the end
    of the string. Missing sections become ``""``. When no header is found at
    all, ``fallback`` receives the whole stripped input.
    """
    content = text or ""
    known = [h for h, _ in sections] + list(stop_headers)
    any_header = "|".join(_header_re(h) for h in known)
    fields: dict[str, str] = {}
    found = 0
    for header, field in sections:
        m = re.search(_header_re(header) + r"\s*([\s\S]*?)(?=" + any_header + r"|$)", content)
        if m:
            fields[field] = m.group(1).strip()
            found += 1
        else:
            fields[field] = ""

    if found == len(sections):
        status: ParseStatus = "complete"
    elif found:
        status = "partial"
    else:
        status = "unparsed"
        if fallback is not None:
            fields[fallback] = content.strip()
    return ParsedResponse(fields=fields, status=status)


def parse_question_response(text: str) -> ParsedResponse:
    return parse_sections(text, QUESTION_SECTIONS, fallback="question")


def parse_feedback_response(text: str) -> ParsedResponse:
    return parse_sections(text, FEEDBACK_SECTIONS, fallback="feedback")


def extract_questions(body: str) -> list[str]:
    # leading newline lets the first "[질문 1]" or "1." split like the rest
    parts = _QUESTION_SPLIT_RE.split("\n" + body)
    return [p.strip() for p in parts if len(p.strip()) >= MIN_QUESTION_LENGTH]


def parse_specialized_response(text: str) -> tuple[dict[str, list[str]], ParseStatus]:
    parsed = parse_sections(text, SPECIALIZED_SECTIONS)
    questions = {field: extract_questions(parsed.get(field)) for _, field in SPECIALIZED_SECTIONS}
    return questions, parsed.status


def parse_list(text: str) -> list[str]:
    if not text:
        return []
    items = _LIST_SPLIT_RE.split("\n" + text)
    out: list[str] = []
    for item in items:
        item = re.sub(r"^[-•*]\s*", "", item.strip())
        item = re.sub(r"^\d+\.\s*", "", item)
        if item:
            out.append(item)
    return out


def parse_difficulty_indicators(text: str) -> dict[str, str]:
    if not text:
        return {}
    indicators: dict[str, str] = {}
    surface = re.search(r"표면적 이해[:\s]*([\s\S]*?)(?=깊은 이해|$)", text)
    deep = re.search(r"깊은 이해[:\s]*([\s\S]*?)(?=표면적 이해|$)", text)
    if surface and surface.group(1).strip(" -\n"):
        indicators["surface"] = surface.group(1).strip(" -\n")
    if deep and deep.group(1).strip(" -\n"):
        indicators["deep"] = deep.group(1).strip(" -\n")
    if not indicators:
        indicators["raw"] = text.strip()
    return indicators


def parse_concept_question_response(text: str) -> tuple[JsonDict, ParseStatus]:
    content = text or ""
    labels = "|".join(re.escape(label) for label, _ in CONCEPT_QUESTION_LABELS)
    raw: dict[str, str] = {}
    for label, field in CONCEPT_QUESTION_LABELS:
        m = re.search(
            r"(?:^|\n)\s*" + re.escape(label) + r":\s*([\s\S]*?)(?=\n\s*(?:" + labels + r"):|$)",
            content,
        )
        raw[field] = m.group(1).strip() if m else ""

    found = sum(1 for v in raw.values() if v)
    if found == len(CONCEPT_QUESTION_LABELS):
        status: ParseStatus = "complete"
    elif found:
        status = "partial"
    else:
        status = "unparsed"

    out: JsonDict = {
        "question": raw["question"] or (content.strip() if status == "unparsed" else ""),
        "questionType": raw["questionType"],
        "conceptualFocus": parse_list(raw["conceptualFocus"]),
        "expectedReasoning": parse_list(raw["expectedReasoning"]),
        "difficultyIndicators": parse_difficulty_indicators(raw["difficultyIndicators"]),
        "followUpQuestions": parse_list(raw["followUpQuestions"]),
    }
    return out, status
