from __future__ import annotations

import base64
import dataclasses
import logging
import os
import re
import typing as t

from review_coach.errors import VisionServiceError
from review_coach.openai_client import OpenAIClient, env_timeout, parse_json_object, post_json

JsonDict = dict[str, t.Any]

logger = logging.getLogger(__name__)

VISION_PROMPT = """이 이미지에서 다음을 추출해주세요:

1. LaTeX 형식의 수학 표현식 (있는 경우)
2. 자연어 텍스트 (한국어 또는 영어)
3. 수학적 개념 키워드

다음 JSON 형식으로 응답해주세요:
{
  "latex": "수학 표현식들...",
  "text": "자연어 텍스트...",
  "concepts": ["개념1", "개념2", ...]
}

수학 표현식이 없다면 latex 필드는 빈 문자열로, 자연어 텍스트가 없다면 text 필드는 빈 문자열로 응답해주세요."""

FALLBACK_CONCEPT_KEYWORDS: tuple[str, ...] = (
    "함수", "방정식", "부등식", "미분", "적분", "극한", "수열", "급수",
    "확률", "통계", "기하", "벡터", "행렬", "이차함수", "삼각함수",
    "지수함수", "로그함수", "function", "equation", "derivative",
    "integral", "limit", "sequence", "series", "probability",
)

# LaTeX command -> concept, for Mathpix output.
LATEX_COMMAND_CONCEPTS: dict[str, str] = {
    "\\sin": "사인함수",
    "\\cos": "코사인함수",
    "\\tan": "탄젠트함수",
    "\\log": "로그함수",
    "\\ln": "자연로그",
    "\\exp": "지수함수",
    "\\sqrt": "제곱근",
    "\\frac": "분수",
    "\\sum": "급수",
    "\\int": "적분",
    "\\lim": "극한",
    "\\infty": "무한대",
    "\\pi": "원주율",
    "\\theta": "각도",
}

TEXT_CONCEPTS: dict[str, str] = {
    "함수": "함수",
    "방정식": "방정식",
    "부등식": "부등식",
    "미분": "미분",
    "적분": "적분",
    "극한": "극한",
    "수열": "수열",
    "급수": "급수",
    "확률": "확률",
    "통계": "통계",
    "기하": "기하",
    "벡터": "벡터",
    "행렬": "행렬",
    "이차함수": "이차함수",
    "삼각함수": "삼각함수",
    "지수함수": "지수함수",
    "로그함수": "로그함수",
    "function": "함수",
    "equation": "방정식",
    "inequality": "부등식",
    "derivative": "미분",
    "integral": "적분",
    "limit": "극한",
    "sequence": "수열",
    "series": "급수",
    "probability": "확률",
    "statistics": "통계",
    "geometry": "기하",
    "vector": "벡터",
    "matrix": "행렬",
    "quadratic": "이차함수",
    "trigonometric": "삼각함수",
    "exponential": "지수함수",
    "logarithmic": "로그함수",
}

_MATH_SPAN_RE = re.compile(r"\$\$([^$]+)\$\$|\$([^$]+)\$")
_MATH_LINE_PATTERNS = (
    re.compile(r"\\[a-zA-Z]+"),
    re.compile(r"[+\-*/=<>≤≥≠∫∑∏√∞πθαβγδεζηικλμνξοπρστυφχψω]"),
    re.compile(r"\d+"),
    re.compile(r"[a-zA-Z]\s*[+\-*/=]\s*[a-zA-Z]"),
    re.compile(r"\$.*\$"),
)


@dataclasses.dataclass(frozen=True)
class Credentials:
    api_key: str
    app_id: str | None = None


@dataclasses.dataclass(frozen=True)
class OCRResult:
    latex: str
    text: str
    concepts: list[str]
    concept_details: list[JsonDict] | None = None
    concept_confidence: float | None = None

    def to_dict(self) -> JsonDict:
        out: JsonDict = {
            "text": self.text,
            "latex": self.latex,
            "concepts": list(self.concepts),
        }
        if self.concept_details is not None:
            out["conceptDetails"] = self.concept_details
        if self.concept_confidence is not None:
            out["conceptConfidence"] = self.concept_confidence
        return out

    @staticmethod
    def from_dict(data: t.Mapping[str, t.Any]) -> "OCRResult":
        concepts = data.get("concepts") or []
        if isinstance(concepts, str):
            concepts = [c.strip() for c in concepts.split(",")]
        return OCRResult(
            latex=str(data.get("latex") or ""),
            text=str(data.get("text") or ""),
            concepts=[str(c) for c in concepts if str(c).strip()],
        )


# Upstream reply variants. Each one is normalized by ``normalize_reply``.
@dataclasses.dataclass(frozen=True)
class StructuredVisionReply:
    latex: str
    text: str
    concepts: list[str]


@dataclasses.dataclass(frozen=True)
class FreeformVisionReply:
    content: str


@dataclasses.dataclass(frozen=True)
class MathpixReply:
    text: str
    latex_simplified: str


VisionReply = t.Union[StructuredVisionReply, FreeformVisionReply, MathpixReply]


def classify_vision_content(content: str) -> StructuredVisionReply | FreeformVisionReply:
    data = parse_json_object(content)
    if data is None:
        return FreeformVisionReply(content=content)
    latex = data.get("latex", "")
    text = data.get("text", "")
    concepts = data.get("concepts", [])
    if not isinstance(latex, str) or not isinstance(text, str) or not isinstance(concepts, list):
        return FreeformVisionReply(content=content)
    return StructuredVisionReply(latex=latex, text=text, concepts=[str(c) for c in concepts if str(c).strip()])


def is_math_expression(line: str) -> bool:
    return any(p.search(line) for p in _MATH_LINE_PATTERNS)


def extract_math_spans(content: str) -> str:
    return "\n".join(m.group(0) for m in _MATH_SPAN_RE.finditer(content))


def strip_math(content: str) -> str:
    s = re.sub(r"\$\$[^$]*\$\$", "", content)
    s = re.sub(r"\$[^$]*\$", "", s)
    return re.sub(r"\s+", " ", s).strip()


def keyword_concepts(content: str) -> list[str]:
    lowered = content.lower()
    return [k for k in FALLBACK_CONCEPT_KEYWORDS if k.lower() in lowered]


def clean_mathpix_latex(latex: str) -> str:
    s = re.sub(r"\\text\{([^}]*)\}", r"\1", latex)
    s = re.sub(r"\\mathrm\{([^}]*)\}", r"\1", s)
    lines = [re.sub(r"[ \t]+", " ", ln).strip() for ln in s.splitlines()]
    return "\n".join(ln for ln in lines if ln and is_math_expression(ln))


def clean_mathpix_text(text: str) -> str:
    s = re.sub(r"\$\$[^$]*\$\$", "", text)
    s = re.sub(r"\$[^$]*\$", "", s)
    s = re.sub(r"\\[a-zA-Z]+\{[^}]*\}", "", s)
    lines = [re.sub(r"[ \t]+", " ", ln).strip() for ln in s.splitlines()]
    return "\n".join(ln for ln in lines if ln and not is_math_expression(ln))


def mathpix_concepts(latex: str, text: str) -> list[str]:
    found: list[str] = []

    def add(concept: str) -> None:
        if concept not in found:
            found.append(concept)

    for command, concept in LATEX_COMMAND_CONCEPTS.items():
        if command in latex:
            add(concept)
    if any(f in latex for f in ("\\sin", "\\cos", "\\tan")):
        add("삼각함수")

    lowered = text.lower()
    for keyword, concept in TEXT_CONCEPTS.items():
        if keyword in lowered:
            add(concept)
    return found


def normalize_reply(reply: VisionReply) -> OCRResult:
    if isinstance(reply, StructuredVisionReply):
        return OCRResult(latex=reply.latex, text=reply.text, concepts=list(reply.concepts))
    if isinstance(reply, FreeformVisionReply):
        return OCRResult(
            latex=extract_math_spans(reply.content),
            text=strip_math(reply.content),
            concepts=keyword_concepts(reply.content),
        )
    if isinstance(reply, MathpixReply):
        latex = clean_mathpix_latex(reply.latex_simplified)
        text = clean_mathpix_text(reply.text)
        return OCRResult(latex=latex, text=text, concepts=mathpix_concepts(latex, text))
    raise TypeError(f"Unsupported vision reply: {type(reply).__name__}")


def data_url(image_bytes: bytes, mime_type: str) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(image_bytes).decode('ascii')}"


class OpenAIVisionAnalyzer:
    def __init__(self, client: OpenAIClient) -> None:
        self.client = client

    def request(self, image_bytes: bytes, mime_type: str = "image/jpeg") -> VisionReply:
        content = self.client.complete(
            messages=[
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": VISION_PROMPT},
                        {"type": "image_url", "image_url": {"url": data_url(image_bytes, mime_type)}},
                    ],
                }
            ],
            max_tokens=1000,
            temperature=0.1,
            model=self.client.vision_model,
            error_cls=VisionServiceError,
        )
        reply = classify_vision_content(content)
        if isinstance(reply, FreeformVisionReply):
            logger.info("Vision reply was not JSON; using text extraction")
        return reply


class MathpixAnalyzer:
    def __init__(
        self,
        credentials: Credentials,
        *,
        base_url: str = "https://api.mathpix.com/v3",
        timeout_s: float | None = None,
    ) -> None:
        self.app_key = credentials.api_key
        self.app_id = credentials.app_id or os.environ.get("MATHPIX_APP_ID")
        if not self.app_id:
            raise ValueError("Mathpix app id is required (appId or MATHPIX_APP_ID).")
        self.base_url = (os.environ.get("MATHPIX_BASE_URL") or base_url).rstrip("/")
        self.timeout_s = timeout_s if timeout_s is not None else env_timeout("MATHPIX_TIMEOUT_S")

    def request(self, image_bytes: bytes, mime_type: str = "image/jpeg") -> VisionReply:
        payload: JsonDict = {
            "src": data_url(image_bytes, mime_type),
            "formats": ["text", "latex_simplified"],
            "data_options": {"include_asciimath": True, "include_latex": True},
            "ocr_options": {
                "math_inline_delimiters": ["$", "$"],
                "math_display_delimiters": ["$$", "$$"],
                "rm_spaces": True,
            },
        }
        data = post_json(
            f"{self.base_url}/text",
            payload,
            headers={"app_id": str(self.app_id), "app_key": self.app_key},
            timeout_s=self.timeout_s,
            service="Mathpix",
            error_cls=VisionServiceError,
        )
        if data.get("error"):
            raise VisionServiceError(f"Mathpix API error: {data.get('error')}", body=str(data))
        return MathpixReply(
            text=str(data.get("text") or ""),
            latex_simplified=str(data.get("latex_simplified") or ""),
        )


def selected_backend(backend: str | None = None) -> str:
    return (backend or os.environ.get("OCR_BACKEND") or "openai").strip().lower()


def analyze_image(
    image_bytes: bytes,
    credentials: Credentials,
    *,
    mime_type: str = "image/jpeg",
    backend: str | None = None,
) -> OCRResult:
    """Run one OCR/vision request for ``image_bytes`` and normalize the reply.

    ``backend`` is ``"openai"`` (default) or ``"mathpix"``; it falls back to
    the ``OCR_BACKEND`` environment variable.
    """
    selected = selected_backend(backend)
    analyzer: OpenAIVisionAnalyzer | MathpixAnalyzer
    if selected == "mathpix":
        analyzer = MathpixAnalyzer(credentials)
    elif selected == "openai":
        analyzer = OpenAIVisionAnalyzer(OpenAIClient(credentials.api_key))
    else:
        raise ValueError(f"Unknown OCR backend: {selected}")
    logger.info("Analyzing %d-byte image with %s", len(image_bytes), selected)
    return normalize_reply(analyzer.request(image_bytes, mime_type))
