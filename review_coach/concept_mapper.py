from __future__ import annotations

import dataclasses
import re
import types
import typing as t

JsonDict = dict[str, t.Any]

MIN_CONFIDENCE = 0.3
COMMAND_FACTOR = 0.8
PARTIAL_FACTOR = 0.7
RELATED_BOOST = 0.1
SOURCE_BOOST = 0.1


@dataclasses.dataclass(frozen=True)
class ConceptNode:
    aliases: tuple[str, ...]
    related: tuple[str, ...]
    subconcepts: tuple[str, ...]
    level: str


CONCEPT_GRAPH: t.Mapping[str, ConceptNode] = types.MappingProxyType(
    {
        "미분": ConceptNode(
            aliases=("도함수", "미분계수", "derivative", "differentiation"),
            related=("함수", "극한", "연속성", "접선"),
            subconcepts=("합성함수의 미분", "음함수의 미분", "매개변수 미분"),
            level="advanced",
        ),
        "적분": ConceptNode(
            aliases=("부정적분", "정적분", "integral", "integration"),
            related=("미분", "면적", "부피", "곡선"),
            subconcepts=("부분적분", "치환적분", "삼각치환"),
            level="advanced",
        ),
        "극한": ConceptNode(
            aliases=("limit", "lim"),
            related=("연속성", "미분", "수렴", "발산"),
            subconcepts=("좌극한", "우극한", "무한극한"),
            level="intermediate",
        ),
        "함수": ConceptNode(
            aliases=("function",),
            related=("정의역", "치역", "대응관계"),
            subconcepts=("일대일함수", "전사함수", "합성함수"),
            level="basic",
        ),
        "삼각함수": ConceptNode(
            aliases=("trigonometric function", "trigonometry"),
            related=("각도", "단위원", "주기함수"),
            subconcepts=("사인함수", "코사인함수", "탄젠트함수"),
            level="intermediate",
        ),
        "지수함수": ConceptNode(
            aliases=("exponential function",),
            related=("로그함수", "자연로그", "지수법칙"),
            subconcepts=("자연지수함수", "복리계산"),
            level="intermediate",
        ),
        "로그함수": ConceptNode(
            aliases=("logarithmic function", "log"),
            related=("지수함수", "자연로그", "로그법칙"),
            subconcepts=("자연로그", "상용로그"),
            level="intermediate",
        ),
        "수열": ConceptNode(
            aliases=("sequence", "series"),
            related=("급수", "수렴", "발산", "등차수열", "등비수열"),
            subconcepts=("등차수열", "등비수열", "피보나치수열"),
            level="intermediate",
        ),
        "급수": ConceptNode(
            aliases=("series", "infinite series"),
            related=("수열", "수렴", "발산", "합"),
            subconcepts=("기하급수", "조화급수", "테일러급수"),
            level="advanced",
        ),
        "확률": ConceptNode(
            aliases=("probability",),
            related=("통계", "사건", "확률분포"),
            subconcepts=("조건부확률", "독립사건", "베이즈정리"),
            level="intermediate",
        ),
        "통계": ConceptNode(
            aliases=("statistics",),
            related=("확률", "평균", "분산", "표준편차"),
            subconcepts=("기술통계", "추론통계", "회귀분석"),
            level="intermediate",
        ),
        "벡터": ConceptNode(
            aliases=("vector",),
            related=("스칼라", "내적", "외적", "공간"),
            subconcepts=("단위벡터", "영벡터", "벡터공간"),
            level="advanced",
        ),
        "행렬": ConceptNode(
            aliases=("matrix",),
            related=("행렬식", "역행렬", "선형변환"),
            subconcepts=("정사각행렬", "대각행렬", "단위행렬"),
            level="advanced",
        ),
        "기하": ConceptNode(
            aliases=("geometry",),
            related=("도형", "면적", "부피", "공간"),
            subconcepts=("평면기하", "공간기하", "해석기하"),
            level="basic",
        ),
        "방정식": ConceptNode(
            aliases=("equation",),
            related=("부등식", "해", "근", "이차방정식"),
            subconcepts=("일차방정식", "이차방정식", "연립방정식"),
            level="basic",
        ),
        "부등식": ConceptNode(
            aliases=("inequality",),
            related=("방정식", "해", "구간"),
            subconcepts=("일차부등식", "이차부등식", "절댓값부등식"),
            level="basic",
        ),
    }
)

# keyword -> (concept, weight)
KEYWORD_MAP: t.Mapping[str, tuple[str, float]] = types.MappingProxyType(
    {
        "미분": ("미분", 1.0),
        "도함수": ("미분", 0.9),
        "미분계수": ("미분", 0.8),
        "적분": ("적분", 1.0),
        "부정적분": ("적분", 0.9),
        "정적분": ("적분", 0.9),
        "극한": ("극한", 1.0),
        "함수": ("함수", 0.7),
        "삼각함수": ("삼각함수", 1.0),
        "사인": ("삼각함수", 0.8),
        "코사인": ("삼각함수", 0.8),
        "탄젠트": ("삼각함수", 0.8),
        "지수함수": ("지수함수", 1.0),
        "로그함수": ("로그함수", 1.0),
        "로그": ("로그함수", 0.8),
        "수열": ("수열", 1.0),
        "급수": ("급수", 1.0),
        "확률": ("확률", 1.0),
        "통계": ("통계", 1.0),
        "벡터": ("벡터", 1.0),
        "행렬": ("행렬", 1.0),
        "기하": ("기하", 1.0),
        "방정식": ("방정식", 1.0),
        "부등식": ("부등식", 1.0),
        "이차함수": ("함수", 0.9),
        "유리함수": ("함수", 0.9),
        "무리함수": ("함수", 0.9),
        "합성함수": ("함수", 0.8),
        "역함수": ("함수", 0.8),
        "연속": ("극한", 0.7),
        "수렴": ("급수", 0.8),
        "발산": ("급수", 0.8),
        "접선": ("미분", 0.7),
        "면적": ("적분", 0.7),
        "부피": ("적분", 0.7),
        "곡선": ("적분", 0.6),
        "각도": ("삼각함수", 0.6),
        "단위원": ("삼각함수", 0.7),
        "주기": ("삼각함수", 0.6),
        "자연로그": ("로그함수", 0.8),
        "상용로그": ("로그함수", 0.8),
        "등차수열": ("수열", 0.9),
        "등비수열": ("수열", 0.9),
        "기하급수": ("급수", 0.9),
        "조화급수": ("급수", 0.9),
        "조건부확률": ("확률", 0.9),
        "독립사건": ("확률", 0.8),
        "평균": ("통계", 0.7),
        "분산": ("통계", 0.7),
        "표준편차": ("통계", 0.7),
        "내적": ("벡터", 0.8),
        "외적": ("벡터", 0.8),
        "행렬식": ("행렬", 0.8),
        "역행렬": ("행렬", 0.8),
        "도형": ("기하", 0.7),
        "해": ("방정식", 0.7),
        "근": ("방정식", 0.7),
        "이차방정식": ("방정식", 0.9),
        "일차방정식": ("방정식", 0.9),
        "연립방정식": ("방정식", 0.9),
        "일차부등식": ("부등식", 0.9),
        "이차부등식": ("부등식", 0.9),
        "절댓값": ("부등식", 0.6),
        "derivative": ("미분", 1.0),
        "differentiation": ("미분", 0.9),
        "integral": ("적분", 1.0),
        "integration": ("적분", 0.9),
        "limit": ("극한", 1.0),
        "function": ("함수", 0.7),
        "trigonometric": ("삼각함수", 1.0),
        "trigonometry": ("삼각함수", 0.9),
        "sine": ("삼각함수", 0.8),
        "cosine": ("삼각함수", 0.8),
        "tangent": ("삼각함수", 0.8),
        "exponential": ("지수함수", 1.0),
        "logarithmic": ("로그함수", 1.0),
        "logarithm": ("로그함수", 0.8),
        "sequence": ("수열", 1.0),
        "series": ("급수", 1.0),
        "probability": ("확률", 1.0),
        "statistics": ("통계", 1.0),
        "vector": ("벡터", 1.0),
        "matrix": ("행렬", 1.0),
        "geometry": ("기하", 1.0),
        "equation": ("방정식", 1.0),
        "inequality": ("부등식", 1.0),
        "quadratic": ("방정식", 0.8),
        "linear": ("방정식", 0.7),
        "continuous": ("극한", 0.7),
        "convergence": ("급수", 0.8),
        "divergence": ("급수", 0.8),
        "area": ("적분", 0.7),
        "volume": ("적분", 0.7),
        "curve": ("적분", 0.6),
        "angle": ("삼각함수", 0.6),
        "unit circle": ("삼각함수", 0.7),
        "periodic": ("삼각함수", 0.6),
        "natural log": ("로그함수", 0.8),
        "common log": ("로그함수", 0.8),
        "arithmetic sequence": ("수열", 0.9),
        "geometric sequence": ("수열", 0.9),
        "geometric series": ("급수", 0.9),
        "harmonic series": ("급수", 0.9),
        "conditional probability": ("확률", 0.9),
        "independent events": ("확률", 0.8),
        "mean": ("통계", 0.7),
        "variance": ("통계", 0.7),
        "standard deviation": ("통계", 0.7),
        "dot product": ("벡터", 0.8),
        "cross product": ("벡터", 0.8),
        "determinant": ("행렬", 0.8),
        "inverse matrix": ("행렬", 0.8),
        "shape": ("기하", 0.7),
        "solution": ("방정식", 0.7),
        "root": ("방정식", 0.7),
        "quadratic equation": ("방정식", 0.9),
        "linear equation": ("방정식", 0.9),
        "system of equations": ("방정식", 0.9),
        "linear inequality": ("부등식", 0.9),
        "quadratic inequality": ("부등식", 0.9),
        "absolute value": ("부등식", 0.6),
    }
)

LATEX_PATTERNS: t.Mapping[str, tuple[str, float]] = types.MappingProxyType(
    {
        "\\frac{d}{dx}": ("미분", 1.0),
        "\\frac{d}{dy}": ("미분", 1.0),
        "\\frac{d}{dt}": ("미분", 1.0),
        "\\frac{d}{dz}": ("미분", 1.0),
        "\\frac{d^2}{dx^2}": ("미분", 1.0),
        "\\frac{d^2}{dy^2}": ("미분", 1.0),
        "\\frac{d^n}{dx^n}": ("미분", 1.0),
        "f'(x)": ("미분", 0.9),
        "f''(x)": ("미분", 0.9),
        "f^{(n)}(x)": ("미분", 0.9),
        "\\int": ("적분", 1.0),
        "\\int_a^b": ("적분", 1.0),
        "\\int_0^\\infty": ("적분", 1.0),
        "\\int_{-\\infty}^{\\infty}": ("적분", 1.0),
        "\\iint": ("적분", 1.0),
        "\\iiint": ("적분", 1.0),
        "\\oint": ("적분", 1.0),
        "\\lim": ("극한", 1.0),
        "\\lim_{x \\to a}": ("극한", 1.0),
        "\\lim_{x \\to \\infty}": ("극한", 1.0),
        "\\lim_{x \\to 0}": ("극한", 1.0),
        "\\lim_{n \\to \\infty}": ("극한", 1.0),
        "\\sin": ("삼각함수", 0.8),
        "\\cos": ("삼각함수", 0.8),
        "\\tan": ("삼각함수", 0.8),
        "\\csc": ("삼각함수", 0.8),
        "\\sec": ("삼각함수", 0.8),
        "\\cot": ("삼각함수", 0.8),
        "\\arcsin": ("삼각함수", 0.8),
        "\\arccos": ("삼각함수", 0.8),
        "\\arctan": ("삼각함수", 0.8),
        "\\log": ("로그함수", 0.8),
        "\\ln": ("로그함수", 0.8),
        "\\log_{10}": ("로그함수", 0.8),
        "\\log_2": ("로그함수", 0.8),
        "e^x": ("지수함수", 0.8),
        "e^{": ("지수함수", 0.8),
        "a^x": ("지수함수", 0.8),
        "\\exp": ("지수함수", 0.8),
        "\\sum": ("급수", 1.0),
        "\\sum_{n=1}^{\\infty}": ("급수", 1.0),
        "\\sum_{k=1}^{n}": ("급수", 1.0),
        "\\prod": ("급수", 0.8),
        "\\vec": ("벡터", 1.0),
        "\\overrightarrow": ("벡터", 1.0),
        "\\mathbf": ("벡터", 0.7),
        "\\begin{pmatrix}": ("행렬", 1.0),
        "\\begin{bmatrix}": ("행렬", 1.0),
        "\\begin{vmatrix}": ("행렬", 1.0),
        "\\begin{matrix}": ("행렬", 1.0),
        "f(x)": ("함수", 0.7),
        "g(x)": ("함수", 0.7),
        "h(x)": ("함수", 0.7),
        "y =": ("함수", 0.6),
        "\\frac": ("분수", 0.5),
        "\\sqrt": ("제곱근", 0.5),
        "\\sqrt[n]": ("제곱근", 0.5),
    }
)

# Bare commands with no full pattern of their own.
LATEX_COMMANDS: t.Mapping[str, tuple[str, float]] = types.MappingProxyType(
    {
        "\\partial": ("미분", 1.0),
        "\\prime": ("미분", 0.8),
        "\\nabla": ("미분", 0.8),
        "\\infty": ("극한", 0.7),
        "\\to": ("극한", 0.6),
        "\\sinh": ("지수함수", 0.7),
        "\\cosh": ("지수함수", 0.7),
        "\\tanh": ("지수함수", 0.7),
        "\\binom": ("확률", 0.8),
        "\\det": ("행렬", 1.0),
        "\\leq": ("부등식", 0.6),
        "\\geq": ("부등식", 0.6),
        "\\le": ("부등식", 0.6),
        "\\ge": ("부등식", 0.6),
        "\\angle": ("기하", 0.7),
        "\\triangle": ("기하", 0.7),
        "\\overline": ("기하", 0.5),
    }
)

CONTEXT_PATTERNS: t.Mapping[str, tuple[str, float]] = types.MappingProxyType(
    {
        "미분하시오": ("미분", 0.9),
        "differentiate": ("미분", 0.9),
        "적분하시오": ("적분", 0.9),
        "integrate": ("적분", 0.9),
        "극한값": ("극한", 0.9),
        "limit": ("극한", 0.9),
        "함수의": ("함수", 0.8),
        "function": ("함수", 0.8),
        "삼각함수의": ("삼각함수", 0.9),
        "trigonometric": ("삼각함수", 0.9),
        "로그함수의": ("로그함수", 0.9),
        "logarithmic": ("로그함수", 0.9),
        "지수함수의": ("지수함수", 0.9),
        "exponential": ("지수함수", 0.9),
        "수열의": ("수열", 0.9),
        "sequence": ("수열", 0.9),
        "급수의": ("급수", 0.9),
        "series": ("급수", 0.9),
        "확률의": ("확률", 0.9),
        "probability": ("확률", 0.9),
        "통계의": ("통계", 0.9),
        "statistics": ("통계", 0.9),
        "벡터의": ("벡터", 0.9),
        "vector": ("벡터", 0.9),
        "행렬의": ("행렬", 0.9),
        "matrix": ("행렬", 0.9),
        "방정식의": ("방정식", 0.9),
        "equation": ("방정식", 0.9),
        "부등식의": ("부등식", 0.9),
        "inequality": ("부등식", 0.9),
    }
)

_COMMAND_RE = re.compile(r"\\[a-zA-Z]+")


@dataclasses.dataclass(frozen=True)
class ConceptCandidate:
    concept: str
    confidence: float
    sources: tuple[str, ...]

    def to_dict(self) -> JsonDict:
        return {
            "concept": self.concept,
            "confidence": round(self.confidence, 4),
            "sources": list(self.sources),
        }


@dataclasses.dataclass(frozen=True)
class ConceptExtraction:
    concepts: list[str]
    detailed: list[ConceptCandidate]
    confidence: float

    def to_dict(self) -> JsonDict:
        return {
            "concepts": list(self.concepts),
            "detailed": [c.to_dict() for c in self.detailed],
            "confidence": round(self.confidence, 4),
        }


class ConceptMapper:
    """Maps OCR output (LaTeX plus natural-language text) to curriculum
    concepts.

    Three independent passes each emit candidates; candidates for the same
    concept are merged, boosted through the concept graph, and filtered.
    """

    def __init__(
        self,
        *,
        concept_graph: t.Mapping[str, ConceptNode] = CONCEPT_GRAPH,
        keyword_map: t.Mapping[str, tuple[str, float]] = KEYWORD_MAP,
        latex_patterns: t.Mapping[str, tuple[str, float]] = LATEX_PATTERNS,
        latex_commands: t.Mapping[str, tuple[str, float]] = LATEX_COMMANDS,
        context_patterns: t.Mapping[str, tuple[str, float]] = CONTEXT_PATTERNS,
    ) -> None:
        self.concept_graph = concept_graph
        self.keyword_map = keyword_map
        self.latex_patterns = latex_patterns
        self.latex_commands = latex_commands
        self.context_patterns = context_patterns

    def map_to_concepts(self, ocr_output: t.Mapping[str, t.Any]) -> ConceptExtraction:
        latex = str(ocr_output.get("latex") or "")
        text = str(ocr_output.get("text") or "")

        merged = self.merge_concepts(
            self.extract_from_latex(latex),
            self.extract_from_text(text),
            self.extract_from_patterns(latex, text),
        )
        ranked = self.rank_concepts(merged)
        return ConceptExtraction(
            concepts=[c.concept for c in ranked],
            detailed=ranked,
            confidence=self.calculate_overall_confidence(ranked),
        )

    def extract_from_latex(self, latex: str) -> list[ConceptCandidate]:
        out: list[ConceptCandidate] = []
        if not latex:
            return out
        found: set[str] = set()
        for pattern, (concept, weight) in self.latex_patterns.items():
            if pattern in latex:
                out.append(ConceptCandidate(concept, weight, ("latex_pattern",)))
                found.add(concept)

        for command in _COMMAND_RE.findall(latex):
            mapping = self.latex_patterns.get(command) or self.latex_commands.get(command)
            if mapping is None:
                continue
            concept, weight = mapping
            if concept in found:
                continue
            out.append(ConceptCandidate(concept, weight * COMMAND_FACTOR, ("latex_command",)))
            found.add(concept)
        return out

    def extract_from_text(self, text: str) -> list[ConceptCandidate]:
        out: list[ConceptCandidate] = []
        lowered = text.lower()
        if not lowered.strip():
            return out
        found: set[str] = set()

        for keyword, (concept, weight) in self.keyword_map.items():
            if concept in found:
                continue
            if keyword.lower() in lowered:
                out.append(ConceptCandidate(concept, weight, ("keyword_match",)))
                found.add(concept)

        for word in lowered.split():
            for keyword, (concept, weight) in self.keyword_map.items():
                if concept in found:
                    continue
                kw = keyword.lower()
                # single characters are substrings of too many keywords
                if kw in word or (len(word) > 1 and word in kw):
                    out.append(ConceptCandidate(concept, weight * PARTIAL_FACTOR, ("partial_match",)))
                    found.add(concept)
        return out

    def extract_from_patterns(self, latex: str, text: str) -> list[ConceptCandidate]:
        combined = f"{latex} {text}".lower()
        out: list[ConceptCandidate] = []
        for pattern, (concept, weight) in self.context_patterns.items():
            if pattern.lower() in combined:
                out.append(ConceptCandidate(concept, weight, ("context_pattern",)))
        return out

    def merge_concepts(self, *groups: t.Iterable[ConceptCandidate]) -> list[ConceptCandidate]:
        merged: dict[str, ConceptCandidate] = {}
        for group in groups:
            for cand in group:
                existing = merged.get(cand.concept)
                if existing is None:
                    merged[cand.concept] = cand
                    continue
                sources = existing.sources + tuple(s for s in cand.sources if s not in existing.sources)
                merged[cand.concept] = ConceptCandidate(
                    concept=cand.concept,
                    confidence=max(existing.confidence, cand.confidence),
                    sources=sources,
                )
        return list(merged.values())

    def rank_concepts(self, candidates: list[ConceptCandidate]) -> list[ConceptCandidate]:
        detected = {c.concept for c in candidates}
        boosted: list[ConceptCandidate] = []
        for cand in candidates:
            score = cand.confidence
            node = self.concept_graph.get(cand.concept)
            if node is not None:
                related_hits = sum(1 for r in node.related if r in detected and r != cand.concept)
                score += RELATED_BOOST * related_hits
            if len(cand.sources) > 1:
                score += SOURCE_BOOST * (len(cand.sources) - 1)
            boosted.append(dataclasses.replace(cand, confidence=min(score, 1.0)))

        boosted.sort(key=lambda c: c.confidence, reverse=True)
        return [c for c in boosted if c.confidence >= MIN_CONFIDENCE]

    def calculate_overall_confidence(self, ranked: list[ConceptCandidate]) -> float:
        if not ranked:
            return 0.0
        average = sum(c.confidence for c in ranked) / len(ranked)
        bonus = min(0.1 * len(ranked), 0.3)
        return min(average + bonus, 1.0)

    def get_related_concepts(self, concept: str) -> list[str]:
        node = self.concept_graph.get(concept)
        return list(node.related) if node else []

    def get_subconcepts(self, concept: str) -> list[str]:
        node = self.concept_graph.get(concept)
        return list(node.subconcepts) if node else []

    def get_concept_level(self, concept: str) -> str:
        node = self.concept_graph.get(concept)
        return node.level if node else "unknown"


def map_ocr_to_concepts(ocr_output: t.Mapping[str, t.Any]) -> ConceptExtraction:
    return ConceptMapper().map_to_concepts(ocr_output)
