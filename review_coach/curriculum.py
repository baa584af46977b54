"""Curriculum table for the 2022 revised Korean math curriculum and the
keyword-overlap classifier that places a problem in it."""
from __future__ import annotations

import dataclasses
import types
import typing as t

JsonDict = dict[str, t.Any]

# grade -> subject -> unit -> sub-concepts, in declaration order.
CURRICULUM: t.Mapping[str, t.Mapping[str, t.Mapping[str, tuple[str, ...]]]] = types.MappingProxyType(
    {
        "중학교 1학년": {
            "수와 연산": {
                "정수와 유리수": ("정수", "유리수", "절댓값", "정수와 유리수의 계산"),
                "문자와 식": ("문자의 사용", "일차식의 계산", "일차방정식"),
            },
            "기하": {
                "기본도형": ("점, 선, 면", "각", "평행선"),
                "평면도형": ("다각형", "부채꼴", "원과 부채꼴"),
                "입체도형": ("다면체", "회전체", "겉넓이와 부피"),
            },
            "확률과 통계": {
                "자료의 정리와 해석": ("줄기와 잎 그림", "도수분포표", "히스토그램", "상대도수"),
            },
        },
        "중학교 2학년": {
            "수와 연산": {
                "유리수와 순환소수": ("유한소수", "순환소수"),
                "식의 계산": ("지수법칙", "단항식의 계산", "다항식의 계산"),
                "연립방정식": ("연립일차방정식", "연립방정식의 활용"),
            },
            "기하": {
                "도형의 성질": ("이등변삼각형", "삼각형의 외심", "삼각형의 내심", "평행사변형"),
                "도형의 닮음": ("닮음", "닮음비", "삼각형의 닮음 조건"),
                "피타고라스 정리": ("피타고라스 정리", "직각삼각형"),
            },
            "확률과 통계": {
                "확률": ("경우의 수", "확률의 계산"),
            },
        },
        "중학교 3학년": {
            "수와 연산": {
                "제곱근과 실수": ("제곱근", "무리수", "실수"),
                "근호를 포함한 식의 계산": ("근호의 계산", "분모의 유리화"),
                "이차방정식": ("이차방정식의 풀이", "근의 공식", "판별식"),
            },
            "기하": {
                "삼각비": ("사인", "코사인", "탄젠트", "삼각비의 활용"),
                "원의 성질": ("원주각", "중심각", "현의 성질", "접선의 성질"),
                "원과 직선": ("원과 직선의 위치 관계", "접선의 길이"),
            },
            "확률과 통계": {
                "통계": ("대푯값", "산포도", "상관관계"),
            },
        },
        "고등학교 1학년": {
            "수학": {
                "수와 연산": ("지수와 로그", "삼각함수"),
                "기하": ("평면좌표", "직선의 방정식", "원의 방정식"),
                "확률과 통계": ("경우의 수", "확률"),
            },
            "수학 I": {
                "지수함수와 로그함수": ("지수", "로그", "지수함수", "로그함수"),
                "삼각함수": ("삼각함수", "삼각함수의 그래프", "사인법칙", "코사인법칙"),
                "수열": ("등차수열", "등비수열", "수열의 합"),
            },
            "수학 II": {
                "함수의 극한과 연속": ("함수의 극한", "함수의 연속"),
                "미분법": ("미분계수", "도함수", "도함수의 활용"),
                "적분법": ("부정적분", "정적분", "정적분의 활용"),
            },
        },
        "고등학교 2학년": {
            "확률과 통계": {
                "확률": ("확률의 뜻과 활용", "조건부확률"),
                "통계": ("확률분포", "통계적 추정"),
            },
            "기하": {
                "이차곡선": ("포물선", "타원", "쌍곡선"),
                "평면벡터": ("벡터", "벡터의 연산", "평면벡터의 성분과 내적"),
                "공간도형과 공간좌표": ("공간도형", "공간좌표"),
            },
        },
        "고등학교 3학년": {
            "미적분": {
                "수열의 극한": ("수열의 극한", "급수"),
                "미분법": ("여러 가지 함수의 미분", "도함수의 활용"),
                "적분법": ("여러 가지 적분법", "정적분의 활용"),
            },
            "확률과 통계": {
                "확률분포": ("이산확률분포", "연속확률분포"),
                "통계적 추정": ("모집단과 표본", "통계적 추정"),
            },
        },
    }
)

# Units without an entry fall back to their own sub-concepts.
UNIT_KEYWORDS: t.Mapping[str, tuple[str, ...]] = types.MappingProxyType(
    {
        "원의 성질": ("원", "원주각", "중심각", "호", "현", "접선", "반지름", "지름", "원주", "넓이"),
        "삼각비": ("삼각비", "사인", "코사인", "탄젠트", "sin", "cos", "tan"),
        "도형의 성질": ("삼각형", "사각형", "다각형", "이등변", "정삼각형", "정사각형"),
        "도형의 닮음": ("닮음", "닮음비", "대응변", "대응각"),
        "피타고라스 정리": ("피타고라스", "직각삼각형", "빗변"),
        "이차방정식": ("이차방정식", "근", "판별식", "인수분해"),
        "지수함수와 로그함수": ("지수", "로그", "지수함수", "로그함수"),
        "삼각함수": ("삼각함수", "사인", "코사인", "탄젠트", "사인법칙", "코사인법칙"),
        "미분법": ("미분", "도함수", "접선", "극값", "증감"),
        "적분법": ("적분", "부정적분", "정적분", "넓이", "부피"),
    }
)

DIFFICULTY_LEVELS: t.Mapping[str, str] = types.MappingProxyType(
    {
        "중학교 1학년": "Basic",
        "중학교 2학년": "Basic-Intermediate",
        "중학교 3학년": "Intermediate",
        "고등학교 1학년": "Intermediate",
        "고등학교 2학년": "Intermediate-Advanced",
        "고등학교 3학년": "Advanced",
    }
)

DEFAULT_DIFFICULTY = "Intermediate"


@dataclasses.dataclass(frozen=True)
class CurriculumAnalysis:
    grade: str | None
    subject: str | None
    unit: str | None
    sub_concepts: list[str]
    confidence: float

    @staticmethod
    def empty() -> "CurriculumAnalysis":
        return CurriculumAnalysis(grade=None, subject=None, unit=None, sub_concepts=[], confidence=0)

    def to_dict(self) -> JsonDict:
        return {
            "grade": self.grade,
            "subject": self.subject,
            "unit": self.unit,
            "subConcepts": list(self.sub_concepts),
            "confidence": self.confidence,
        }


def _overlaps(a: str, b: str) -> bool:
    return a in b or b in a


class CurriculumAnalyzer:
    def __init__(
        self,
        *,
        curriculum: t.Mapping[str, t.Mapping[str, t.Mapping[str, tuple[str, ...]]]] = CURRICULUM,
        unit_keywords: t.Mapping[str, tuple[str, ...]] = UNIT_KEYWORDS,
        difficulty_levels: t.Mapping[str, str] = DIFFICULTY_LEVELS,
    ) -> None:
        self.curriculum = curriculum
        self.unit_keywords = unit_keywords
        self.difficulty_levels = difficulty_levels

    def iter_units(self) -> t.Iterator[tuple[str, str, str, tuple[str, ...]]]:
        for grade, subjects in self.curriculum.items():
            for subject, units in subjects.items():
                for unit, sub_concepts in units.items():
                    yield grade, subject, unit, sub_concepts

    def keywords_for(self, unit: str, sub_concepts: t.Sequence[str]) -> tuple[str, ...]:
        return tuple(self.unit_keywords.get(unit) or sub_concepts)

    def classify(self, concepts: t.Sequence[str] | None) -> CurriculumAnalysis:
        """Pick the (grade, subject, unit) leaf whose sub-concepts and
        keywords overlap the given concepts the most.

        The score is the number of distinct matched terms divided by the
        number of input concepts. Ties keep the leaf declared first.
        """
        if not concepts:
            return CurriculumAnalysis.empty()

        normalized = [str(c).strip().lower() for c in concepts if str(c).strip()]
        if not normalized:
            return CurriculumAnalysis.empty()

        best = CurriculumAnalysis.empty()
        best_score = 0.0
        for grade, subject, unit, sub_concepts in self.iter_units():
            matches: list[str] = []
            for sub in sub_concepts:
                if any(_overlaps(c, sub.lower()) for c in normalized):
                    matches.append(sub)
            for keyword in self.keywords_for(unit, sub_concepts):
                if keyword in matches:
                    continue
                if any(_overlaps(c, keyword.lower()) for c in normalized):
                    matches.append(keyword)

            if not matches:
                continue
            score = len(matches) / len(normalized)
            if score > best_score:
                best_score = score
                best = CurriculumAnalysis(
                    grade=grade,
                    subject=subject,
                    unit=unit,
                    sub_concepts=matches,
                    confidence=min(score, 1.0),
                )
        return best

    def get_difficulty_level(self, grade: str | None) -> str:
        if not grade:
            return DEFAULT_DIFFICULTY
        return self.difficulty_levels.get(grade, DEFAULT_DIFFICULTY)
