"""Scoring engine — deterministic, weighted confidence in ``[0, 100]``.

Five sub-scores (category, structure, dependencies, environment, generic
content) are each clamped to ``[0, 100]`` and combined with a convex weight
vector.  Every repeated signal goes through a diminishing-returns curve
capped by its own ceiling, so no pile of weak evidence can grow without
bound.  The category sub-score is a table lookup, never computed.

All constants live in :class:`ScoringPolicy` so they can be replaced
through configuration.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, fields
from typing import Mapping

from page_context.domain.entities import (
    UNKNOWN,
    Category,
    ContentSignals,
    DependencySnapshot,
    EnvironmentSnapshot,
    Presence,
    ProjectStructure,
)
from page_context.domain.exceptions import InvalidScoringPolicyError
from page_context.domain.value_objects import Score

WEIGHT_TOLERANCE = 0.001

# ── Policy ──────────────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class ScoringWeights:
    category: float = 0.85
    structure: float = 0.07
    dependencies: float = 0.03
    environment: float = 0.02
    content: float = 0.03

    def total(self) -> float:
        return sum(getattr(self, f.name) for f in fields(self))


DEFAULT_CATEGORY_SCORES: Mapping[Category, int] = {
    Category.MONACO: 100,
    Category.STACKBLITZ: 95,
    Category.CODESANDBOX: 95,
    Category.VSCODE_WEB: 90,
    Category.CODEMIRROR: 85,
    Category.GITHUB: 75,
    Category.GITLAB: 70,
    Category.CODEPEN: 60,
    Category.LOCALHOST: 50,
    Category.HAS_CODE: 40,
    Category.UNKNOWN: 25,
}


@dataclass(frozen=True, slots=True)
class Curve:
    """``ceiling * (1 - (1 - rate) ** n)`` — each extra signal adds less."""

    ceiling: float
    rate: float

    def __call__(self, count: float) -> float:
        if not isinstance(count, (int, float)) or math.isnan(count) or count <= 0:
            return 0.0
        if math.isinf(count):
            return self.ceiling
        return self.ceiling * (1.0 - (1.0 - self.rate) ** count)


@dataclass(frozen=True, slots=True)
class ScoringPolicy:
    weights: ScoringWeights = field(default_factory=ScoringWeights)
    category_scores: Mapping[Category, int] = field(
        default_factory=lambda: dict(DEFAULT_CATEGORY_SCORES)
    )

    # Structure
    files: Curve = Curve(30, 0.10)
    lines_per_hundred: Curve = Curve(20, 0.10)
    entry_points: Curve = Curve(15, 0.35)
    language_diversity: Curve = Curve(10, 0.25)
    files_with_content: Curve = Curve(25, 0.20)
    tier_step: float = 0.15
    tier_floor: float = 0.4

    # Dependencies
    known_runtime: float = 30
    packages: Curve = Curve(40, 0.05)
    lock_file: float = 20
    known_package_manager: float = 10

    # Environment
    variables: Curve = Curve(50, 0.20)
    config_files: Curve = Curve(30, 0.15)
    required_variables: Curve = Curve(20, 0.25)

    # Generic content
    code_blocks: Curve = Curve(40, 0.12)
    content_languages: Curve = Curve(30, 0.30)
    highlighted_blocks: Curve = Curve(30, 0.10)

    def validate(self) -> ScoringPolicy:
        total = self.weights.total()
        if abs(total - 1.0) > WEIGHT_TOLERANCE:
            raise InvalidScoringPolicyError(f"Scoring weights must sum to 1.0, got {total:.6f}")
        if any(getattr(self.weights, f.name) < 0 for f in fields(self.weights)):
            raise InvalidScoringPolicyError("Scoring weights must not be negative")
        missing = [c.value for c in Category if c not in self.category_scores]
        if missing:
            raise InvalidScoringPolicyError(f"Category table is missing: {', '.join(missing)}")
        out_of_range = [
            c.value for c, v in self.category_scores.items() if not 0 <= v <= 100
        ]
        if out_of_range:
            raise InvalidScoringPolicyError(
                f"Category scores outside [0, 100]: {', '.join(out_of_range)}"
            )
        return self

    @classmethod
    def from_overrides(
        cls,
        weights: Mapping[str, float] | None = None,
        category_scores: Mapping[str, int] | None = None,
    ) -> ScoringPolicy:
        """Defaults with selected weights and table entries replaced, validated."""
        try:
            new_weights = ScoringWeights(**{**_asdict(ScoringWeights()), **(weights or {})})
            table = dict(DEFAULT_CATEGORY_SCORES)
            table.update({Category(k): int(v) for k, v in (category_scores or {}).items()})
        except (TypeError, ValueError) as exc:
            raise InvalidScoringPolicyError(f"Invalid scoring override: {exc}") from exc
        return cls(weights=new_weights, category_scores=table).validate()


def _asdict(weights: ScoringWeights) -> dict[str, float]:
    return {f.name: getattr(weights, f.name) for f in fields(weights)}


# ── Sub-scores ──────────────────────────────────────────────────────────────


def clamp_sub_score(raw: float) -> float:
    """Clamp a sub-score to ``[0, 100]``; NaN counts as 0."""
    if raw is None or math.isnan(raw):
        return 0.0
    return min(100.0, max(0.0, float(raw)))


def tier_factor(tier: int, policy: ScoringPolicy) -> float:
    """Extraction-tier confidence: tier 1 counts fully, later tiers less."""
    if tier <= 0:
        return 0.0
    return max(policy.tier_floor, 1.0 - policy.tier_step * (tier - 1))


def structure_score(structure: ProjectStructure, policy: ScoringPolicy) -> float:
    if structure.is_empty:
        return 0.0
    languages = len(structure.languages)
    raw = (
        policy.files(structure.total_files)
        + policy.lines_per_hundred(structure.total_lines / 100)
        + policy.entry_points(len(structure.entry_points))
        + (policy.language_diversity(languages) if languages > 1 else 0.0)
        + policy.files_with_content(sum(1 for f in structure.files if f.content))
    )
    return clamp_sub_score(raw * tier_factor(structure.source_tier, policy))


def dependency_score(deps: DependencySnapshot, policy: ScoringPolicy) -> float:
    raw = policy.packages(len(deps.packages))
    if deps.runtime_language != UNKNOWN:
        raw += policy.known_runtime
    if deps.lock_file_presence is Presence.PRESENT:
        raw += policy.lock_file
    if deps.package_manager != UNKNOWN:
        raw += policy.known_package_manager
    return clamp_sub_score(raw)


def environment_score(env: EnvironmentSnapshot, policy: ScoringPolicy) -> float:
    required = sum(1 for v in env.variables if v.is_required)
    return clamp_sub_score(
        policy.variables(len(env.variables))
        + policy.config_files(len(env.config_files))
        + policy.required_variables(required)
    )


def content_score(content: ContentSignals, policy: ScoringPolicy) -> float:
    return clamp_sub_score(
        policy.code_blocks(content.code_block_count)
        + policy.content_languages(len(content.languages))
        + policy.highlighted_blocks(content.highlighted_block_count)
    )


# ── Breakdown ───────────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class SubScore:
    raw: float
    weight: float

    @property
    def contribution(self) -> float:
        return self.raw * self.weight


@dataclass(frozen=True, slots=True)
class ScoreBreakdown:
    category: SubScore
    structure: SubScore
    dependencies: SubScore
    environment: SubScore
    content: SubScore
    total: Score

    def as_dict(self) -> dict[str, dict[str, float]]:
        parts = ("category", "structure", "dependencies", "environment", "content")
        return {
            name: {
                "raw": getattr(self, name).raw,
                "weight": getattr(self, name).weight,
                "contribution": getattr(self, name).contribution,
            }
            for name in parts
        }


@dataclass(frozen=True, slots=True)
class SubScores:
    """Raw, unweighted sub-scores before clamping."""

    category: float
    structure: float
    dependencies: float
    environment: float
    content: float


# ── Engine ──────────────────────────────────────────────────────────────────


class ScoringEngine:
    """Pure function object from extraction results to a :class:`Score`.

    Refuses to initialise when the policy's weights do not sum to 1.0.
    """

    def __init__(self, policy: ScoringPolicy | None = None) -> None:
        self._policy = (policy or ScoringPolicy()).validate()

    @property
    def policy(self) -> ScoringPolicy:
        return self._policy

    def score(
        self,
        category: Category,
        structure: ProjectStructure,
        dependencies: DependencySnapshot,
        environment: EnvironmentSnapshot,
        content: ContentSignals | None = None,
    ) -> Score:
        return self.breakdown(category, structure, dependencies, environment, content).total

    def breakdown(
        self,
        category: Category,
        structure: ProjectStructure,
        dependencies: DependencySnapshot,
        environment: EnvironmentSnapshot,
        content: ContentSignals | None = None,
    ) -> ScoreBreakdown:
        policy = self._policy
        return self.combine(
            SubScores(
                category=float(policy.category_scores[category]),
                structure=structure_score(structure, policy),
                dependencies=dependency_score(dependencies, policy),
                environment=environment_score(environment, policy),
                content=content_score(content or ContentSignals.none(), policy),
            )
        )

    def combine(self, sub_scores: SubScores) -> ScoreBreakdown:
        """Clamp each sub-score, weight it, and clamp the sum into a Score."""
        w = self._policy.weights
        parts = {
            "category": SubScore(clamp_sub_score(sub_scores.category), w.category),
            "structure": SubScore(clamp_sub_score(sub_scores.structure), w.structure),
            "dependencies": SubScore(clamp_sub_score(sub_scores.dependencies), w.dependencies),
            "environment": SubScore(clamp_sub_score(sub_scores.environment), w.environment),
            "content": SubScore(clamp_sub_score(sub_scores.content), w.content),
        }
        total = Score.clamp(sum(p.contribution for p in parts.values()))
        return ScoreBreakdown(total=total, **parts)


# ── Confidence levels ───────────────────────────────────────────────────────

_LEVELS: tuple[tuple[int, str], ...] = (
    (90, "VERY_HIGH"),
    (80, "HIGH"),
    (70, "GOOD"),
    (60, "MODERATE"),
)


def confidence_level(score: Score) -> str:
    for threshold, level in _LEVELS:
        if score.value >= threshold:
            return level
    return "LOW"
