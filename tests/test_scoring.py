"""Tests for the scoring engine, the Score value object and policy validation."""

from __future__ import annotations

import math

import pytest
from hypothesis import given
from hypothesis import strategies as st

from page_context.domain.entities import (
    Category,
    ContentSignals,
    DeclaredPackage,
    DependencySnapshot,
    EnvironmentSnapshot,
    EnvironmentVariable,
    ObservedFile,
    Presence,
    ProjectStructure,
)
from page_context.domain.exceptions import InvalidScoreError, InvalidScoringPolicyError
from page_context.domain.value_objects import Score
from page_context.services.scoring import (
    Curve,
    ScoringEngine,
    ScoringPolicy,
    ScoringWeights,
    SubScores,
    confidence_level,
    structure_score,
    tier_factor,
)
from page_context.services.structure import build_structure


def _editor_files() -> list[ObservedFile]:
    return [
        ObservedFile.from_content("src/index.ts", "typescript", "import { App } from './app';\nApp();\n"),
        ObservedFile.from_content("src/app.ts", "typescript", "export const App = () => 1;\n"),
        ObservedFile.from_content("src/util.ts", "typescript", "export const x = 1;\n"),
        ObservedFile.from_content("src/types.ts", "typescript", "export type T = string;\n"),
        ObservedFile.from_content("styles/main.css", "css", "body { margin: 0; }\n"),
        ObservedFile.from_content("styles/theme.css", "css", ":root { --x: 1; }\n"),
    ]


# ── Score value object ──────────────────────────────────────────────────────


class TestScore:
    def test_accepts_bounds(self) -> None:
        assert Score(0).value == 0
        assert Score(100).value == 100

    @pytest.mark.parametrize("bad", [-1, 101, 50.0, True])
    def test_rejects_direct_out_of_range_or_non_int(self, bad: object) -> None:
        with pytest.raises(InvalidScoreError):
            Score(bad)  # type: ignore[arg-type]

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            (42.5, 43),
            (42.49, 42),
            (-12.0, 0),
            (250.0, 100),
            (math.nan, 0),
            (math.inf, 100),
            (-math.inf, 0),
        ],
    )
    def test_clamp(self, raw: float, expected: int) -> None:
        assert Score.clamp(raw).value == expected

    def test_ordering(self) -> None:
        assert Score(10) < Score(20)


# ── Policy ──────────────────────────────────────────────────────────────────


class TestPolicy:
    def test_default_policy_is_valid(self) -> None:
        assert ScoringPolicy().validate().weights.total() == pytest.approx(1.0)

    def test_weights_off_by_more_than_tolerance_refuse_to_initialise(self) -> None:
        policy = ScoringPolicy(weights=ScoringWeights(category=0.9))
        with pytest.raises(InvalidScoringPolicyError, match="sum to 1.0"):
            ScoringEngine(policy)

    def test_weights_within_tolerance_are_accepted(self) -> None:
        ScoringEngine(ScoringPolicy(weights=ScoringWeights(category=0.8505)))

    def test_negative_weight_rejected(self) -> None:
        weights = ScoringWeights(category=1.05, structure=-0.05, dependencies=0.0, environment=0.0, content=0.0)
        with pytest.raises(InvalidScoringPolicyError, match="negative"):
            ScoringEngine(ScoringPolicy(weights=weights))

    def test_incomplete_category_table_rejected(self) -> None:
        with pytest.raises(InvalidScoringPolicyError, match="missing"):
            ScoringEngine(ScoringPolicy(category_scores={Category.GITHUB: 75}))

    def test_overrides_replace_selected_entries(self) -> None:
        policy = ScoringPolicy.from_overrides(
            {"category": 0.8, "structure": 0.12}, {"github": 90}
        )
        assert policy.weights.category == 0.8
        assert policy.category_scores[Category.GITHUB] == 90
        assert policy.category_scores[Category.MONACO] == 100

    def test_override_with_unknown_category_rejected(self) -> None:
        with pytest.raises(InvalidScoringPolicyError):
            ScoringPolicy.from_overrides(category_scores={"notepad": 10})


# ── Sub-scores ──────────────────────────────────────────────────────────────


class TestSubScores:
    def test_curve_is_bounded_by_its_ceiling(self) -> None:
        curve = Curve(30, 0.1)
        assert curve(0) == 0
        assert curve(-5) == 0
        assert curve(math.nan) == 0
        assert curve(10_000) <= 30
        assert curve(math.inf) == 30

    def test_curve_has_diminishing_returns(self) -> None:
        curve = Curve(30, 0.1)
        assert curve(2) - curve(1) < curve(1) - curve(0)

    def test_later_tiers_weigh_less(self) -> None:
        policy = ScoringPolicy()
        assert tier_factor(1, policy) == 1.0
        assert tier_factor(2, policy) < 1.0
        assert tier_factor(99, policy) == policy.tier_floor
        assert tier_factor(0, policy) == 0.0

    def test_structure_score_prefers_earlier_tier(self) -> None:
        policy = ScoringPolicy()
        files = _editor_files()
        first = build_structure(files, tier=1, strategy="a")
        third = build_structure(files, tier=3, strategy="c")
        assert structure_score(first, policy) > structure_score(third, policy)

    def test_empty_structure_scores_zero(self) -> None:
        assert structure_score(ProjectStructure.empty(), ScoringPolicy()) == 0.0


# ── Engine ──────────────────────────────────────────────────────────────────


class TestEngine:
    def test_editor_with_six_files_lands_at_or_above_85(self) -> None:
        structure = build_structure(_editor_files(), tier=1, strategy="monaco-models")
        assert len(structure.languages) == 2

        score = ScoringEngine().score(
            Category.MONACO,
            structure,
            DependencySnapshot.unknown(),
            EnvironmentSnapshot.empty(),
        )
        assert score.value >= 85

    def test_unknown_with_nothing_lands_at_or_below_30(self) -> None:
        score = ScoringEngine().score(
            Category.UNKNOWN,
            ProjectStructure.empty(),
            DependencySnapshot.unknown(),
            EnvironmentSnapshot.empty(),
            ContentSignals.none(),
        )
        assert score.value <= 30

    def test_has_code_and_unknown_share_the_low_confidence_bucket(self) -> None:
        engine = ScoringEngine()
        empty = (ProjectStructure.empty(), DependencySnapshot.unknown(), EnvironmentSnapshot.empty())
        has_code = engine.score(Category.HAS_CODE, *empty)
        unknown = engine.score(Category.UNKNOWN, *empty)
        assert Category.HAS_CODE.is_low_confidence and Category.UNKNOWN.is_low_confidence
        assert unknown < has_code <= Score(40)

    def test_is_deterministic(self) -> None:
        engine = ScoringEngine()
        structure = build_structure(_editor_files(), tier=2, strategy="editor-view-lines")
        deps = DependencySnapshot(
            runtime_language="javascript",
            package_manager="npm",
            packages=(DeclaredPackage("react", "^18.2.0"),),
            lock_file="package-lock.json",
            lock_file_presence=Presence.PRESENT,
        )
        env = EnvironmentSnapshot(
            variables=(EnvironmentVariable("API_URL", is_required=True),),
            config_files=("package.json",),
        )
        scores = {engine.score(Category.STACKBLITZ, structure, deps, env).value for _ in range(20)}
        assert len(scores) == 1

    def test_breakdown_contributions_sum_to_total(self) -> None:
        engine = ScoringEngine()
        structure = build_structure(_editor_files(), tier=1, strategy="monaco-models")
        breakdown = engine.breakdown(
            Category.MONACO, structure, DependencySnapshot.unknown(), EnvironmentSnapshot.empty()
        )
        parts = breakdown.as_dict()
        total = sum(p["contribution"] for p in parts.values())
        assert breakdown.total == Score.clamp(total)
        assert parts["category"]["raw"] == 100

    @given(
        st.floats(allow_nan=True, allow_infinity=True),
        st.floats(allow_nan=True, allow_infinity=True),
        st.floats(allow_nan=True, allow_infinity=True),
        st.floats(allow_nan=True, allow_infinity=True),
        st.floats(allow_nan=True, allow_infinity=True),
    )
    def test_total_always_in_range(
        self, category: float, structure: float, deps: float, env: float, content: float
    ) -> None:
        total = ScoringEngine().combine(SubScores(category, structure, deps, env, content)).total
        assert isinstance(total.value, int)
        assert 0 <= total.value <= 100

    @given(
        st.integers(min_value=-1_000, max_value=1_000_000),
        st.integers(min_value=-1_000, max_value=1_000_000),
        st.integers(min_value=-1_000, max_value=1_000_000),
    )
    def test_oversized_signal_counts_stay_in_range(self, blocks: int, highlighted: int, files: int) -> None:
        content = ContentSignals(code_block_count=blocks, highlighted_block_count=highlighted)
        structure = build_structure(
            [ObservedFile.from_content(f"f{i}.py", "python", "x = 1\n") for i in range(max(0, min(files, 40)))],
            tier=1,
        )
        score = ScoringEngine().score(
            Category.MONACO, structure, DependencySnapshot.unknown(), EnvironmentSnapshot.empty(), content
        )
        assert 0 <= score.value <= 100


@pytest.mark.parametrize(
    ("value", "level"),
    [(95, "VERY_HIGH"), (80, "HIGH"), (70, "GOOD"), (60, "MODERATE"), (59, "LOW")],
)
def test_confidence_level(value: int, level: str) -> None:
    assert confidence_level(Score(value)) == level
