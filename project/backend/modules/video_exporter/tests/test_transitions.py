"""
Unit tests for creative transition selection.
"""
import random
import pytest

from modules.video_exporter.transitions import (
    ENDING_TRANSITIONS,
    MAX_TRANSITION_DURATION,
    MIN_TRANSITION_DURATION,
    MOOD_TRANSITION_MAP,
    PACING_AVOID_TRANSITIONS,
    build_xfade_graph,
    get_transition_duration,
    infer_content_hint,
    is_hard_cut,
    plan_transitions,
    select_transition,
    xfade_name,
)
from shared.models.export import SceneAsset


class FixedRandom(random.Random):
    """Random source that always returns the same draw."""

    def __init__(self, value: float):
        super().__init__(0)
        self.value = value

    def random(self) -> float:
        return self.value


def scene(index: int, mood: str = None, narration_text: str = "") -> SceneAsset:
    return SceneAsset(
        index=index,
        duration_seconds=5.0,
        image_url=f"https://cdn.example.com/{index}.png",
        mood=mood,
        narration_text=narration_text
    )


class TestSelectTransition:
    """Tests for select_transition."""

    def test_best_ranked_candidate_on_low_draw(self):
        """A draw of 0 picks the mood's top transition."""
        transition, duration = select_transition("happy", rng=FixedRandom(0.0))

        assert transition == "light-leak"
        assert duration == pytest.approx(0.6)

    def test_content_hint_narrows_candidates(self):
        """Hint intersection replaces the mood list when the draw allows it."""
        transition, _ = select_transition("excited", content_hint="cta", rng=FixedRandom(0.0))

        assert transition == "zoom-punch"

    def test_content_hint_skipped_on_high_draw(self):
        """Above the match probability the mood list is kept."""
        transition, _ = select_transition("excited", content_hint="cta", rng=FixedRandom(0.99))

        assert transition in MOOD_TRANSITION_MAP["excited"]
        assert transition not in ("zoom-punch",)

    def test_mood_shift_prefers_impact(self):
        """A sharp mood change biases toward high-impact transitions."""
        transition, _ = select_transition("happy", next_mood="sad", rng=FixedRandom(0.0))

        assert transition == "flash-white"

    def test_unknown_mood_uses_neutral(self):
        """Unknown moods fall back to the neutral list."""
        transition, _ = select_transition("bewildered", rng=FixedRandom(0.0))

        assert transition == MOOD_TRANSITION_MAP["neutral"][0]

    def test_last_scene_uses_ending_pool(self):
        """Final scene draws from the ending transitions."""
        transition, duration = select_transition("excited", pacing="slow", rng=FixedRandom(0.0), is_last_scene=True)

        assert transition == "circle-close"
        assert duration == pytest.approx(0.5 * 1.4)

    @pytest.mark.parametrize("pacing", ["slow", "medium", "fast"])
    def test_never_returns_avoided_transition(self, pacing):
        """Pacing avoid-lists hold for every mood, hint and seed."""
        avoid = set(PACING_AVOID_TRANSITIONS[pacing])
        hints = [None, "intro", "problem", "solution", "cta", "outro"]
        for mood in MOOD_TRANSITION_MAP:
            for hint in hints:
                for seed in range(15):
                    rng = random.Random(seed)
                    transition, duration = select_transition(mood, "angry", hint, pacing, rng=rng)
                    assert transition not in avoid
                    assert MIN_TRANSITION_DURATION <= duration <= MAX_TRANSITION_DURATION

    def test_seeded_selection_is_repeatable(self):
        """Same seed, same answer."""
        first = select_transition("dramatic", "happy", "problem", "fast", rng=random.Random(7))
        second = select_transition("dramatic", "happy", "problem", "fast", rng=random.Random(7))

        assert first == second


class TestTransitionDuration:
    """Tests for get_transition_duration."""

    @pytest.mark.parametrize("transition,pacing,expected", [
        ("smooth-blur", "slow", 0.8 * 1.4),
        ("fade", "medium", 0.6),
        ("light-leak", "fast", 0.6 * 0.7),
        ("snap-zoom", "fast", 0.2),
        ("none", "medium", 0.2),
        ("unknown-transition", "slow", 0.5),
    ])
    def test_duration(self, transition, pacing, expected):
        """Base duration scaled by pacing and clamped."""
        assert get_transition_duration(transition, pacing) == pytest.approx(expected)


class TestPlanning:
    """Tests for content hints and whole-job planning."""

    def test_infer_content_hint(self):
        """Position first, then narration keywords."""
        assert infer_content_hint(scene(0), 0, 4) == "intro"
        assert infer_content_hint(scene(3), 3, 4) == "outro"
        assert infer_content_hint(scene(1, narration_text="Every day is a struggle"), 1, 4) == "problem"
        assert infer_content_hint(scene(2, narration_text="We FINALLY found it"), 2, 4) == "solution"
        assert infer_content_hint(scene(2, narration_text="Join us today"), 2, 4) == "cta"
        assert infer_content_hint(scene(1, narration_text="A quiet morning"), 1, 4) is None

    def test_plan_transitions_seeded(self):
        """One plan entry per scene, repeatable with a seed, ending pool last."""
        scenes = [scene(0, "happy"), scene(1, "sad"), scene(2, "dramatic"), scene(3, "happy")]

        first = plan_transitions(scenes, "medium", random.Random(3))
        second = plan_transitions(scenes, "medium", random.Random(3))

        assert first == second
        assert [p.index for p in first] == [0, 1, 2, 3]
        assert first[-1].transition in ENDING_TRANSITIONS


class TestXfadeMapping:
    """Tests for xfade names and graph construction."""

    def test_xfade_name(self):
        """Known ids map to their effect, anything else cross-fades."""
        assert xfade_name("whip-pan") == "hblur"
        assert xfade_name("circle-open") == "circleopen"
        assert xfade_name("not-a-transition") == "fade"
        assert xfade_name(None) == "fade"

    def test_is_hard_cut(self):
        """Absent or none means cut."""
        assert is_hard_cut(None)
        assert is_hard_cut("none")
        assert not is_hard_cut("fade")

    def test_build_xfade_graph_offsets(self):
        """Each join overlaps the tail of the running timeline."""
        chains = build_xfade_graph([5.5, 5.5, 5.0], [("fade", 0.5), ("fadeblack", 0.5)])

        assert chains == [
            "[0:v][1:v]xfade=transition=fade:duration=0.5:offset=5[xv1]",
            "[xv1][2:v]xfade=transition=fadeblack:duration=0.5:offset=10[outv]",
        ]

    def test_build_xfade_graph_join_count_mismatch(self):
        """N clips need N-1 joins."""
        with pytest.raises(ValueError):
            build_xfade_graph([5.0, 5.0], [])
