"""
Creative transition selection for video exporter module.

Picks a between-scene transition from the scene's mood, an optional content
hint and the pacing, and maps each transition onto an FFmpeg xfade effect.
Lookup tables are immutable; randomness comes from an injectable
``random.Random`` so callers can make selection deterministic.
"""
import math
import random
from dataclasses import dataclass
from types import MappingProxyType
from typing import List, Mapping, Optional, Sequence, Tuple

from shared.logging import get_logger
from shared.models.export import SceneAsset

from .config import OUTPUT_FPS
from .ffmpeg_command import graph, xfade

logger = get_logger("video_exporter.transitions")

MIN_TRANSITION_DURATION = 0.2
MAX_TRANSITION_DURATION = 1.5
DEFAULT_TRANSITION_DURATION = 0.5
CONTENT_MATCH_PROBABILITY = 0.7
MOOD_SHIFT_PROBABILITY = 0.4
RANK_BIAS_EXPONENT = 1.5
HARD_CUT_DURATION = 1 / OUTPUT_FPS  # One frame


@dataclass(frozen=True)
class TransitionMeta:
    """Static description of one creative transition."""

    category: str
    energy: str
    base_duration: float
    xfade: str


TRANSITION_METADATA: Mapping[str, TransitionMeta] = MappingProxyType({
    # Motion
    "whip-pan": TransitionMeta("motion", "high", 0.3, "hblur"),
    "zoom-punch": TransitionMeta("motion", "high", 0.4, "zoomin"),
    "snap-zoom": TransitionMeta("motion", "high", 0.25, "zoomin"),
    "motion-blur-left": TransitionMeta("motion", "medium", 0.4, "smoothleft"),
    "motion-blur-right": TransitionMeta("motion", "medium", 0.4, "smoothright"),
    "motion-blur-up": TransitionMeta("motion", "medium", 0.4, "smoothup"),
    "motion-blur-down": TransitionMeta("motion", "medium", 0.4, "smoothdown"),
    # Light
    "flash-white": TransitionMeta("light", "high", 0.3, "fadewhite"),
    "flash-black": TransitionMeta("light", "high", 0.35, "fadeblack"),
    "light-leak": TransitionMeta("light", "low", 0.6, "fadewhite"),
    "lens-flare": TransitionMeta("light", "medium", 0.5, "radial"),
    "luma-fade": TransitionMeta("light", "low", 0.7, "fadegrays"),
    # Digital / glitch
    "glitch": TransitionMeta("digital", "high", 0.4, "hlslice"),
    "rgb-split": TransitionMeta("digital", "high", 0.35, "hrslice"),
    "pixelate": TransitionMeta("digital", "medium", 0.5, "pixelize"),
    "vhs-noise": TransitionMeta("digital", "low", 0.5, "dissolve"),
    # Shape reveals
    "circle-open": TransitionMeta("shape", "medium", 0.5, "circleopen"),
    "circle-close": TransitionMeta("shape", "medium", 0.5, "circleclose"),
    "heart-reveal": TransitionMeta("shape", "medium", 0.6, "circlecrop"),
    "diamond-wipe": TransitionMeta("shape", "medium", 0.5, "rectcrop"),
    "star-wipe": TransitionMeta("shape", "high", 0.5, "radial"),
    "diagonal-tl": TransitionMeta("shape", "medium", 0.5, "diagtl"),
    "diagonal-br": TransitionMeta("shape", "medium", 0.5, "diagbr"),
    # 3D-style
    "cube-rotate-left": TransitionMeta("3d", "medium", 0.6, "coverleft"),
    "cube-rotate-right": TransitionMeta("3d", "medium", 0.6, "coverright"),
    "page-flip": TransitionMeta("3d", "low", 0.7, "revealleft"),
    "parallax-slide": TransitionMeta("3d", "medium", 0.6, "slideleft"),
    # Smooth
    "smooth-blur": TransitionMeta("smooth", "low", 0.8, "fadeslow"),
    "cross-dissolve": TransitionMeta("smooth", "low", 0.7, "fade"),
    "wave-ripple": TransitionMeta("smooth", "low", 0.6, "distance"),
    "zoom-blur": TransitionMeta("smooth", "medium", 0.5, "zoomin"),
    # Classic
    "fade": TransitionMeta("classic", "low", 0.6, "fadeblack"),
    "wipe-left": TransitionMeta("classic", "low", 0.5, "wipeleft"),
    "wipe-right": TransitionMeta("classic", "low", 0.5, "wiperight"),
    "wipe-up": TransitionMeta("classic", "low", 0.5, "wipeup"),
    "wipe-down": TransitionMeta("classic", "low", 0.5, "wipedown"),
    "none": TransitionMeta("classic", "high", 0.0, "fade"),
})

# Ranked best match first
MOOD_TRANSITION_MAP: Mapping[str, Tuple[str, ...]] = MappingProxyType({
    "happy": ("light-leak", "flash-white", "circle-open", "lens-flare", "star-wipe", "zoom-punch"),
    "excited": ("whip-pan", "zoom-punch", "snap-zoom", "motion-blur-right", "glitch", "flash-white"),
    "sad": ("smooth-blur", "luma-fade", "fade", "cross-dissolve", "wave-ripple", "light-leak"),
    "angry": ("glitch", "rgb-split", "flash-black", "snap-zoom", "whip-pan", "zoom-punch"),
    "nervous": ("glitch", "rgb-split", "vhs-noise", "motion-blur-up", "pixelate", "flash-black"),
    "dramatic": ("flash-black", "zoom-punch", "snap-zoom", "glitch", "lens-flare", "cube-rotate-left"),
    "surprised": ("zoom-punch", "flash-white", "circle-open", "snap-zoom", "whip-pan", "star-wipe"),
    "thoughtful": ("smooth-blur", "luma-fade", "cross-dissolve", "parallax-slide", "page-flip", "zoom-blur"),
    "curious": ("circle-open", "zoom-blur", "parallax-slide", "diagonal-tl", "motion-blur-right", "lens-flare"),
    "whisper": ("smooth-blur", "luma-fade", "fade", "wave-ripple", "cross-dissolve", "vhs-noise"),
    "sarcastic": ("glitch", "rgb-split", "pixelate", "whip-pan", "snap-zoom", "none"),
    "neutral": ("cross-dissolve", "fade", "wipe-right", "circle-open", "smooth-blur", "diagonal-tl"),
})

CONTENT_TRANSITION_MAP: Mapping[str, Tuple[str, ...]] = MappingProxyType({
    "intro": ("circle-open", "fade", "parallax-slide", "zoom-blur", "luma-fade"),
    "problem": ("glitch", "rgb-split", "flash-black", "zoom-punch", "vhs-noise"),
    "agitation": ("whip-pan", "motion-blur-right", "snap-zoom", "glitch", "flash-black"),
    "solution": ("flash-white", "light-leak", "circle-open", "lens-flare", "star-wipe"),
    "cta": ("zoom-punch", "flash-white", "star-wipe", "lens-flare", "circle-open"),
    "outro": ("circle-close", "fade", "smooth-blur", "luma-fade", "cross-dissolve"),
    "tension_build": ("motion-blur-up", "zoom-blur", "snap-zoom", "glitch"),
    "tension_release": ("light-leak", "smooth-blur", "wave-ripple", "flash-white"),
    "revelation": ("flash-white", "zoom-punch", "circle-open", "lens-flare"),
    "reflection": ("smooth-blur", "luma-fade", "page-flip", "cross-dissolve"),
})

PACING_DURATION_MULTIPLIER: Mapping[str, float] = MappingProxyType({
    "slow": 1.4,
    "medium": 1.0,
    "fast": 0.7,
})

PACING_AVOID_TRANSITIONS: Mapping[str, Tuple[str, ...]] = MappingProxyType({
    "slow": ("whip-pan", "snap-zoom", "none", "glitch"),
    "medium": (),
    "fast": ("smooth-blur", "luma-fade", "page-flip", "wave-ripple"),
})

MOOD_SHIFT_TRANSITIONS = ("zoom-punch", "flash-white", "flash-black", "whip-pan")
FALLBACK_TRANSITIONS = ("cross-dissolve", "fade")
ENDING_TRANSITIONS = ("circle-close", "fade", "smooth-blur", "luma-fade")

CONTENT_KEYWORDS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("problem", ("problem", "struggle", "pain")),
    ("solution", ("solution", "answer", "finally")),
    ("cta", ("try", "start", "click", "join")),
)


@dataclass(frozen=True)
class PlannedTransition:
    """Transition chosen for the join after one scene."""

    index: int
    transition: str
    duration: float


def _weighted_pick(candidates: Sequence[str], rng: random.Random) -> str:
    """Random draw biased toward the front of the ranked list."""
    index = math.floor(rng.random() ** RANK_BIAS_EXPONENT * len(candidates))
    return candidates[min(index, len(candidates) - 1)]


def get_transition_duration(transition: str, pacing: str = "medium") -> float:
    """
    Transition duration scaled by pacing, clamped to [0.2, 1.5] seconds.

    Args:
        transition: Transition id
        pacing: "slow", "medium" or "fast"

    Returns:
        Duration in seconds (0.5 for unknown transitions)
    """
    meta = TRANSITION_METADATA.get(transition)
    if meta is None:
        return DEFAULT_TRANSITION_DURATION
    duration = meta.base_duration * PACING_DURATION_MULTIPLIER.get(pacing, 1.0)
    return max(MIN_TRANSITION_DURATION, min(MAX_TRANSITION_DURATION, duration))


def select_transition(
    current_mood: Optional[str],
    next_mood: Optional[str] = None,
    content_hint: Optional[str] = None,
    pacing: str = "medium",
    rng: Optional[random.Random] = None,
    is_last_scene: bool = False
) -> Tuple[str, float]:
    """
    Choose a transition for the join after a scene.

    Args:
        current_mood: Mood of the outgoing scene (unknown moods use "neutral")
        next_mood: Mood of the incoming scene; a change biases toward impact transitions
        content_hint: intro / problem / solution / cta / outro / ...
        pacing: "slow", "medium" or "fast"
        rng: Random source; pass a seeded instance for deterministic output
        is_last_scene: Use the ending pool instead of mood candidates

    Returns:
        Tuple of (transition_id, duration_seconds)
    """
    rng = rng or random.Random()
    avoid = set(PACING_AVOID_TRANSITIONS.get(pacing, ()))

    if is_last_scene:
        candidates = [t for t in ENDING_TRANSITIONS if t not in avoid]
    else:
        mood = current_mood if current_mood in MOOD_TRANSITION_MAP else "neutral"
        candidates = [t for t in MOOD_TRANSITION_MAP[mood] if t not in avoid]

        if content_hint and content_hint in CONTENT_TRANSITION_MAP:
            content = CONTENT_TRANSITION_MAP[content_hint]
            intersection = [t for t in candidates if t in content]
            if intersection and rng.random() < CONTENT_MATCH_PROBABILITY:
                candidates = intersection

        if next_mood and next_mood != current_mood:
            shift = [t for t in candidates if t in MOOD_SHIFT_TRANSITIONS]
            if shift and rng.random() < MOOD_SHIFT_PROBABILITY:
                candidates = shift

    if not candidates:
        candidates = list(FALLBACK_TRANSITIONS)

    transition = _weighted_pick(candidates, rng)
    return transition, get_transition_duration(transition, pacing)


def infer_content_hint(scene: SceneAsset, position: int, total: int) -> Optional[str]:
    """Content hint from story position, then narration keywords."""
    if position == 0:
        return "intro"
    if position == total - 1:
        return "outro"
    narration = scene.narration_text.lower()
    for hint, keywords in CONTENT_KEYWORDS:
        if any(keyword in narration for keyword in keywords):
            return hint
    return None


def plan_transitions(
    scenes: Sequence[SceneAsset],
    pacing: str = "medium",
    rng: Optional[random.Random] = None
) -> List[PlannedTransition]:
    """
    Pick a transition for every scene in playback order.

    Args:
        scenes: Scenes in playback order
        pacing: "slow", "medium" or "fast"
        rng: Random source shared across the whole plan

    Returns:
        One PlannedTransition per scene (the last one uses the ending pool)
    """
    rng = rng or random.Random()
    plan: List[PlannedTransition] = []
    for position, scene in enumerate(scenes):
        is_last = position == len(scenes) - 1
        next_mood = None if is_last else (scenes[position + 1].mood or "neutral")
        transition, duration = select_transition(
            scene.mood or "neutral",
            next_mood,
            infer_content_hint(scene, position, len(scenes)),
            pacing,
            rng=rng,
            is_last_scene=is_last
        )
        plan.append(PlannedTransition(index=scene.index, transition=transition, duration=duration))

    logger.info(
        f"Planned {len(plan)} transitions",
        extra={"pacing": pacing, "transitions": ",".join(p.transition for p in plan)}
    )
    return plan


def xfade_name(transition: Optional[str]) -> str:
    """FFmpeg xfade effect for a transition id; unknown ids cross-fade."""
    if transition and transition in TRANSITION_METADATA:
        return TRANSITION_METADATA[transition].xfade
    if transition:
        logger.warning(f"Unknown transition '{transition}', using fade", extra={"transition": transition})
    return "fade"


def is_hard_cut(transition: Optional[str]) -> bool:
    """True when the join should be a plain cut."""
    return not transition or transition == "none"


def build_xfade_graph(
    clip_durations: Sequence[float],
    joins: Sequence[Tuple[str, float]],
    output_label: str = "outv"
) -> List[str]:
    """
    Chain xfade filters over N video inputs.

    The transition after clip i starts at the running timeline length minus
    its own duration, so each join overlaps the tail of the previous clip.

    Args:
        clip_durations: Rendered length of each input clip
        joins: (xfade_name, duration) for each of the N-1 joins
        output_label: Label of the final stream

    Returns:
        Filtergraph chains for ``-filter_complex``
    """
    if len(joins) != len(clip_durations) - 1:
        raise ValueError(
            f"Expected {len(clip_durations) - 1} joins for {len(clip_durations)} clips, got {len(joins)}"
        )

    chains: List[str] = []
    previous = "0:v"
    cumulative = clip_durations[0]
    for i, (name, duration) in enumerate(joins):
        offset = max(0.0, cumulative - duration)
        label = output_label if i == len(joins) - 1 else f"xv{i + 1}"
        chains.append(graph([previous, f"{i + 1}:v"], xfade(name, duration, offset), label))
        previous = label
        cumulative = offset + clip_durations[i + 1]
    return chains
