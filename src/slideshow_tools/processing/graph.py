"""Filter graph construction for slideshow videos.

The graph is assembled as an ordered list of chains. Each chain reads one
or more labelled streams, applies typed filter nodes in sequence, and
writes exactly one new label:

    [0:v] zoompan, fade-in, drawtext   -> [v0]
    [1:v] zoompan                      -> [v1]
    ...
    [v0][v1]  xfade @ 1*(D-F)          -> [x1]
    [x1][v2]  xfade @ 2*(D-F)          -> [x2]
    ...
    [x{N-1}]  fade-out @ total-F       -> [xf]
    [xf]      trim=total, setpts       -> [xfout]
    [{N}:a]   afade in, afade out      -> [musicout]   (audio only)

Label bookkeeping happens as chains are added, so a duplicate producer, a
second consumer or a forward reference fails at construction time instead
of inside ffmpeg. Rendering to ffmpeg's text syntax is the last step.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Optional, Sequence

from ..constants import (
    AUDIO_FADE_IN_SECONDS,
    AUDIO_FADE_OUT_SECONDS,
    DEFAULT_OVERLAY_FONT_SIZE,
    OVERLAY_BOTTOM_MARGIN,
    OVERLAY_BOX_BORDER,
    OVERLAY_BOX_COLOR,
    OVERLAY_FONT_COLOR,
)
from ..exceptions import FilterGraphError
from ..models import Clip
from .effects import KenBurnsEffect, KenBurnsGenerator
from .ffmpeg import escape_drawtext, format_seconds

# Input stream specifiers such as "0:v" or "3:a" come from -i arguments
_STREAM_SPECIFIER = re.compile(r"^\d+:[a-z]+(:\d+)?$")

VIDEO_OUTPUT_LABEL = "xfout"
AUDIO_OUTPUT_LABEL = "musicout"


def is_stream_specifier(label: str) -> bool:
    return bool(_STREAM_SPECIFIER.match(label))


# =============================================================================
# Filter nodes
# =============================================================================


class FilterNode:
    """One filter in a chain."""

    def render(self) -> str:
        raise NotImplementedError


@dataclass(frozen=True)
class ZoomPanNode(FilterNode):
    effect: KenBurnsEffect

    def render(self) -> str:
        return self.effect.render()


@dataclass(frozen=True)
class CopyNode(FilterNode):
    def render(self) -> str:
        return "copy"


@dataclass(frozen=True)
class FadeNode(FilterNode):
    direction: str  # "in" or "out"
    start: float
    duration: float
    audio: bool = False

    def render(self) -> str:
        name = "afade" if self.audio else "fade"
        return (
            f"{name}=t={self.direction}"
            f":st={format_seconds(self.start)}:d={format_seconds(self.duration)}"
        )


@dataclass(frozen=True)
class DrawTextNode(FilterNode):
    """Boxed caption anchored to the bottom centre of the frame."""

    text: str
    font_size: int = DEFAULT_OVERLAY_FONT_SIZE
    font_color: str = OVERLAY_FONT_COLOR
    box_color: str = OVERLAY_BOX_COLOR
    box_border: int = OVERLAY_BOX_BORDER
    bottom_margin: int = OVERLAY_BOTTOM_MARGIN

    def render(self) -> str:
        return (
            f"drawtext=text='{escape_drawtext(self.text)}'"
            f":fontsize={self.font_size}:fontcolor={self.font_color}"
            f":x=(w-tw)/2:y=h-th-{self.bottom_margin}"
            f":box=1:boxcolor={self.box_color}:boxborderw={self.box_border}"
        )


@dataclass(frozen=True)
class CrossfadeNode(FilterNode):
    duration: float
    offset: float
    transition: str = "fade"

    def render(self) -> str:
        return (
            f"xfade=transition={self.transition}"
            f":duration={format_seconds(self.duration)}:offset={format_seconds(self.offset)}"
        )


@dataclass(frozen=True)
class TrimNode(FilterNode):
    """Cut to an exact duration and restart timestamps at zero."""

    duration: float

    def render(self) -> str:
        return f"trim=duration={format_seconds(self.duration)},setpts=PTS-STARTPTS"


@dataclass(frozen=True)
class ScaleNode(FilterNode):
    factor: float

    def render(self) -> str:
        return f"scale=iw*{self.factor:.2f}:ih*{self.factor:.2f}"


@dataclass(frozen=True)
class SetSarNode(FilterNode):
    def render(self) -> str:
        return "setsar=1"


@dataclass(frozen=True)
class ConcatNode(FilterNode):
    count: int
    video: int = 1
    audio: int = 0

    def render(self) -> str:
        return f"concat=n={self.count}:v={self.video}:a={self.audio}"


# =============================================================================
# Chains and graph
# =============================================================================


@dataclass(frozen=True)
class FilterChain:
    """Filters applied in sequence from `inputs` to one `output` label."""

    inputs: tuple[str, ...]
    nodes: tuple[FilterNode, ...]
    output: str

    def render(self) -> str:
        sources = "".join(f"[{label}]" for label in self.inputs)
        filters = ",".join(node.render() for node in self.nodes)
        return f"{sources}{filters}[{self.output}]"


@dataclass
class FilterGraph:
    """Ordered chains with producer/consumer label checks."""

    chains: list[FilterChain] = field(default_factory=list)
    _produced: dict[str, int] = field(default_factory=dict, repr=False)
    _consumed: set[str] = field(default_factory=set, repr=False)

    def add(
        self,
        inputs: Sequence[str],
        nodes: Sequence[FilterNode],
        output: str,
    ) -> FilterChain:
        """Append a chain, validating every label it touches.

        Raises:
            FilterGraphError: On an unknown, reused or re-produced label
        """
        if not nodes:
            raise FilterGraphError("Chain has no filters", output)
        if is_stream_specifier(output):
            raise FilterGraphError("Chain output cannot be an input stream", output)
        if output in self._produced:
            raise FilterGraphError("Label produced twice", output)

        for label in inputs:
            if is_stream_specifier(label):
                continue
            if label not in self._produced:
                raise FilterGraphError("Label referenced before it is produced", label)
            if label in self._consumed or list(inputs).count(label) > 1:
                raise FilterGraphError("Label consumed twice", label)

        chain = FilterChain(tuple(inputs), tuple(nodes), output)
        self._consumed.update(l for l in inputs if not is_stream_specifier(l))
        self._produced[output] = len(self.chains)
        self.chains.append(chain)
        return chain

    @property
    def labels(self) -> list[str]:
        """All produced labels in production order."""
        return list(self._produced)

    @property
    def outputs(self) -> list[str]:
        """Labels nobody consumes; these must be mapped to the output file."""
        return [label for label in self._produced if label not in self._consumed]

    def render(self) -> str:
        return ";".join(chain.render() for chain in self.chains)


# =============================================================================
# Slideshow timeline
# =============================================================================


@dataclass(frozen=True)
class Timeline:
    """Timing for N clips of duration D joined by crossfades of length F.

    Every value is computed directly from N, D and F rather than
    accumulated, so no drift builds up along the chain.
    """

    clip_count: int
    clip_duration: float
    transition_duration: float

    def offset(self, i: int) -> float:
        """Start of the i-th crossfade (1-based), in output time."""
        return i * (self.clip_duration - self.transition_duration)

    @property
    def offsets(self) -> list[float]:
        return [self.offset(i) for i in range(1, self.clip_count)]

    @property
    def total_duration(self) -> float:
        return (
            self.clip_count * self.clip_duration
            - (self.clip_count - 1) * self.transition_duration
        )

    @property
    def fade_out_start(self) -> float:
        return self.total_duration - self.transition_duration

    @property
    def audio_fade_out_duration(self) -> float:
        """4s, shortened when the video fade-out starts earlier than that."""
        return min(AUDIO_FADE_OUT_SECONDS, self.fade_out_start)

    @property
    def audio_fade_out_start(self) -> float:
        """Music fade-out ends exactly where the video fade-out begins."""
        return self.fade_out_start - self.audio_fade_out_duration


@dataclass
class SlideshowGraph:
    """A built slideshow graph plus the labels to map."""

    graph: FilterGraph
    timeline: Timeline
    video_label: str = VIDEO_OUTPUT_LABEL
    audio_label: Optional[str] = None

    @property
    def filter_complex(self) -> str:
        return self.graph.render()

    @property
    def total_duration(self) -> float:
        return self.timeline.total_duration


def _clip_nodes(
    clip: Clip,
    transition_duration: float,
    effects: Optional[KenBurnsGenerator],
    font_size: int,
) -> list[FilterNode]:
    """Effect (or copy), first-clip fade-in, then the caption."""
    nodes: list[FilterNode] = []
    if effects is not None:
        nodes.append(ZoomPanNode(effects.generate(clip.duration)))
    if clip.index == 0:
        nodes.append(FadeNode("in", 0.0, transition_duration))
    elif effects is None:
        nodes.append(CopyNode())
    if clip.overlay_text:
        nodes.append(DrawTextNode(clip.overlay_text, font_size=font_size))
    return nodes


def build_slideshow_graph(
    clips: Sequence[Clip],
    clip_duration: float,
    transition_duration: float,
    effects: Optional[KenBurnsGenerator] = None,
    font_size: int = DEFAULT_OVERLAY_FONT_SIZE,
    audio_input: Optional[int] = None,
) -> SlideshowGraph:
    """Assemble the crossfade slideshow graph.

    Callers must pass at least two clips; a single clip has nothing to
    crossfade into.

    Args:
        clips: Clips in timeline order (clip.index is its input index)
        clip_duration: Seconds per image (D)
        transition_duration: Crossfade and fade length (F)
        effects: Ken Burns generator, or None for static images
        font_size: Caption font size for clips with overlay text
        audio_input: Input index of the music track, if any

    Returns:
        SlideshowGraph with the rendered graph and its timeline
    """
    timeline = Timeline(len(clips), clip_duration, transition_duration)
    graph = FilterGraph()

    for clip in clips:
        graph.add(
            [f"{clip.index}:v"],
            _clip_nodes(clip, transition_duration, effects, font_size),
            f"v{clip.index}",
        )

    last = f"v{clips[0].index}"
    for i in range(1, len(clips)):
        output = f"x{i}"
        graph.add(
            [last, f"v{clips[i].index}"],
            [CrossfadeNode(transition_duration, timeline.offset(i))],
            output,
        )
        last = output

    graph.add(
        [last],
        [FadeNode("out", timeline.fade_out_start, transition_duration)],
        "xf",
    )
    graph.add(["xf"], [TrimNode(timeline.total_duration)], VIDEO_OUTPUT_LABEL)

    audio_label = None
    if audio_input is not None:
        graph.add(
            [f"{audio_input}:a"],
            [
                FadeNode("in", 0.0, AUDIO_FADE_IN_SECONDS, audio=True),
                FadeNode(
                    "out",
                    timeline.audio_fade_out_start,
                    timeline.audio_fade_out_duration,
                    audio=True,
                ),
            ],
            AUDIO_OUTPUT_LABEL,
        )
        audio_label = AUDIO_OUTPUT_LABEL

    return SlideshowGraph(graph=graph, timeline=timeline, audio_label=audio_label)


def build_concat_graph(count: int, scale: float = 1.0, output: str = "out") -> FilterGraph:
    """Back-to-back concatenation of `count` still inputs (GIF/WebP)."""
    graph = FilterGraph()
    for i in range(count):
        nodes: list[FilterNode] = []
        if scale != 1.0:
            nodes.append(ScaleNode(scale))
        nodes.append(SetSarNode())
        graph.add([f"{i}:v"], nodes, f"v{i}")

    graph.add([f"v{i}" for i in range(count)], [ConcatNode(count)], output)
    return graph
