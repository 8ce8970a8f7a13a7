"""Tests for filter graph construction and timeline arithmetic."""

from __future__ import annotations

import random
import re
from pathlib import Path

import pytest

from slideshow_tools.exceptions import FilterGraphError
from slideshow_tools.models import Clip
from slideshow_tools.processing.effects import KenBurnsGenerator
from slideshow_tools.processing.graph import (
    ConcatNode,
    CopyNode,
    CrossfadeNode,
    DrawTextNode,
    FadeNode,
    FilterGraph,
    ScaleNode,
    SetSarNode,
    Timeline,
    TrimNode,
    build_concat_graph,
    build_slideshow_graph,
    is_stream_specifier,
)


def _clips(count: int, duration: float = 5.0, overlay: str = "") -> list[Clip]:
    return [
        Clip(path=Path(f"converted/{i:03d}.jpg"), index=i, duration=duration, overlay_text=overlay)
        for i in range(count)
    ]


# =============================================================================
# Timeline
# =============================================================================


class TestTimeline:
    def test_three_clips_five_seconds_one_second_fade(self):
        timeline = Timeline(3, 5.0, 1.0)
        assert timeline.offsets == [4.0, 8.0]
        assert timeline.total_duration == 13.0
        assert timeline.fade_out_start == 12.0
        assert timeline.audio_fade_out_start == 8.0

    @pytest.mark.parametrize("count", [2, 3, 7, 40])
    def test_offsets_strictly_increase(self, count):
        offsets = Timeline(count, 4.5, 0.75).offsets
        assert len(offsets) == count - 1
        assert all(b > a for a, b in zip(offsets, offsets[1:]))

    def test_total_duration_matches_last_offset_plus_clip(self):
        timeline = Timeline(5, 3.0, 0.5)
        assert timeline.total_duration == pytest.approx(timeline.offsets[-1] + 3.0)

    def test_audio_fade_out_shortened_on_short_timeline(self):
        timeline = Timeline(2, 2.0, 0.5)
        # total 3.5, video fade-out at 3.0: no room for a full 4s fade
        assert timeline.audio_fade_out_start == 0.0
        assert timeline.audio_fade_out_duration == 3.0
        assert (
            timeline.audio_fade_out_start + timeline.audio_fade_out_duration
            == timeline.fade_out_start
        )

    def test_audio_fade_out_full_length(self):
        timeline = Timeline(3, 5.0, 1.0)
        assert timeline.audio_fade_out_duration == 4.0

    def test_offsets_computed_without_accumulated_drift(self):
        timeline = Timeline(1001, 0.3, 0.1)
        assert timeline.offset(1000) == pytest.approx(1000 * 0.2)


# =============================================================================
# Nodes
# =============================================================================


class TestNodes:
    def test_fade_renders_whole_seconds_without_fraction(self):
        assert FadeNode("out", 12.0, 1.0).render() == "fade=t=out:st=12:d=1"

    def test_audio_fade(self):
        assert FadeNode("in", 0.0, 2.0, audio=True).render() == "afade=t=in:st=0:d=2"

    def test_fractional_times_kept(self):
        assert CrossfadeNode(0.5, 4.5).render() == "xfade=transition=fade:duration=0.5:offset=4.5"

    def test_trim(self):
        assert TrimNode(13.0).render() == "trim=duration=13,setpts=PTS-STARTPTS"

    def test_drawtext_style_and_escaping(self):
        rendered = DrawTextNode("f/2.8 | 1:30", font_size=48).render()
        assert rendered.startswith("drawtext=text='f/2.8 | 1\\:30'")
        assert ":fontsize=48:fontcolor=white" in rendered
        assert ":x=(w-tw)/2:y=h-th-20" in rendered
        assert rendered.endswith(":box=1:boxcolor=black@0.5:boxborderw=5")

    def test_scale_and_concat(self):
        assert ScaleNode(0.5).render() == "scale=iw*0.50:ih*0.50"
        assert SetSarNode().render() == "setsar=1"
        assert ConcatNode(3).render() == "concat=n=3:v=1:a=0"

    def test_stream_specifiers(self):
        assert is_stream_specifier("0:v")
        assert is_stream_specifier("12:a")
        assert not is_stream_specifier("v0")
        assert not is_stream_specifier("xfout")


# =============================================================================
# FilterGraph label bookkeeping
# =============================================================================


class TestFilterGraph:
    def test_chain_render(self):
        graph = FilterGraph()
        graph.add(["0:v"], [CopyNode()], "v0")
        assert graph.render() == "[0:v]copy[v0]"

    def test_rejects_label_produced_twice(self):
        graph = FilterGraph()
        graph.add(["0:v"], [CopyNode()], "v0")
        with pytest.raises(FilterGraphError, match=r"produced twice: \[v0\]"):
            graph.add(["1:v"], [CopyNode()], "v0")

    def test_rejects_forward_reference(self):
        graph = FilterGraph()
        with pytest.raises(FilterGraphError, match="before it is produced"):
            graph.add(["v1"], [CopyNode()], "x")

    def test_rejects_second_consumer(self):
        graph = FilterGraph()
        graph.add(["0:v"], [CopyNode()], "v0")
        graph.add(["v0"], [CopyNode()], "a")
        with pytest.raises(FilterGraphError, match="consumed twice"):
            graph.add(["v0"], [CopyNode()], "b")

    def test_rejects_same_label_twice_in_one_chain(self):
        graph = FilterGraph()
        graph.add(["0:v"], [CopyNode()], "v0")
        with pytest.raises(FilterGraphError, match="consumed twice"):
            graph.add(["v0", "v0"], [CrossfadeNode(1, 4)], "x1")

    def test_rejects_stream_specifier_as_output(self):
        with pytest.raises(FilterGraphError):
            FilterGraph().add(["0:v"], [CopyNode()], "1:v")

    def test_rejects_empty_chain(self):
        with pytest.raises(FilterGraphError, match="no filters"):
            FilterGraph().add(["0:v"], [], "v0")

    def test_outputs_are_unconsumed_labels(self):
        graph = FilterGraph()
        graph.add(["0:v"], [CopyNode()], "v0")
        graph.add(["v0"], [TrimNode(2)], "out")
        graph.add(["1:a"], [FadeNode("in", 0, 2, audio=True)], "aout")
        assert graph.outputs == ["out", "aout"]


# =============================================================================
# Slideshow graph
# =============================================================================


class TestSlideshowGraph:
    def test_static_three_clips_exact(self):
        built = build_slideshow_graph(_clips(3), 5.0, 1.0)
        assert built.filter_complex == (
            "[0:v]fade=t=in:st=0:d=1[v0];"
            "[1:v]copy[v1];"
            "[2:v]copy[v2];"
            "[v0][v1]xfade=transition=fade:duration=1:offset=4[x1];"
            "[x1][v2]xfade=transition=fade:duration=1:offset=8[x2];"
            "[x2]fade=t=out:st=12:d=1[xf];"
            "[xf]trim=duration=13,setpts=PTS-STARTPTS[xfout]"
        )
        assert built.total_duration == 13.0
        assert built.video_label == "xfout"
        assert built.audio_label is None

    def test_audio_chain(self):
        built = build_slideshow_graph(_clips(3), 5.0, 1.0, audio_input=3)
        chains = built.filter_complex.split(";")
        assert chains[-1] == "[3:a]afade=t=in:st=0:d=2,afade=t=out:st=8:d=4[musicout]"
        assert built.audio_label == "musicout"

    def test_nothing_scheduled_past_fade_out(self):
        built = build_slideshow_graph(_clips(3), 5.0, 1.0, audio_input=3)
        audio = built.filter_complex.split(";")[-1]
        start = float(re.search(r"afade=t=out:st=([\d.]+)", audio).group(1))
        assert start + 4 <= built.timeline.fade_out_start

    def test_short_timeline_audio_ends_at_fade_out(self):
        built = build_slideshow_graph(_clips(2, duration=2.0), 2.0, 0.5, audio_input=2)
        audio = built.filter_complex.split(";")[-1]
        assert audio == "[2:a]afade=t=in:st=0:d=2,afade=t=out:st=0:d=3[musicout]"
        match = re.search(r"afade=t=out:st=([\d.]+):d=([\d.]+)", audio)
        end = float(match.group(1)) + float(match.group(2))
        assert end <= built.timeline.fade_out_start

    def test_every_label_produced_once_and_consumed_once(self):
        built = build_slideshow_graph(_clips(6), 4.0, 0.5, audio_input=6)
        rendered = built.filter_complex
        produced = re.findall(r"\[([a-z]\w*)\](?:;|$)", rendered)
        assert len(produced) == len(set(produced))
        assert built.graph.outputs == ["xfout", "musicout"]

    def test_first_clip_fades_in_after_effect(self):
        gen = KenBurnsGenerator(rng=random.Random(1))
        built = build_slideshow_graph(_clips(2), 5.0, 1.0, effects=gen)
        first, second = built.filter_complex.split(";")[:2]
        assert first.startswith("[0:v]zoompan=")
        assert ",fade=t=in:st=0:d=1[v0]" in first
        assert second.startswith("[1:v]zoompan=")
        assert "copy" not in built.filter_complex

    def test_overlay_added_last_in_clip_chain(self):
        built = build_slideshow_graph(_clips(2, overlay="ISO 100"), 5.0, 1.0, font_size=40)
        first = built.filter_complex.split(";")[0]
        assert first.startswith("[0:v]fade=t=in:st=0:d=1,drawtext=text='ISO 100'")
        assert ":fontsize=40:" in first

    def test_two_clips_minimum(self):
        built = build_slideshow_graph(_clips(2), 5.0, 1.0)
        assert "[v0][v1]xfade=transition=fade:duration=1:offset=4[x1]" in built.filter_complex
        assert "[x1]fade=t=out:st=8:d=1[xf]" in built.filter_complex


class TestConcatGraph:
    def test_unscaled(self):
        assert build_concat_graph(2).render() == (
            "[0:v]setsar=1[v0];[1:v]setsar=1[v1];[v0][v1]concat=n=2:v=1:a=0[out]"
        )

    def test_scaled(self):
        rendered = build_concat_graph(2, scale=0.5).render()
        assert rendered.startswith("[0:v]scale=iw*0.50:ih*0.50,setsar=1[v0];")
        assert build_concat_graph(2, scale=0.5).outputs == ["out"]
