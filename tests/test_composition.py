"""Tests for the composition plan, scroll function and filter graph."""

from __future__ import annotations

import pytest

from letterreel.composition import (
    Expr,
    FilterNode,
    build_filter_graph,
    build_plan,
    format_number,
)
from letterreel.layout import BlockKind, LayoutConfig, layout_letter

from .conftest import char_width

MEASURERS = {kind: char_width for kind in BlockKind}


def body_size(title: str, content: str, author: str = "") -> tuple[int, int]:
    config = LayoutConfig()
    letter = layout_letter(title, content, author, MEASURERS, config)
    return config.letter_width, letter.height


def test_scroll_endpoints_are_exact() -> None:
    """Offset is 0 at t=0 and exactly -scroll_distance at t=duration."""
    plan = build_plan((1280, 200), (800, 1000), 7.3)

    assert plan.scroll_distance == 200 + 1000 - 720
    assert plan.scroll_offset(0) == 0
    assert plan.scroll_offset(7.3) == -plan.scroll_distance


def test_scroll_is_monotonic_non_increasing() -> None:
    """The letter never scrolls backwards."""
    plan = build_plan((1280, 1), (800, 3000), 12.0)
    samples = [plan.scroll_offset(i * 0.1) for i in range(0, 131)]

    assert all(b <= a for a, b in zip(samples, samples[1:]))
    assert samples[-1] == -plan.scroll_distance


def test_scroll_is_linear() -> None:
    """Halfway to the last frame the letter is halfway scrolled."""
    plan = build_plan((1280, 1), (800, 1119), 10.0)

    assert plan.scroll_distance == 400
    assert plan.last_frame == 299
    assert plan.scroll_offset(299 / 60) == pytest.approx(-200)


def test_last_encoded_frame_shows_the_bottom() -> None:
    """The final frame at t = D - 1/fps is already fully scrolled."""
    plan = build_plan((1280, 1), (800, 1036), 3.0)

    assert plan.scroll_distance == 317
    assert plan.frame_count == 90
    assert plan.scroll_offset(89 / 30) == -317
    assert plan.scroll_offset(88 / 30) > -317
    assert plan.scroll_expression() == Expr("-min(t*30,89)/89*317")


def test_frame_count_covers_fractional_durations() -> None:
    plan = build_plan((1280, 1), (800, 1000), 2.51, fps=30)

    # frames at 0 .. 75/30 s all start before 2.51 s
    assert plan.frame_count == 76
    assert plan.last_frame == 75


def test_content_that_fits_does_not_scroll() -> None:
    """When content fits the viewport the frame is static."""
    plan = build_plan((1280, 100), (800, 620), 5.0)

    assert plan.scroll_distance == 0
    assert not plan.scrolls
    assert {plan.scroll_offset(t) for t in (0, 1.0, 2.5, 5.0)} == {0}
    assert plan.scroll_expression() == Expr("0")


def test_header_height_is_normalised_to_video_width() -> None:
    """A narrower header is scaled up before its height is counted."""
    plan = build_plan((640, 101), (800, 400), 3.0)

    # 1280 * 101 / 640 = 202
    assert plan.header_height == 202
    assert plan.total_content_height == 602


def test_header_scaling_rounds_half_up() -> None:
    """Aspect-derived heights round halves upwards."""
    plan = build_plan((512, 3), (800, 10), 1.0)

    # 1280 * 3 / 512 = 7.5
    assert plan.header_height == 8


def test_placeholder_header_keeps_width_math_valid() -> None:
    """A 1px placeholder adds one row and no scaling."""
    plan = build_plan((1280, 1), (800, 500), 2.0)

    assert plan.header_height == 1
    assert plan.total_content_height == 501


def test_scenario_long_letter_scrolls() -> None:
    """A long letter over 10s of audio scrolls."""
    plan = build_plan((1280, 1), body_size("Hi", "word " * 200), 10.0)

    assert plan.scroll_distance > 0
    assert plan.duration_seconds == 10.0


def test_scenario_short_letter_is_static() -> None:
    """A short letter over 5s of audio stays still."""
    plan = build_plan((1280, 1), body_size("Hi", "A short note."), 5.0)

    assert plan.scroll_distance == 0


def test_invalid_plans_are_rejected() -> None:
    """Zero duration and over-wide bodies are programming errors."""
    with pytest.raises(ValueError):
        build_plan((1280, 1), (800, 10), 0)
    with pytest.raises(ValueError):
        build_plan((1280, 1), (1400, 10), 1.0)


def test_filter_graph_structure() -> None:
    """Header is scaled, body padded, both stacked and overlaid on the background."""
    plan = build_plan((1280, 300), (800, 900), 10.0)
    graph = build_filter_graph(plan)

    assert [node.name for node in graph.nodes] == ["scale", "pad", "vstack", "color", "overlay"]
    assert graph.node("scale").inputs == ("0:v",)
    assert graph.node("scale").param("w") == 1280
    assert graph.node("pad").inputs == ("1:v",)
    assert graph.node("pad").param("width") == 1280
    assert graph.node("vstack").inputs == ("header", "body")
    assert graph.node("color").param("s") == "1280x720"
    assert graph.node("color").param("d") == 10.0
    overlay = graph.node("overlay")
    assert overlay.inputs == ("bg", "letter")
    assert overlay.outputs == (graph.output_label,)
    assert overlay.param("y") == Expr("-min(t*30,299)/299*480")


def test_filter_graph_render() -> None:
    """The textual graph is generated mechanically from the nodes."""
    plan = build_plan((1280, 1), (800, 1000), 12.5)
    rendered = build_filter_graph(plan).render()

    assert rendered == (
        "[0:v]scale=w=1280:h=-1[header];"
        "[1:v]pad=width=1280:height=ih:x='(ow-iw)/2':y=0:color=white[body];"
        "[header][body]vstack=inputs=2[letter];"
        "color=c=white:s=1280x720:r=30:d=12.5[bg];"
        "[bg][letter]overlay=x='(W-w)/2':y='-min(t*30,374)/374*281':eval=frame:shortest=1[out]"
    )


def test_filter_node_without_params() -> None:
    """Parameterless filters render as their bare name."""
    assert FilterNode("null", inputs=("a",), outputs=("b",)).render() == "[a]null[b]"


def test_format_number() -> None:
    """Numbers keep full precision without trailing .0 noise."""
    assert format_number(10.0) == "10"
    assert format_number(3) == "3"
    assert format_number(12.345678901) == "12.345678901"
    assert format_number(0.00001) == "0.00001"
    assert format_number(2.5e-7) == "0.00000025"
    with pytest.raises(TypeError):
        format_number(True)
