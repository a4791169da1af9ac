"""Frame compositor: composition plan, scroll function and ffmpeg filter graph.

The filter graph is modelled as named nodes with typed parameters and only
turned into ffmpeg's textual syntax at the very end, so the plan and the
scroll expression can be checked without parsing filter strings.
"""

import math
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional, Union

from .layout import round_half_up

HEADER_LABEL = "header"
BODY_LABEL = "body"
LETTER_LABEL = "letter"
BACKGROUND_LABEL = "bg"
OUTPUT_LABEL = "out"


@dataclass(frozen=True)
class Expr:
    """An ffmpeg expression evaluated per frame."""

    text: str

    def render(self) -> str:
        # Quoting protects commas inside function calls like min(t,D)
        return f"'{self.text}'"


ParamValue = Union[int, float, str, Expr]


def format_number(value: Union[int, float]) -> str:
    """Render a number in positional notation without losing precision."""
    if isinstance(value, bool):
        raise TypeError("boolean is not a filter number")
    if isinstance(value, int) or float(value).is_integer():
        return str(int(value))
    text = repr(float(value))
    if "e" in text:
        text = format(Decimal(text), "f")
    return text


def _render_value(value: ParamValue) -> str:
    if isinstance(value, Expr):
        return value.render()
    if isinstance(value, (int, float)):
        return format_number(value)
    return value


@dataclass(frozen=True)
class FilterNode:
    """One filter with its input/output pads and ordered parameters."""

    name: str
    params: tuple[tuple[str, ParamValue], ...] = ()
    inputs: tuple[str, ...] = ()
    outputs: tuple[str, ...] = ()

    def param(self, key: str) -> ParamValue:
        for name, value in self.params:
            if name == key:
                return value
        raise KeyError(key)

    def render(self) -> str:
        pads_in = "".join(f"[{label}]" for label in self.inputs)
        pads_out = "".join(f"[{label}]" for label in self.outputs)
        args = ":".join(f"{key}={_render_value(value)}" for key, value in self.params)
        body = f"{self.name}={args}" if args else self.name
        return f"{pads_in}{body}{pads_out}"


@dataclass(frozen=True)
class FilterGraph:
    """Ordered filter chains ending in a named video output."""

    nodes: tuple[FilterNode, ...]
    output_label: str = OUTPUT_LABEL

    def node(self, name: str) -> FilterNode:
        for node in self.nodes:
            if node.name == name:
                return node
        raise KeyError(name)

    def render(self) -> str:
        return ";".join(node.render() for node in self.nodes)


@dataclass(frozen=True)
class CompositionPlan:
    """Geometry and timing of the scrolling letter video."""

    video_width: int
    video_height: int
    header_height: int
    body_width: int
    body_height: int
    duration_seconds: float
    fps: int = 30
    background_color: str = "white"
    total_content_height: int = field(init=False)
    scroll_distance: int = field(init=False)

    def __post_init__(self) -> None:
        if self.video_width <= 0 or self.video_height <= 0:
            raise ValueError("video dimensions must be positive")
        if not self.duration_seconds > 0:
            raise ValueError("duration_seconds must be positive")
        if self.body_width > self.video_width:
            raise ValueError("body is wider than the video")
        total = self.header_height + self.body_height
        object.__setattr__(self, "total_content_height", total)
        object.__setattr__(self, "scroll_distance", max(0, total - self.video_height))

    @property
    def scrolls(self) -> bool:
        return self.scroll_distance > 0

    @property
    def frame_count(self) -> int:
        """Frames the encoder emits: every frame whose timestamp is before the duration."""
        return max(1, math.ceil(round(self.duration_seconds * self.fps, 6)))

    @property
    def last_frame(self) -> int:
        """Index of the frame that must show the bottom of the letter."""
        return self.frame_count - 1

    def scroll_offset(self, t: float) -> float:
        """Vertical offset of the letter at time ``t``.

        Linear from 0 at t=0 to -scroll_distance at the last encoded frame,
        held there until t=duration.
        """
        if not self.scrolls or t <= 0:
            return 0.0
        frames = round(t * self.fps, 6)
        if self.last_frame == 0 or frames >= self.last_frame or t >= self.duration_seconds:
            return float(-self.scroll_distance)
        return -(frames / self.last_frame) * self.scroll_distance

    def scroll_expression(self) -> Expr:
        """The scroll function in ffmpeg's expression language."""
        if not self.scrolls:
            return Expr("0")
        if self.last_frame == 0:
            return Expr(f"-{self.scroll_distance}")
        last = self.last_frame
        return Expr(f"-min(t*{self.fps},{last})/{last}*{self.scroll_distance}")


def build_plan(
    header_size: tuple[int, int],
    body_size: tuple[int, int],
    duration_seconds: float,
    video_width: int = 1280,
    video_height: int = 720,
    fps: int = 30,
    background_color: str = "white",
) -> CompositionPlan:
    """
    Compute the composition for a header and body raster.

    The header is normalised to the video width before stacking, so its
    height is taken after aspect-preserving scaling.

    Args:
        header_size: (width, height) of the header raster
        body_size: (width, height) of the body raster
        duration_seconds: Probed audio duration

    Returns:
        CompositionPlan for the encoder
    """
    header_width, header_height = header_size
    if header_width <= 0 or header_height <= 0:
        raise ValueError("header raster is empty")
    scaled_header_height = max(1, round_half_up(video_width * header_height / header_width))
    body_width, body_height = body_size
    return CompositionPlan(
        video_width=video_width,
        video_height=video_height,
        header_height=scaled_header_height,
        body_width=body_width,
        body_height=body_height,
        duration_seconds=duration_seconds,
        fps=fps,
        background_color=background_color,
    )


def build_filter_graph(
    plan: CompositionPlan,
    header_input: int = 0,
    body_input: int = 1,
    output_label: Optional[str] = None,
) -> FilterGraph:
    """Describe the stack-and-scroll composition as ffmpeg filter nodes."""
    output_label = output_label or OUTPUT_LABEL
    nodes = (
        FilterNode(
            "scale",
            params=(("w", plan.video_width), ("h", -1)),
            inputs=(f"{header_input}:v",),
            outputs=(HEADER_LABEL,),
        ),
        FilterNode(
            "pad",
            params=(
                ("width", plan.video_width),
                ("height", "ih"),
                ("x", Expr("(ow-iw)/2")),
                ("y", 0),
                ("color", plan.background_color),
            ),
            inputs=(f"{body_input}:v",),
            outputs=(BODY_LABEL,),
        ),
        FilterNode(
            "vstack",
            params=(("inputs", 2),),
            inputs=(HEADER_LABEL, BODY_LABEL),
            outputs=(LETTER_LABEL,),
        ),
        FilterNode(
            "color",
            params=(
                ("c", plan.background_color),
                ("s", f"{plan.video_width}x{plan.video_height}"),
                ("r", plan.fps),
                ("d", plan.duration_seconds),
            ),
            outputs=(BACKGROUND_LABEL,),
        ),
        FilterNode(
            "overlay",
            params=(
                ("x", Expr("(W-w)/2")),
                ("y", plan.scroll_expression()),
                ("eval", "frame"),
                ("shortest", 1),
            ),
            inputs=(BACKGROUND_LABEL, LETTER_LABEL),
            outputs=(output_label,),
        ),
    )
    return FilterGraph(nodes=nodes, output_label=output_label)
