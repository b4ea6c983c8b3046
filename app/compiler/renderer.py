"""
AST diagram renderer.

Draws a compiled rule as a box-and-arrow PNG with Pillow: the trigger on
the left, one box per action on the right, an arrow from the trigger to
each action. A rule with no actions renders as the trigger box alone.

Rendering is pure with respect to the AST and does blocking CPU work; the
API calls it through a thread pool.
"""

import io
import logging
import math
from dataclasses import dataclass

from PIL import Image, ImageDraw, ImageFont

from app.compiler.nodes import FlagAction, PrescribeAction, RuleNode
from app.core.errors import RenderError

logger = logging.getLogger(__name__)

MARGIN = 24
PADDING = 10
H_GAP = 72
V_GAP = 18
LINE_SPACING = 4
MAX_LABEL_CHARS = 48
ARROW_HEAD = 8
MAX_DIAGRAM_ACTIONS = 64
MAX_CANVAS_PIXELS = 8_000_000

BACKGROUND = "white"
OUTLINE = "#333333"
TEXT = "#111111"
TRIGGER_FILL = "#dbe9ff"
PRESCRIBE_FILL = "#dcf5dc"
FLAG_FILL = "#ffe9c7"


@dataclass
class _Box:
    lines: list[str]
    fill: str
    width: int = 0
    height: int = 0
    x: int = 0
    y: int = 0

    @property
    def text(self) -> str:
        return "\n".join(self.lines)

    @property
    def left_mid(self) -> tuple[int, int]:
        return self.x, self.y + self.height // 2

    @property
    def right_mid(self) -> tuple[int, int]:
        return self.x + self.width, self.y + self.height // 2


def _label(text: object) -> str:
    """Shorten and make drawable with the bitmap default font."""
    value = str(text)
    if len(value) > MAX_LABEL_CHARS:
        value = value[: MAX_LABEL_CHARS - 3] + "..."
    return value.encode("latin-1", "replace").decode("latin-1")


def _format_quantity(value: int | float) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _trigger_box(rule: RuleNode) -> _Box:
    comparison = rule.trigger.comparison_text.value
    return _Box(
        lines=["CUANDO", _label(f'{rule.trigger.subject_keyword} es por "{comparison}"')],
        fill=TRIGGER_FILL,
    )


def _action_box(action: PrescribeAction | FlagAction) -> _Box:
    if isinstance(action, PrescribeAction):
        lines = ["DAR", _label(action.medication.raw_name)]
        if action.quantity is not None:
            lines.append(f"x {_format_quantity(action.quantity.value)}")
        if action.instructions is not None:
            lines.append(_label(action.instructions.value))
        if action.medication.resolved_id is not None:
            lines.append(f"#{action.medication.resolved_id}")
        return _Box(lines=lines, fill=PRESCRIBE_FILL)

    lines = ["MARCAR", _label(action.condition.raw_name)]
    if action.condition.resolved_id is not None:
        lines.append(f"#{action.condition.resolved_id}")
    return _Box(lines=lines, fill=FLAG_FILL)


def _measure(boxes: list[_Box], font: ImageFont.ImageFont) -> None:
    scratch = ImageDraw.Draw(Image.new("RGB", (1, 1)))
    for box in boxes:
        left, top, right, bottom = scratch.multiline_textbbox(
            (0, 0), box.text, font=font, spacing=LINE_SPACING
        )
        box.width = int(right - left) + 2 * PADDING
        box.height = int(bottom - top) + 2 * PADDING


def _layout(trigger: _Box, actions: list[_Box]) -> tuple[int, int]:
    """Position boxes in place and return the canvas size."""
    column_width = max((box.width for box in actions), default=0)
    column_height = sum(box.height for box in actions) + V_GAP * max(len(actions) - 1, 0)
    content_height = max(trigger.height, column_height)

    trigger.x = MARGIN
    trigger.y = MARGIN + (content_height - trigger.height) // 2

    y = MARGIN + (content_height - column_height) // 2
    for box in actions:
        box.x = trigger.x + trigger.width + H_GAP
        box.y = y
        y += box.height + V_GAP

    width = trigger.width + 2 * MARGIN
    if actions:
        width += H_GAP + column_width
    return width, content_height + 2 * MARGIN


def _draw_arrow(draw: ImageDraw.ImageDraw, start: tuple[int, int], end: tuple[int, int]) -> None:
    draw.line([start, end], fill=OUTLINE, width=2)
    angle = math.atan2(end[1] - start[1], end[0] - start[0])
    head = [
        end,
        (
            end[0] - ARROW_HEAD * math.cos(angle - math.pi / 6),
            end[1] - ARROW_HEAD * math.sin(angle - math.pi / 6),
        ),
        (
            end[0] - ARROW_HEAD * math.cos(angle + math.pi / 6),
            end[1] - ARROW_HEAD * math.sin(angle + math.pi / 6),
        ),
    ]
    draw.polygon(head, fill=OUTLINE)


def render_ast(rule: RuleNode) -> bytes:
    """
    Render a compiled rule as PNG bytes.

    Args:
        rule: Compiled rule (any syntactically valid RuleNode)

    Returns:
        PNG image bytes

    Raises:
        TypeError: If `rule` is not a RuleNode
        RenderError: If the diagram is too large or Pillow fails to produce it
    """
    if not isinstance(rule, RuleNode):
        raise TypeError(f"render_ast expects a RuleNode, got {type(rule).__name__}")

    if len(rule.actions) > MAX_DIAGRAM_ACTIONS:
        _record_render_metric("too_large")
        raise RenderError(
            "Rule has too many actions to draw",
            details={"actions": len(rule.actions), "max_actions": MAX_DIAGRAM_ACTIONS},
        )

    try:
        font = ImageFont.load_default()
        trigger = _trigger_box(rule)
        actions = [_action_box(action) for action in rule.actions]
        _measure([trigger, *actions], font)
        size = _layout(trigger, actions)
        if size[0] * size[1] > MAX_CANVAS_PIXELS:
            _record_render_metric("too_large")
            raise RenderError(
                "Rule diagram exceeds maximum canvas size",
                details={"width": size[0], "height": size[1], "max_pixels": MAX_CANVAS_PIXELS},
            )

        image = Image.new("RGB", size, BACKGROUND)
        draw = ImageDraw.Draw(image)
        for box in (trigger, *actions):
            draw.rectangle(
                [box.x, box.y, box.x + box.width, box.y + box.height],
                fill=box.fill,
                outline=OUTLINE,
                width=2,
            )
            draw.multiline_text(
                (box.x + PADDING, box.y + PADDING),
                box.text,
                fill=TEXT,
                font=font,
                spacing=LINE_SPACING,
            )
        for box in actions:
            _draw_arrow(draw, trigger.right_mid, box.left_mid)

        buffer = io.BytesIO()
        image.save(buffer, format="PNG")
    except (OSError, ValueError, MemoryError) as e:
        logger.warning("Failed to render rule diagram: %s", e)
        _record_render_metric("error")
        raise RenderError("Failed to render rule diagram", details={"error": str(e)}) from e

    _record_render_metric("success")
    logger.debug("Rendered rule diagram: %dx%d, %d actions", size[0], size[1], len(actions))
    return buffer.getvalue()


def _record_render_metric(status: str) -> None:
    try:
        from app.core.observability import metrics

        metrics.rule_renders_total.labels(status=status).inc()
    except Exception as e:
        logger.debug("Failed to record render metric: %s", e)
