from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np
from PIL import Image

from mockup.domain.models import MaskBounds, PixelBuffer, RenderParameters


@dataclass(frozen=True)
class Placement:
    """Design rectangle in base-image pixels (float, like a canvas draw call)."""

    x: float
    y: float
    width: float
    height: float

    def rounded(self) -> tuple[int, int, int, int]:
        return (
            int(np.floor(self.x + 0.5)),
            int(np.floor(self.y + 0.5)),
            int(np.floor(self.width + 0.5)),
            int(np.floor(self.height + 0.5)),
        )


def compute_placement(
    bounds: MaskBounds,
    design_size: tuple[int, int],
    params: RenderParameters,
) -> Optional[Placement]:
    """Fit the design into the mask box, apply user scale and anchor it in the slack.

    offset 0 pins the design to the left/top edge of the box, 100 to the
    right/bottom edge, 50 centers it. Returns None when the mask box is empty
    or the design has no pixels.
    """
    dw, dh = design_size
    if bounds.is_empty or dw <= 0 or dh <= 0:
        return None

    area_w = bounds.width
    area_h = bounds.height
    base_fit = min(area_w / dw, area_h / dh)
    user_scale = params.scale / 100.0
    final_w = dw * base_fit * user_scale
    final_h = dh * base_fit * user_scale

    x = bounds.left + (area_w - final_w) * (params.offset_x / 100.0)
    y = bounds.top + (area_h - final_h) * (params.offset_y / 100.0)
    return Placement(x=x, y=y, width=final_w, height=final_h)


def rasterize_design(
    design: PixelBuffer,
    placement: Optional[Placement],
    canvas_size: tuple[int, int],
) -> np.ndarray:
    """Draw the design onto a transparent canvas of `canvas_size`; returns HxWx4 uint8.

    Pixels outside the placement rectangle stay (0, 0, 0, 0). Parts of the
    rectangle that fall off the canvas are clipped.
    """
    cw, ch = canvas_size
    canvas = Image.new("RGBA", (cw, ch), (0, 0, 0, 0))
    if placement is None:
        return np.array(canvas, dtype=np.uint8)

    x, y, w, h = placement.rounded()
    if w < 1 or h < 1:
        return np.array(canvas, dtype=np.uint8)

    img = design.to_image()
    if img.size != (w, h):
        # RGBA resize is premultiplied internally, so transparent fringes don't bleed.
        img = img.resize((w, h), Image.Resampling.BILINEAR)

    # Canvas is fully transparent, so a plain paste equals source-over.
    canvas.paste(img, (x, y))
    return np.array(canvas, dtype=np.uint8)
