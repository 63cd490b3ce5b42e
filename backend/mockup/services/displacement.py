from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np

from mockup.domain.models import PixelBuffer
from mockup.services.mask_analyzer import qualifying_mask

NEUTRAL = 128
# Deviations from the mask-area average are halved to keep offsets subtle.
DISPLACEMENT_COMPRESSION = 0.5

MODE_PROVIDED = "provided"
MODE_AUTO = "auto"


@dataclass(frozen=True)
class DisplacementResult:
    buffer: PixelBuffer
    mode: str  # provided|auto
    mask_average: float


def round_half_up(x: np.ndarray) -> np.ndarray:
    return np.floor(x + 0.5)


def luma(rgba: np.ndarray) -> np.ndarray:
    """0.299R + 0.587G + 0.114B as float64, HxW."""
    rgb = rgba[..., :3].astype(np.float64)
    return rgb[..., 0] * 0.299 + rgb[..., 1] * 0.587 + rgb[..., 2] * 0.114


def normalize_displacement(
    source: PixelBuffer,
    mask: PixelBuffer,
    *,
    compression: float = DISPLACEMENT_COMPRESSION,
) -> tuple[PixelBuffer, float]:
    """Re-center `source` luma on 128 over the printable area and compress it.

    Every pixel becomes clamp(round(128 + (luma - avg) * compression)) in R, G
    and B. Alpha is left as it was. Returns (buffer, avg).
    """
    if source.size != mask.size:
        raise ValueError(f"displacement source {source.size} and mask {mask.size} differ in size")

    lum = luma(source.data)
    inside = qualifying_mask(mask)
    avg = float(lum[inside].mean()) if inside.any() else float(NEUTRAL)

    val = NEUTRAL + (lum - avg) * float(compression)
    gray = np.clip(round_half_up(val), 0, 255).astype(np.uint8)

    out = np.array(source.data, dtype=np.uint8)
    out[..., 0] = gray
    out[..., 1] = gray
    out[..., 2] = gray
    return PixelBuffer(out), avg


def build_displacement(
    base: PixelBuffer,
    mask: PixelBuffer,
    displacement: Optional[PixelBuffer] = None,
) -> DisplacementResult:
    """Normalize a supplied map, or derive one from the base photo's luma.

    Both paths run the same normalization; auto-generation is not a softer variant.
    """
    if displacement is not None:
        buf, avg = normalize_displacement(displacement, mask)
        return DisplacementResult(buffer=buf, mode=MODE_PROVIDED, mask_average=avg)

    buf, avg = normalize_displacement(base, mask)
    return DisplacementResult(buffer=buf, mode=MODE_AUTO, mask_average=avg)
