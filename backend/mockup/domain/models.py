from __future__ import annotations

import io
from dataclasses import dataclass, field, replace
from typing import Optional

import numpy as np
from PIL import Image


@dataclass(frozen=True)
class PixelBuffer:
    """Row-major RGBA8 pixels, shape (height, width, 4). Read-only once built."""

    data: np.ndarray

    def __post_init__(self):
        arr = np.asarray(self.data)
        if arr.ndim != 3 or arr.shape[2] != 4:
            raise ValueError(f"PixelBuffer expects (h, w, 4) samples, got shape {arr.shape}")
        if arr.dtype != np.uint8:
            arr = np.clip(arr, 0, 255).astype(np.uint8)
        if arr.flags.writeable:
            arr = arr.copy()
            arr.flags.writeable = False
        object.__setattr__(self, "data", arr)

    @property
    def width(self) -> int:
        return int(self.data.shape[1])

    @property
    def height(self) -> int:
        return int(self.data.shape[0])

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height

    @classmethod
    def from_image(cls, img: Image.Image, size: Optional[tuple[int, int]] = None) -> "PixelBuffer":
        rgba = img.convert("RGBA")
        if size is not None and rgba.size != size:
            # Secondary assets are stretched to the base photo's dimensions.
            rgba = rgba.resize(size, Image.Resampling.BILINEAR)
        return cls(np.array(rgba, dtype=np.uint8))

    @classmethod
    def blank(cls, width: int, height: int) -> "PixelBuffer":
        return cls(np.zeros((height, width, 4), dtype=np.uint8))

    def to_image(self) -> Image.Image:
        return Image.fromarray(np.ascontiguousarray(self.data), mode="RGBA")

    def to_png_bytes(self) -> bytes:
        buf = io.BytesIO()
        self.to_image().save(buf, format="PNG")
        return buf.getvalue()


@dataclass(frozen=True)
class MaskBounds:
    """Inclusive bounding box of the printable area."""

    left: int
    top: int
    right: int
    bottom: int

    @classmethod
    def empty(cls, width: int, height: int) -> "MaskBounds":
        return cls(left=width, top=height, right=0, bottom=0)

    @property
    def is_empty(self) -> bool:
        return self.left > self.right or self.top > self.bottom

    @property
    def width(self) -> int:
        return 0 if self.is_empty else self.right - self.left + 1

    @property
    def height(self) -> int:
        return 0 if self.is_empty else self.bottom - self.top + 1

    def as_dict(self) -> dict:
        return {"left": self.left, "top": self.top, "right": self.right, "bottom": self.bottom}


def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, float(value)))


@dataclass(frozen=True)
class RenderParameters:
    scale: float = 60.0  # % of the fit-to-mask baseline, 0..200
    offset_x: float = 50.0  # % of horizontal slack, 0..100
    offset_y: float = 50.0
    displacement_intensity: float = 30.0  # 0..100

    def __post_init__(self):
        object.__setattr__(self, "scale", _clamp(self.scale, 0.0, 200.0))
        object.__setattr__(self, "offset_x", _clamp(self.offset_x, 0.0, 100.0))
        object.__setattr__(self, "offset_y", _clamp(self.offset_y, 0.0, 100.0))
        object.__setattr__(self, "displacement_intensity", _clamp(self.displacement_intensity, 0.0, 100.0))

    @classmethod
    def defaults(cls, settings=None) -> "RenderParameters":
        if settings is None:
            return cls()
        return cls(
            scale=settings.default_scale,
            offset_x=settings.default_offset_x,
            offset_y=settings.default_offset_y,
            displacement_intensity=settings.default_intensity,
        )

    def update(self, **patch) -> "RenderParameters":
        patch = {k: v for k, v in patch.items() if v is not None}
        return replace(self, **patch)

    def as_dict(self) -> dict:
        return {
            "scale": self.scale,
            "offset_x": self.offset_x,
            "offset_y": self.offset_y,
            "displacement_intensity": self.displacement_intensity,
        }


@dataclass(frozen=True)
class RenderContext:
    """Everything one render call needs. Nothing is shared between calls."""

    base: PixelBuffer
    mask: PixelBuffer
    displacement: PixelBuffer
    bounds: MaskBounds
    params: RenderParameters = field(default_factory=RenderParameters)
    design: Optional[PixelBuffer] = None
    shadow: Optional[PixelBuffer] = None

    @property
    def size(self) -> tuple[int, int]:
        return self.base.size

    @property
    def ready(self) -> bool:
        return self.design is not None

    def with_parameters(self, params: RenderParameters) -> "RenderContext":
        return replace(self, params=params)

    def with_design(self, design: Optional[PixelBuffer]) -> "RenderContext":
        return replace(self, design=design)
