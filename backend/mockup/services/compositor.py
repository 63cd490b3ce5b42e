from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

import numpy as np

from mockup.core.logger import TaskLogger
from mockup.domain.models import PixelBuffer, RenderContext
from mockup.services.displacement import round_half_up
from mockup.services.mask_analyzer import mask_alpha
from mockup.services.placement import compute_placement, rasterize_design

# Largest single-axis offset in pixels per percent of displacement intensity.
DISPLACEMENT_PX_PER_PERCENT = 0.5
# Pixels whose mask coverage or design alpha fall below this keep the base color.
ALPHA_EPSILON = 0.01

DEFAULT_SHADOW_OPACITY = 0.25
DEFAULT_SHADOW_BLEND = "multiply"


def max_displacement(intensity: float, k: float = DISPLACEMENT_PX_PER_PERCENT) -> float:
    return float(intensity) * float(k)


def _offsets(channel: np.ndarray, max_disp: float) -> np.ndarray:
    # 128 -> 0, 0 -> -max_disp, 255 -> +max_disp
    v = channel.astype(np.float64)
    return round_half_up((v / 255.0 - 0.5) * max_disp * 2.0).astype(np.int64)


def sample_coordinates(
    displacement: np.ndarray,
    max_disp: float,
    *,
    row_start: int = 0,
    height: Optional[int] = None,
) -> tuple[np.ndarray, np.ndarray]:
    """Edge-clamped design sampling coordinates for a block of displacement rows.

    displacement: rows x W x 4 slice of the displacement buffer starting at
    `row_start`; `height` is the full image height used for clamping.
    Returns (sx, sy), each rows x W int arrays.
    """
    rows, w = displacement.shape[0], displacement.shape[1]
    h = rows if height is None else int(height)
    dx = _offsets(displacement[..., 0], max_disp)
    dy = _offsets(displacement[..., 1], max_disp)

    xs = np.arange(w, dtype=np.int64)[None, :]
    ys = np.arange(row_start, row_start + rows, dtype=np.int64)[:, None]
    sx = np.clip(xs + dx, 0, w - 1)
    sy = np.clip(ys + dy, 0, h - 1)
    return sx, sy


def opaque_base(base: np.ndarray) -> np.ndarray:
    """Copy of the base with zero alpha promoted to 255."""
    out = np.array(base, dtype=np.uint8)
    a = out[..., 3]
    a[a == 0] = 255
    return out


def compose_rows(
    *,
    base: np.ndarray,
    coverage: np.ndarray,
    displacement: np.ndarray,
    design: np.ndarray,
    max_disp: float,
    out: np.ndarray,
    y0: int,
    y1: int,
) -> None:
    """Displace-then-multiply rows [y0, y1) of `out` in place.

    `out` must already hold the opaque base. Only rows of `out` in the band are
    written; every other array is read-only here.
    """
    h = base.shape[0]
    ma = coverage[y0:y1]
    sx, sy = sample_coordinates(displacement[y0:y1], max_disp, row_start=y0, height=h)

    sampled = design[sy, sx]
    da = sampled[..., 3].astype(np.float64) / 255.0
    active = (ma >= ALPHA_EPSILON) & (da >= ALPHA_EPSILON)
    if not active.any():
        return

    b = base[y0:y1, :, :3].astype(np.float64)
    d = sampled[..., :3].astype(np.float64)
    blend_alpha = (da * ma)[..., None]

    mixed = b * d / 255.0
    blended = round_half_up(b + (mixed - b) * blend_alpha)
    blended = np.clip(blended, 0, 255).astype(np.uint8)

    band = out[y0:y1]
    band[..., :3] = np.where(active[..., None], blended, band[..., :3])


def apply_shadow(
    image: np.ndarray,
    shadow: np.ndarray,
    *,
    opacity: float = DEFAULT_SHADOW_OPACITY,
    blend: str = DEFAULT_SHADOW_BLEND,
) -> np.ndarray:
    """Overlay the shadow asset over the whole image at a fixed low opacity.

    multiply: C = Cb + (Cb*Cs/255 - Cb) * a
    normal:   C = Cb + (Cs - Cb) * a
    with a = shadow_alpha/255 * opacity. Not gated by the mask.
    """
    cb = image[..., :3].astype(np.float64)
    cs = shadow[..., :3].astype(np.float64)
    a = (shadow[..., 3].astype(np.float64) / 255.0 * float(opacity))[..., None]

    if blend == "multiply":
        target = cb * cs / 255.0
    elif blend == "normal":
        target = cs
    else:
        raise ValueError(f"unknown shadow blend mode: {blend}")

    out = np.array(image, dtype=np.uint8)
    out[..., :3] = np.clip(round_half_up(cb + (target - cb) * a), 0, 255).astype(np.uint8)
    ab = image[..., 3:4].astype(np.float64)
    out[..., 3:4] = np.clip(round_half_up(a * 255.0 + ab * (1.0 - a)), 0, 255).astype(np.uint8)
    return out


class CompositingEngine:
    def __init__(
        self,
        *,
        shadow_opacity: float = DEFAULT_SHADOW_OPACITY,
        shadow_blend: str = DEFAULT_SHADOW_BLEND,
        workers: int = 1,
        px_per_percent: float = DISPLACEMENT_PX_PER_PERCENT,
    ):
        self.shadow_opacity = shadow_opacity
        self.shadow_blend = shadow_blend
        self.workers = max(1, int(workers))
        self.px_per_percent = px_per_percent
        self._pool: Optional[ThreadPoolExecutor] = None

    @classmethod
    def from_settings(cls, settings) -> "CompositingEngine":
        return cls(
            shadow_opacity=settings.shadow_opacity,
            shadow_blend=settings.shadow_blend,
            workers=settings.render_workers,
        )

    def _executor(self) -> ThreadPoolExecutor:
        if self._pool is None:
            self._pool = ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="compose")
        return self._pool

    def shutdown(self) -> None:
        if self._pool is not None:
            self._pool.shutdown(wait=True)
            self._pool = None

    def render(self, context: Optional[RenderContext], logger: Optional[TaskLogger] = None) -> Optional[PixelBuffer]:
        """Full recomputation of the mockup for `context`.

        A missing context or a context without a design is a no-op (returns
        None), not an error.
        """
        if context is None or not context.ready:
            return None

        logger = logger or TaskLogger()
        started = time.perf_counter()

        w, h = context.size
        params = context.params
        placement = compute_placement(context.bounds, context.design.size, params)
        if placement is None:
            logger.warning("design not placed: empty mask bounds", bounds=context.bounds.as_dict())
        design = rasterize_design(context.design, placement, (w, h))

        base = context.base.data
        out = opaque_base(base)
        coverage = mask_alpha(context.mask)
        max_disp = max_displacement(params.displacement_intensity, self.px_per_percent)

        kwargs = dict(
            base=base,
            coverage=coverage,
            displacement=context.displacement.data,
            design=design,
            max_disp=max_disp,
            out=out,
        )
        bands = self._bands(h)
        if len(bands) == 1:
            compose_rows(y0=0, y1=h, **kwargs)
        else:
            futures = [self._executor().submit(compose_rows, y0=y0, y1=y1, **kwargs) for y0, y1 in bands]
            for f in futures:
                f.result()

        if context.shadow is not None:
            out = apply_shadow(out, context.shadow.data, opacity=self.shadow_opacity, blend=self.shadow_blend)

        logger.debug(
            "render complete",
            size=[w, h],
            placement=None if placement is None else list(placement.rounded()),
            params=params.as_dict(),
            shadow=context.shadow is not None,
            elapsed_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return PixelBuffer(out)

    def _bands(self, height: int) -> list[tuple[int, int]]:
        n = min(self.workers, max(1, height))
        if n <= 1:
            return [(0, height)]
        edges = np.linspace(0, height, n + 1).astype(int)
        return [(int(a), int(b)) for a, b in zip(edges[:-1], edges[1:]) if b > a]
