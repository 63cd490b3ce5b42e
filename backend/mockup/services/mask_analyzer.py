from __future__ import annotations

import numpy as np

from mockup.domain.models import MaskBounds, PixelBuffer

MASK_THRESHOLD = 128


def qualifying_mask(mask: PixelBuffer, *, threshold: int = MASK_THRESHOLD) -> np.ndarray:
    """HxW bool: pixels inside the printable area (red AND alpha above threshold)."""
    d = mask.data
    return (d[..., 0] > threshold) & (d[..., 3] > threshold)


def bounds(mask: PixelBuffer, *, threshold: int = MASK_THRESHOLD) -> MaskBounds:
    """Smallest axis-aligned box holding every qualifying pixel.

    Disconnected blobs still produce one box spanning all of them. With no
    qualifying pixel the inverted box (left=w, right=0, top=h, bottom=0) is
    returned; check `MaskBounds.is_empty` before using it.
    """
    q = qualifying_mask(mask, threshold=threshold)
    ys, xs = np.nonzero(q)
    if xs.size == 0:
        return MaskBounds.empty(mask.width, mask.height)
    return MaskBounds(
        left=int(xs.min()),
        top=int(ys.min()),
        right=int(xs.max()),
        bottom=int(ys.max()),
    )


def mask_alpha(mask: PixelBuffer) -> np.ndarray:
    """Per-pixel coverage (red/255 * alpha/255) used to gate and weight the blend."""
    d = mask.data.astype(np.float64)
    return (d[..., 0] / 255.0) * (d[..., 3] / 255.0)
