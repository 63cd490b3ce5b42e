from __future__ import annotations

import io
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

import httpx
from PIL import Image, UnidentifiedImageError

from mockup.core.errors import DesignRejected, MissingRequiredAsset
from mockup.core.logger import TaskLogger
from mockup.domain.models import PixelBuffer

REQUIRED_ASSETS = ("base", "mask")
OPTIONAL_ASSETS = ("displacement", "shadow")
ASSET_NAMES = REQUIRED_ASSETS + OPTIONAL_ASSETS


@dataclass
class _Outcome:
    name: str
    source: str
    image: Optional[Image.Image] = None
    status: str = "loaded"  # loaded|absent|failed
    reason: str = ""


@dataclass(frozen=True)
class AssetSet:
    base: PixelBuffer
    mask: PixelBuffer
    displacement: Optional[PixelBuffer] = None
    shadow: Optional[PixelBuffer] = None
    absent: Dict[str, str] = field(default_factory=dict)

    @property
    def size(self) -> tuple[int, int]:
        return self.base.size


def _is_url(source: str) -> bool:
    return source.startswith(("http://", "https://"))


class AssetStore:
    """Loads the four product rasters concurrently and decodes them to RGBA."""

    def __init__(self, timeout: float = 30.0, max_workers: int = 4, transport: Optional[httpx.BaseTransport] = None):
        self.timeout = timeout
        self.max_workers = max_workers
        self.transport = transport

    def _read_bytes(self, source: str) -> bytes:
        if _is_url(source):
            with httpx.Client(timeout=self.timeout, follow_redirects=True, transport=self.transport) as client:
                resp = client.get(source)
            if resp.status_code == 404:
                raise FileNotFoundError(source)
            resp.raise_for_status()
            return resp.content
        return Path(source).read_bytes()

    def _fetch(self, name: str, source: Optional[str]) -> _Outcome:
        if not source:
            return _Outcome(name=name, source="", status="absent", reason="no location configured")
        try:
            data = self._read_bytes(source)
        except FileNotFoundError:
            return _Outcome(name=name, source=source, status="absent", reason="not found")
        except (OSError, httpx.HTTPError) as exc:
            return _Outcome(name=name, source=source, status="failed", reason=str(exc))

        try:
            img = Image.open(io.BytesIO(data))
            img.load()
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
            return _Outcome(name=name, source=source, status="failed", reason=f"undecodable image: {exc}")
        return _Outcome(name=name, source=source, image=img)

    def load(self, sources: Dict[str, str], logger: Optional[TaskLogger] = None) -> AssetSet:
        """Fetch every asset in parallel; returns once all four attempts settled.

        Raises MissingRequiredAsset if base or mask is unavailable. Optional
        assets that fail are recorded in `AssetSet.absent`.
        """
        logger = logger or TaskLogger()

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="asset") as pool:
            futures = {name: pool.submit(self._fetch, name, sources.get(name)) for name in ASSET_NAMES}
            outcomes = {name: f.result() for name, f in futures.items()}

        for o in outcomes.values():
            if o.status == "loaded":
                logger.info("asset loaded", asset=o.name, source=o.source, size=list(o.image.size), mode=o.image.mode)
            elif o.name in REQUIRED_ASSETS:
                logger.error(f"required asset {o.status}", asset=o.name, source=o.source, reason=o.reason)
            else:
                logger.warning(f"optional asset {o.status}", asset=o.name, source=o.source, reason=o.reason)

        for name in REQUIRED_ASSETS:
            o = outcomes[name]
            if o.status != "loaded":
                raise MissingRequiredAsset(name, o.source, o.reason)

        base = PixelBuffer.from_image(outcomes["base"].image)
        size = base.size

        def _secondary(name: str) -> Optional[PixelBuffer]:
            o = outcomes[name]
            return PixelBuffer.from_image(o.image, size=size) if o.image is not None else None

        absent = {o.name: o.reason or o.status for o in outcomes.values() if o.status != "loaded"}
        return AssetSet(
            base=base,
            mask=_secondary("mask"),
            displacement=_secondary("displacement"),
            shadow=_secondary("shadow"),
            absent=absent,
        )


def decode_design(data: bytes) -> PixelBuffer:
    """Decode caller-supplied design bytes; raises DesignRejected if not an image."""
    if not data:
        raise DesignRejected("empty design upload")
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
        raise DesignRejected(f"design is not a decodable image: {exc}") from exc
    if img.width < 1 or img.height < 1:
        raise DesignRejected("design has no pixels")
    return PixelBuffer.from_image(img)
