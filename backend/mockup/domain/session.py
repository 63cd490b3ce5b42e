import itertools
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from mockup.core.errors import MissingRequiredAsset
from mockup.core.logger import TaskLogger
from mockup.domain.models import PixelBuffer, RenderContext, RenderParameters
from mockup.services import mask_analyzer
from mockup.services.asset_store import AssetSet, AssetStore, decode_design
from mockup.services.compositor import CompositingEngine
from mockup.services.displacement import MODE_AUTO, build_displacement


@dataclass
class RenderOutcome:
    ticket: int
    image: Optional[PixelBuffer] = None
    committed: bool = False  # False when superseded by a newer request, or nothing rendered
    elapsed_ms: float = 0.0


@dataclass
class SessionInfo:
    status: str = "not_ready"  # not_ready|ready|failed
    size: Optional[tuple] = None
    bounds: Optional[Dict[str, int]] = None
    absent: Dict[str, str] = field(default_factory=dict)
    displacement_mode: Optional[str] = None
    error: Optional[str] = None
    loaded_at: Optional[float] = None


class MockupSession:
    """Thin controller between a UI/API and the engine.

    Holds the prepared RenderContext, the current parameters and design, and
    the last published render. Renders are recomputed in full every time; only
    the newest finished render is published.
    """

    def __init__(self, engine: CompositingEngine, defaults: Optional[RenderParameters] = None):
        self.engine = engine
        self.defaults = defaults or RenderParameters()
        self.info = SessionInfo()
        self._context: Optional[RenderContext] = None
        self._params = self.defaults
        self._design: Optional[PixelBuffer] = None
        self._latest: Optional[PixelBuffer] = None
        self._latest_ticket = 0
        self._tickets = itertools.count(1)
        self._issued = 0
        self._lock = threading.Lock()

    # -- assets --------------------------------------------------------------

    def load_assets(self, store: AssetStore, sources: Dict[str, str]) -> bool:
        """Load and prepare assets. Returns False (and stays not-ready) when a required asset is missing."""
        logger = TaskLogger()
        try:
            assets = store.load(sources, logger=logger)
        except MissingRequiredAsset as exc:
            logger.error("mockup pipeline not ready", asset=exc.name, source=exc.source, reason=exc.reason)
            with self._lock:
                self._context = None
                self.info = SessionInfo(status="failed", error=str(exc))
            return False

        self.prepare(assets, logger=logger)
        return True

    def prepare(self, assets: AssetSet, logger: Optional[TaskLogger] = None) -> RenderContext:
        """Compute mask bounds and the displacement buffer once per asset set."""
        logger = logger or TaskLogger()
        bounds = mask_analyzer.bounds(assets.mask)
        if bounds.is_empty:
            logger.warning("mask has no printable pixels; designs will not be placed")
        disp = build_displacement(assets.base, assets.mask, assets.displacement)
        if disp.mode == MODE_AUTO:
            logger.info("displacement map auto-generated from base photo", mask_average=round(disp.mask_average, 3))
        else:
            logger.info("using supplied displacement map", mask_average=round(disp.mask_average, 3))

        with self._lock:
            ctx = RenderContext(
                base=assets.base,
                mask=assets.mask,
                displacement=disp.buffer,
                bounds=bounds,
                params=self._params,
                design=self._design,
                shadow=assets.shadow,
            )
            self._context = ctx
            self.info = SessionInfo(
                status="ready",
                size=assets.size,
                bounds=bounds.as_dict(),
                absent=dict(assets.absent),
                displacement_mode=disp.mode,
                loaded_at=time.time(),
            )
        logger.info("assets ready", size=list(assets.size), absent=sorted(assets.absent))
        return ctx

    # -- inputs --------------------------------------------------------------

    def set_design(self, data: bytes) -> PixelBuffer:
        design = decode_design(data)
        with self._lock:
            self._design = design
        return design

    def clear_design(self) -> None:
        with self._lock:
            self._design = None
            self._latest = None

    def update(self, **patch: Any) -> RenderParameters:
        with self._lock:
            self._params = self._params.update(**patch)
            return self._params

    def reset(self) -> RenderParameters:
        with self._lock:
            self._params = self.defaults
            return self._params

    # -- state ---------------------------------------------------------------

    @property
    def params(self) -> RenderParameters:
        return self._params

    @property
    def has_design(self) -> bool:
        return self._design is not None

    @property
    def ready(self) -> bool:
        return self._context is not None and self._design is not None

    @property
    def latest(self) -> Optional[PixelBuffer]:
        return self._latest

    def _snapshot_locked(self, params: Optional[RenderParameters] = None) -> Optional[RenderContext]:
        if self._context is None:
            return None
        return self._context.with_parameters(self._params if params is None else params).with_design(self._design)

    def snapshot(self) -> Optional[RenderContext]:
        """Context for the current inputs, or None before assets are ready."""
        with self._lock:
            return self._snapshot_locked()

    def status(self) -> Dict[str, Any]:
        info = self.info
        return {
            "status": info.status,
            "ready": self.ready,
            "has_design": self.has_design,
            "size": list(info.size) if info.size else None,
            "bounds": info.bounds,
            "absent_assets": info.absent,
            "displacement_mode": info.displacement_mode,
            "error": info.error,
            "params": self._params.as_dict(),
            "latest_ticket": self._latest_ticket or None,
        }

    # -- render --------------------------------------------------------------

    def render(self, params: Optional[RenderParameters] = None) -> RenderOutcome:
        """Render current inputs; publish the result unless a newer render was requested meanwhile.

        `params` pins the parameters for this call. Without it the session's
        current parameters are read when the ticket is issued.
        """
        with self._lock:
            ticket = next(self._tickets)
            self._issued = ticket
            ctx = self._snapshot_locked(params)

        logger = TaskLogger()
        started = time.perf_counter()
        image = self.engine.render(ctx, logger=logger)
        elapsed = round((time.perf_counter() - started) * 1000, 2)
        if image is None:
            return RenderOutcome(ticket=ticket, elapsed_ms=elapsed)

        with self._lock:
            if ticket != self._issued:
                logger.debug("render superseded", ticket=ticket, newest=self._issued)
                return RenderOutcome(ticket=ticket, image=image, elapsed_ms=elapsed)
            self._latest = image
            self._latest_ticket = ticket
        return RenderOutcome(ticket=ticket, image=image, committed=True, elapsed_ms=elapsed)
