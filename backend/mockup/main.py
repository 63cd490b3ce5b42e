import asyncio
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from mockup.core.config import Settings, settings as default_settings
from mockup.core.logger import setup_logger
from mockup.domain.models import RenderParameters
from mockup.domain.session import MockupSession
from mockup.services.asset_store import AssetStore
from mockup.services.compositor import CompositingEngine

from mockup.api import mockup as mockup_api

logger = setup_logger()


def build_session(cfg: Settings) -> MockupSession:
    engine = CompositingEngine.from_settings(cfg)
    return MockupSession(engine, defaults=RenderParameters.defaults(cfg))


def create_app(cfg: Optional[Settings] = None, session: Optional[MockupSession] = None) -> FastAPI:
    cfg = cfg or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting tote mockup backend...")
        if app.state.session is None:
            app.state.session = build_session(cfg)
            sources = cfg.asset_sources()
            logger.info(f"Loading product assets from {cfg.assets_dir}")
            store = AssetStore(timeout=cfg.asset_timeout)
            ok = await asyncio.to_thread(app.state.session.load_assets, store, sources)
            if not ok:
                logger.error("Required product assets missing; renders are disabled for this process")
        logger.info(
            f"Shadow overlay: blend={cfg.shadow_blend} opacity={cfg.shadow_opacity}; render workers={cfg.render_workers}"
        )

        yield

        logger.info("Shutting down...")
        app.state.session.engine.shutdown()

    app = FastAPI(
        title="Tote Mockup Engine",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.session = session
    app.include_router(mockup_api.router, prefix="/api/v1")

    @app.get("/health")
    async def health_check():
        s = app.state.session
        return {"status": "ok", "ready": bool(s and s.ready), "assets": s.info.status if s else "not_ready"}

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("mockup.main:app", host="0.0.0.0", port=8000, reload=True)
