import logging
from typing import Optional

from fastapi import APIRouter, File, Form, HTTPException, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import Response

from mockup.core.errors import DesignRejected
from mockup.core.render_slots import render_slot
from mockup.domain.session import MockupSession

router = APIRouter()
logger = logging.getLogger("tote-mockup")


def _session(request: Request) -> MockupSession:
    session = getattr(request.app.state, "session", None)
    if session is None:
        raise HTTPException(status_code=503, detail="mockup session not initialised")
    return session


@router.get("/mockup/status")
async def mockup_status(request: Request):
    return _session(request).status()


@router.post("/mockup/design")
async def upload_design(request: Request, design_image: UploadFile = File(...)):
    session = _session(request)
    data = await design_image.read()
    try:
        design = await run_in_threadpool(session.set_design, data)
    except DesignRejected as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    logger.info(f"design accepted: {design_image.filename} {design.width}x{design.height}")
    return {"width": design.width, "height": design.height, "ready": session.ready}


@router.delete("/mockup/design")
async def clear_design(request: Request):
    _session(request).clear_design()
    return {"cleared": True}


@router.post("/mockup/reset")
async def reset_params(request: Request):
    return _session(request).reset().as_dict()


@router.post("/mockup/render")
async def render_mockup(
    request: Request,
    scale: Optional[float] = Form(None),
    offset_x: Optional[float] = Form(None),
    offset_y: Optional[float] = Form(None),
    displacement_intensity: Optional[float] = Form(None),
):
    session = _session(request)
    params = session.update(
        scale=scale,
        offset_x=offset_x,
        offset_y=offset_y,
        displacement_intensity=displacement_intensity,
    )
    if not session.ready:
        detail = session.info.error or "assets not loaded or no design uploaded"
        raise HTTPException(status_code=409, detail=detail)

    async with render_slot():
        outcome = await run_in_threadpool(session.render, params)

    if outcome.image is None:
        raise HTTPException(status_code=409, detail="nothing rendered")
    if not outcome.committed:
        raise HTTPException(status_code=409, detail=f"render {outcome.ticket} superseded by a newer request")

    png = await run_in_threadpool(outcome.image.to_png_bytes)
    return Response(
        content=png,
        media_type="image/png",
        headers={
            "X-Render-Ticket": str(outcome.ticket),
            "X-Render-Ms": str(outcome.elapsed_ms),
            "X-Render-Scale": str(params.scale),
        },
    )
