"""
REST endpoints for models, detection options, the identity store and the live loop.
"""
import logging
from typing import List

import cv2
from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse, Response

from facelab.app import FaceLab
from facelab.detection import decode_image
from facelab.errors import (
    CameraAccessDenied,
    InvalidImportDocument,
    ModelLoadFailure,
    ModelsNotLoaded,
    NoFaceDetected,
    RegistrationError,
)
from facelab.live import LiveCapture
from facelab.models import DetectionControls

router = APIRouter()
logger = logging.getLogger(__name__)


def get_facelab(request: Request) -> FaceLab:
    return request.app.state.facelab


def get_live(request: Request) -> LiveCapture:
    return request.app.state.live


@router.post("/models/load")
async def models_load(facelab: FaceLab = Depends(get_facelab)):
    try:
        status = facelab.load_models()
    except ModelLoadFailure as e:
        raise HTTPException(status_code=503, detail=str(e))
    return {"status": status}


@router.get("/detection/options")
async def detection_options(facelab: FaceLab = Depends(get_facelab)):
    return facelab.state.options.model_dump()


@router.put("/detection/options")
async def update_detection_options(controls: DetectionControls, facelab: FaceLab = Depends(get_facelab)):
    """
    Replace the live detection options from raw control values.

    Unparseable sizes/thresholds fall back to defaults; any variant other
    than "tiny" selects SSD.
    """
    opts = facelab.update_detection_options(controls.variant, controls.input_size, controls.score_threshold)
    return opts.model_dump()


@router.get("/db")
async def db_summary(facelab: FaceLab = Depends(get_facelab)):
    return facelab.summary().model_dump()


@router.post("/db/register")
async def db_register(
    name: str = Form(""),
    files: List[UploadFile] = File(...),
    facelab: FaceLab = Depends(get_facelab),
):
    """
    Register one or more face images under a name.

    Images without a detectable face are skipped; the request fails only when
    none of them yields a face.
    """
    images = []
    for f in files:
        data = await f.read()
        images.append((f.filename or "image", decode_image(data)))
    logger.debug(f"[api] /db/register name={name!r} files={len(images)}")

    try:
        result = facelab.register(name, images)
    except NoFaceDetected as e:
        raise HTTPException(status_code=422, detail=str(e))
    except ModelsNotLoaded as e:
        raise HTTPException(status_code=409, detail=str(e))
    except RegistrationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return result.model_dump()


@router.delete("/db")
async def db_clear(confirm: bool = False, facelab: FaceLab = Depends(get_facelab)):
    if not confirm:
        raise HTTPException(status_code=400, detail="Clearing all registered faces requires confirm=true")
    facelab.clear_db()
    return {"status": "cleared"}


@router.get("/db/export")
async def db_export(facelab: FaceLab = Depends(get_facelab)):
    filename = facelab.s.EXPORT_FILENAME
    return Response(
        content=facelab.export_db(),
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/db/import")
async def db_import(file: UploadFile = File(...), facelab: FaceLab = Depends(get_facelab)):
    text = await file.read()
    try:
        facelab.import_db(text)
    except InvalidImportDocument as e:
        logger.warning(f"[api] import rejected: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    return JSONResponse({"status": "imported", **facelab.summary().model_dump()})


@router.post("/live/start")
async def live_start(live: LiveCapture = Depends(get_live)):
    try:
        started = live.start()
    except CameraAccessDenied as e:
        raise HTTPException(status_code=503, detail=str(e))
    if started:
        return {"status": "started"}
    return {"status": "already_running" if live.running else "stopping"}


@router.get("/live/status")
async def live_status(live: LiveCapture = Depends(get_live)):
    return live.status().model_dump()


@router.post("/live/stop")
async def live_stop(live: LiveCapture = Depends(get_live)):
    return {"status": "stopped" if live.stop() else "not_running"}


@router.get("/live/frame")
async def live_frame(live: LiveCapture = Depends(get_live)):
    frame = live.last_frame()
    if frame is None:
        raise HTTPException(status_code=404, detail="No frame available")
    ok, buf = cv2.imencode(".jpg", frame)
    if not ok:
        raise HTTPException(status_code=500, detail="Frame encoding failed")
    return Response(content=buf.tobytes(), media_type="image/jpeg")
