"""
FastAPI application entrypoint.
"""
import logging
from fastapi import FastAPI
from api.routes import router
from facelab.app import FaceLab
from facelab.config import Settings
from facelab.live import LiveCapture

settings = Settings()
logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL))
app = FastAPI(title="FaceLab API", version="1.0.0")
app.state.facelab = FaceLab(settings)
app.state.live = LiveCapture(app.state.facelab)
app.include_router(router)

@app.get("/health")
def health() -> dict:
    """
    Health check endpoint.

    Returns:
        dict: Simple status payload.
    """
    return {"status": "ok"}
