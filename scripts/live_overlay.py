
"""Run live camera overlay.

Usage:
    uvicorn api.main:app --reload  # (separate, for API)
    python -m scripts.live_overlay  # (to see camera overlay window)

Press 'q' to quit the window.
"""
import logging
from facelab.config import Settings
from facelab.live import run_live_overlay

if __name__ == '__main__':
    s = Settings()
    logging.basicConfig(level=getattr(logging, s.LOG_LEVEL))
    run_live_overlay(s)
