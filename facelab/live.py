# facelab/live.py
"""
Live (real-time) capture.

LiveCapture runs the capture/render loop on a background thread: every
iteration reads one frame, runs FaceLab.process_frame and publishes the
annotated frame + status summary. run_live_overlay is the blocking desktop
variant that shows the annotated frames in an OpenCV window.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

import cv2
import numpy as np

from facelab.app import FaceLab
from facelab.config import Settings
from facelab.errors import CameraAccessDenied, ModelLoadFailure
from facelab.models import FrameSummary, LiveStatus

logger = logging.getLogger(__name__)

WINDOW_NAME = "FaceLab (q to quit)"

FrameCallback = Callable[[np.ndarray, FrameSummary], None]


def open_camera(settings: Settings, camera_index: Optional[int] = None):
    cam_idx = settings.CAMERA_INDEX if camera_index is None else camera_index
    cap = cv2.VideoCapture(cam_idx)
    if not cap.isOpened():
        cap.release()
        raise CameraAccessDenied(f"Could not open camera index {cam_idx}")
    cap.set(cv2.CAP_PROP_FRAME_WIDTH, settings.CAPTURE_WIDTH)
    cap.set(cv2.CAP_PROP_FRAME_HEIGHT, settings.CAPTURE_HEIGHT)
    return cap


def _ensure_models(app: FaceLab) -> None:
    if app.state.models_loaded:
        return
    try:
        app.load_models()
    except ModelLoadFailure:
        # loop still starts and idles until models are loaded
        logger.warning("[live] models unavailable; frames will not be analyzed")


class LiveCapture:
    """Background capture/render loop; each run is cancelled through its own stop event."""

    def __init__(
        self,
        app: FaceLab,
        camera_index: Optional[int] = None,
        on_frame: Optional[FrameCallback] = None,
        join_timeout: float = 5.0,
    ):
        self.app = app
        self.s = app.s
        self.camera_index = camera_index
        self.on_frame = on_frame
        self.join_timeout = join_timeout
        self._stop_event: Optional[threading.Event] = None
        self._cap = None
        self._thread: Optional[threading.Thread] = None
        self._frame_lock = threading.Lock()
        self._last_frame: Optional[np.ndarray] = None

    # ---- lifecycle ----
    def start(self) -> bool:
        """
        Open the camera and start the loop. Returns False if already running,
        or if the previous loop has not finished its last frame yet.
        """
        if self.running:
            return False
        previous = self._thread
        if previous is not None and previous.is_alive():
            logger.warning("[live] previous loop still finishing its last frame; not starting")
            return False
        _ensure_models(self.app)
        cap = open_camera(self.s, self.camera_index)
        stop_event = threading.Event()
        self._cap = cap
        self._stop_event = stop_event
        self.app.state.running = True
        self.app.state.started_at = time.time()
        self._thread = threading.Thread(target=self._loop, args=(cap, stop_event), name="facelab-live", daemon=True)
        self._thread.start()
        logger.info("[live] started")
        return True

    def stop(self) -> bool:
        """Stop the loop and release the camera. Returns False if not running."""
        was_running = self.running
        if self._stop_event is not None:
            self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self.join_timeout)
            if thread.is_alive():
                logger.warning(f"[live] loop did not finish within {self.join_timeout}s; it exits after the current frame")
        if thread is None or not thread.is_alive():
            self._thread = None
        if self._cap is not None:
            self._cap.release()
            self._cap = None
        self.app.state.running = False
        self.app.state.started_at = None
        with self._frame_lock:
            self._last_frame = None
        if was_running:
            logger.info("[live] stopped")
        return was_running

    @property
    def running(self) -> bool:
        return self._stop_event is not None and not self._stop_event.is_set()

    def status(self) -> LiveStatus:
        st = self.app.state
        running = self.running
        return LiveStatus(
            running=running,
            models_loaded=st.models_loaded,
            models_status=st.models_status,
            started_at=st.started_at,
            last_frame=st.last_summary if running else None,
        )

    def last_frame(self) -> Optional[np.ndarray]:
        with self._frame_lock:
            return None if self._last_frame is None else self._last_frame.copy()

    # ---- loop ----
    def _loop(self, cap, stop_event: threading.Event) -> None:
        try:
            while not stop_event.is_set():
                if not self.app.state.models_loaded:
                    stop_event.wait(self.s.LOOP_IDLE_SECONDS)
                    continue
                ok, frame = cap.read()
                if not ok or frame is None:
                    stop_event.wait(self.s.LOOP_IDLE_SECONDS)
                    continue
                try:
                    annotated, summary = self.app.process_frame(frame)
                except Exception:
                    logger.exception("[live] frame processing failed; continuing")
                    continue
                if stop_event.is_set():
                    # stopped while this frame was in flight
                    break
                with self._frame_lock:
                    self._last_frame = annotated
                if self.on_frame is not None:
                    self.on_frame(annotated, summary)
        finally:
            cap.release()
            stop_event.set()
            if self._stop_event is stop_event:
                self.app.state.running = False


def run_live_overlay(settings: Settings, camera_index: Optional[int] = None, app: Optional[FaceLab] = None) -> None:
    """
    Open the webcam and show annotated frames in a window until 'q' is pressed
    or the camera stops delivering frames.
    """
    app = app or FaceLab(settings)
    _ensure_models(app)
    cap = open_camera(settings, camera_index)
    app.state.running = True
    try:
        while True:
            ok, frame = cap.read()
            if not ok:
                break
            annotated = frame
            if app.state.models_loaded:
                try:
                    annotated, _summary = app.process_frame(frame)
                except Exception:
                    logger.exception("[live] frame processing failed; showing raw frame")
            cv2.imshow(WINDOW_NAME, annotated)
            if (cv2.waitKey(1) & 0xFF) == ord("q"):
                break
    finally:
        app.state.running = False
        cap.release()
        cv2.destroyAllWindows()
