
import threading
import time

import numpy as np
import pytest

import facelab.live as live
from conftest import face_result, image
from facelab.app import FaceLab
from facelab.errors import CameraAccessDenied


class DummyCap:
    def __init__(self, frames=None, opened=True):
        self.frames = frames
        self.opened = opened
        self.calls = 0
        self.released = False
        self.props = {}
    def isOpened(self): return self.opened
    def set(self, prop, value):
        self.props[prop] = value
        return True
    def read(self):
        self.calls += 1
        if self.frames is not None and self.calls > self.frames:
            return False, None
        return True, image(7)
    def release(self): self.released = True


@pytest.fixture
def no_window(monkeypatch):
    monkeypatch.setattr(live.cv2, "imshow", lambda *a, **k: None)
    monkeypatch.setattr(live.cv2, "destroyAllWindows", lambda *a, **k: None)


def test_run_live_overlay_monkeypatch(monkeypatch, settings, fake_deepface, no_window):
    cap = DummyCap()
    monkeypatch.setattr(live.cv2, "VideoCapture", lambda idx: cap)
    fake_deepface.analyze_results = [face_result()]
    calls = {"n": 0}
    def fake_waitKey(delay):
        calls["n"] += 1
        return ord("q") if calls["n"] > 3 else -1
    monkeypatch.setattr(live.cv2, "waitKey", fake_waitKey)

    lab = FaceLab(settings)
    live.run_live_overlay(settings, camera_index=0, app=lab)

    assert cap.released
    assert len(fake_deepface.analyze_calls) == 4
    assert lab.state.last_summary.face_count == 1
    assert not lab.state.running
    assert cap.props[live.cv2.CAP_PROP_FRAME_WIDTH] == settings.CAPTURE_WIDTH

def test_run_live_overlay_survives_detection_errors(monkeypatch, settings, fake_deepface, no_window):
    cap = DummyCap(frames=3)
    monkeypatch.setattr(live.cv2, "VideoCapture", lambda idx: cap)
    monkeypatch.setattr(live.cv2, "waitKey", lambda d: -1)
    fake_deepface.analyze_error = RuntimeError("detector exploded")

    live.run_live_overlay(settings, camera_index=0)

    # camera ran dry after 3 frames; first frame failed, the rest were analyzed
    assert cap.released
    assert len(fake_deepface.analyze_calls) == 3

def test_camera_denied(monkeypatch, settings, fake_deepface):
    cap = DummyCap(opened=False)
    monkeypatch.setattr(live.cv2, "VideoCapture", lambda idx: cap)
    with pytest.raises(CameraAccessDenied):
        live.run_live_overlay(settings, camera_index=3)
    assert cap.released

    capture = live.LiveCapture(FaceLab(settings))
    with pytest.raises(CameraAccessDenied):
        capture.start()
    assert not capture.running

def test_live_capture_start_stop(monkeypatch, settings, fake_deepface):
    cap = DummyCap()
    monkeypatch.setattr(live.cv2, "VideoCapture", lambda idx: cap)
    fake_deepface.analyze_results = [face_result()]
    seen = threading.Event()

    lab = FaceLab(settings)
    capture = live.LiveCapture(lab, on_frame=lambda frame, summary: seen.set())
    assert capture.start()
    assert lab.state.models_loaded  # start loads models first
    assert not capture.start()
    assert seen.wait(timeout=5.0)

    st = capture.status()
    assert st.running and st.last_frame is not None and st.last_frame.face_count == 1
    assert capture.last_frame().shape == (32, 32, 3)

    assert capture.stop()
    assert cap.released
    assert not capture.stop()
    assert capture.last_frame() is None
    assert not capture.status().running

def test_live_capture_idles_without_models(monkeypatch, settings, fake_deepface):
    cap = DummyCap()
    monkeypatch.setattr(live.cv2, "VideoCapture", lambda idx: cap)
    fake_deepface.build_error = OSError("no weights")

    lab = FaceLab(settings)
    capture = live.LiveCapture(lab)
    assert capture.start()
    assert lab.state.models_status == "error loading models"
    capture.stop()
    assert cap.calls == 0
    assert fake_deepface.analyze_calls == []
    assert cap.released

def test_live_capture_keeps_running_after_errors(monkeypatch, settings, fake_deepface):
    cap = DummyCap()
    monkeypatch.setattr(live.cv2, "VideoCapture", lambda idx: cap)
    fake_deepface.analyze_error = RuntimeError("transient")
    seen = threading.Event()

    capture = live.LiveCapture(FaceLab(settings), on_frame=lambda f, s: seen.set())
    capture.start()
    assert seen.wait(timeout=5.0)
    capture.stop()
    assert len(fake_deepface.analyze_calls) >= 2

def _loop_threads():
    return [t for t in threading.enumerate() if t.name == "facelab-live" and t.is_alive()]

def test_restart_waits_for_slow_frame(monkeypatch, settings, fake_deepface):
    cap = DummyCap()
    monkeypatch.setattr(live.cv2, "VideoCapture", lambda idx: cap)
    fake_deepface.analyze_results = [face_result()]
    fake_deepface.analyze_delay = 0.5

    capture = live.LiveCapture(FaceLab(settings), join_timeout=0.05)
    assert capture.start()
    deadline = time.time() + 5.0
    while not fake_deepface.analyze_calls and time.time() < deadline:
        time.sleep(0.01)
    assert fake_deepface.analyze_calls
    first = capture._thread

    # join times out while analyze is still sleeping
    assert capture.stop()
    assert first.is_alive()
    assert not capture.running
    assert not capture.start()

    first.join(timeout=5.0)
    assert not first.is_alive()
    assert len(fake_deepface.analyze_calls) == 1
    assert capture.last_frame() is None

    fake_deepface.analyze_delay = 0.0
    assert capture.start()
    time.sleep(0.2)
    assert len(_loop_threads()) == 1
    assert capture.stop()
    assert _loop_threads() == []
