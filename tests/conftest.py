import sys
import time
import types

import numpy as np
import pytest

from facelab.app import FaceLab
from facelab.config import Settings

DIM = 128


def one_hot(i: int, dim: int = DIM) -> list:
    v = [0.0] * dim
    v[i % dim] = 1.0
    return v


class FakeDeepFace:
    """Stand-in for deepface.DeepFace.

    represent(): a uniformly black image has no face; any other image yields a
    one-hot embedding indexed by its brightest pixel value.
    analyze(): returns `analyze_results` (or raises `analyze_error` once).
    """

    def __init__(self):
        self.built = []
        self.build_error = None
        self.analyze_results = []
        self.analyze_error = None
        self.analyze_calls = []
        self.analyze_delay = 0.0
        self.represent_calls = []

    def build_model(self, model_name=None, task=None):
        if self.build_error is not None:
            raise self.build_error
        self.built.append((model_name, task))
        return object()

    def analyze(self, img_path, actions=None, enforce_detection=True, detector_backend="opencv", align=True):
        self.analyze_calls.append({"shape": img_path.shape, "detector_backend": detector_backend, "actions": actions})
        if self.analyze_delay:
            time.sleep(self.analyze_delay)
        if self.analyze_error is not None:
            err, self.analyze_error = self.analyze_error, None
            raise err
        return self.analyze_results

    def represent(self, img_path, model_name=None, detector_backend="opencv", enforce_detection=True, align=True):
        img = np.asarray(img_path)
        self.represent_calls.append({"shape": img.shape, "detector_backend": detector_backend})
        h, w = img.shape[:2]
        if detector_backend == "skip":
            return [{"embedding": one_hot(int(img.max())), "facial_area": {"x": 0, "y": 0, "w": w, "h": h}}]
        if int(img.max()) == 0:
            return [{"embedding": [0.5] * DIM, "facial_area": {"x": 0, "y": 0, "w": w, "h": h}, "face_confidence": 0}]
        return [{
            "embedding": one_hot(int(img.max())),
            "facial_area": {"x": 2, "y": 2, "w": 10, "h": 10, "left_eye": (4, 4), "right_eye": (8, 4)},
            "face_confidence": 0.98,
        }]


def face_result(x=0, y=0, w=16, h=16, confidence=0.95):
    return {
        "region": {"x": x, "y": y, "w": w, "h": h, "left_eye": (x + 4, y + 4), "right_eye": (x + 10, y + 4)},
        "face_confidence": confidence,
        "emotion": {"neutral": 5.0, "happy": 90.0, "sad": 5.0},
        "dominant_emotion": "happy",
        "age": 31,
        "gender": {"Woman": 12.0, "Man": 88.0},
        "dominant_gender": "Man",
    }


def image(value: int, size: int = 32) -> np.ndarray:
    return np.full((size, size, 3), value, dtype=np.uint8)


@pytest.fixture
def fake_deepface(monkeypatch):
    df = FakeDeepFace()
    monkeypatch.setitem(sys.modules, "deepface", types.SimpleNamespace(DeepFace=df))
    return df


@pytest.fixture
def settings(tmp_path):
    return Settings(DB_DIR=str(tmp_path / "db"), LOOP_IDLE_SECONDS=0.001)


@pytest.fixture
def facelab(settings, fake_deepface):
    return FaceLab(settings)


@pytest.fixture
def loaded_facelab(facelab):
    facelab.load_models()
    return facelab
