"""
DeepFace-backed detection helpers.

- load_models: build the recognition, attribute and detector models once
- detect_all_faces: boxes + landmarks + expressions + age/gender + descriptor per face
- detect_single_face: the most confident face of a still image, with its descriptor

DeepFace is imported lazily so tests can inject a fake via sys.modules['deepface'].
"""
from __future__ import annotations
import logging
import os
from typing import Dict, List, Optional, Tuple

import cv2
import numpy as np

from facelab.config import Settings
from facelab.errors import ModelLoadFailure
from facelab.models import DetectionOptions, FaceAnalysis, FaceBox, Point

logger = logging.getLogger(__name__)

# DetectionOptions.variant -> DeepFace detector backend
DETECTOR_BACKENDS = {"tiny": "opencv", "ssd": "ssd"}
ATTRIBUTE_MODELS = ("Emotion", "Age", "Gender")
ANALYZE_ACTIONS = ["emotion", "age", "gender"]
LANDMARK_KEYS = ("left_eye", "right_eye", "nose", "mouth_left", "mouth_right")
GENDER_LABELS = {"Man": "male", "Woman": "female"}

REGISTRATION_OPTIONS = DetectionOptions(variant="tiny", score_threshold=0.5)


def load_models(settings: Settings) -> None:
    """
    Build every model used by the face lab so the first frame does not pay for it.

    Raises:
        ModelLoadFailure: weights missing/unreachable or DeepFace unavailable.
    """
    if settings.MODELS_HOME:
        os.environ["DEEPFACE_HOME"] = settings.MODELS_HOME
    try:
        from deepface import DeepFace

        DeepFace.build_model(model_name=settings.RECOGNITION_MODEL, task="facial_recognition")
        for name in ATTRIBUTE_MODELS:
            DeepFace.build_model(model_name=name, task="facial_attribute")
        for backend in DETECTOR_BACKENDS.values():
            DeepFace.build_model(model_name=backend, task="face_detector")
    except Exception as e:
        logger.exception("[detect] model loading failed")
        raise ModelLoadFailure(f"error loading models: {e}") from e
    logger.info(f"[detect] models loaded recognition={settings.RECOGNITION_MODEL}")


def decode_image(data: bytes) -> Optional[np.ndarray]:
    """Decode encoded image bytes (jpg/png/...) to a BGR array, or None."""
    if not data:
        return None
    buf = np.frombuffer(data, dtype=np.uint8)
    return cv2.imdecode(buf, cv2.IMREAD_COLOR)


def resize_for_detect(img: np.ndarray, target_w: int) -> Tuple[np.ndarray, float]:
    H, W = img.shape[:2]
    if W <= target_w:
        return img, 1.0
    scale = target_w / float(W)
    small = cv2.resize(img, (target_w, max(1, int(H * scale))), interpolation=cv2.INTER_AREA)
    return small, scale


def _to_full_box(region: dict, scale: float, W: int, H: int) -> Optional[FaceBox]:
    x = int(region.get("x", 0) / scale)
    y = int(region.get("y", 0) / scale)
    w = int(region.get("w", 0) / scale)
    h = int(region.get("h", 0) / scale)
    if w <= 0 or h <= 0:
        return None
    # clamp
    x = max(0, min(x, W - 1)); y = max(0, min(y, H - 1))
    w = max(1, min(w, W - x)); h = max(1, min(h, H - y))
    return FaceBox(x=x, y=y, w=w, h=h)


def _landmarks(region: dict, scale: float) -> List[Point]:
    points = []
    for key in LANDMARK_KEYS:
        pt = region.get(key)
        if not isinstance(pt, (list, tuple)) or len(pt) < 2:
            continue
        points.append(Point(x=float(pt[0]) / scale, y=float(pt[1]) / scale))
    return points


def _confidence(blob: dict) -> float:
    conf = blob.get("face_confidence")
    if conf is None:
        return 1.0
    try:
        return float(conf)
    except (TypeError, ValueError):
        return 1.0


def _fractions(scores) -> Dict[str, float]:
    # DeepFace reports percentages
    if not isinstance(scores, dict):
        return {}
    return {str(k): float(v) / 100.0 for k, v in scores.items()}


def _gender(blob: dict) -> Tuple[Optional[str], Optional[float]]:
    scores = blob.get("gender")
    dominant = blob.get("dominant_gender")
    if isinstance(scores, dict) and scores:
        if not dominant:
            dominant = max(scores, key=scores.get)
        prob = float(scores.get(dominant, 0.0)) / 100.0
    elif isinstance(scores, str):
        dominant, prob = scores, None
    else:
        return None, None
    return GENDER_LABELS.get(dominant, str(dominant).lower()), prob


def to_descriptor(embedding, settings: Settings) -> List[float]:
    vec = np.asarray(embedding, dtype=np.float64).reshape(-1)
    if settings.NORMALIZE_DESCRIPTORS:
        norm = float(np.linalg.norm(vec))
        if norm > 1e-8:
            vec = vec / norm
    return vec.tolist()


def _normalize_results(result) -> list:
    # DeepFace returns list[dict] or dict depending on version
    if isinstance(result, dict):
        return [result]
    return list(result or [])


def extract_descriptor(chip: np.ndarray, settings: Settings) -> Optional[List[float]]:
    """Embed an already-cropped face chip."""
    from deepface import DeepFace

    reps = _normalize_results(DeepFace.represent(
        img_path=chip,
        model_name=settings.RECOGNITION_MODEL,
        detector_backend="skip",
        enforce_detection=False,
    ))
    if not reps or reps[0].get("embedding") is None:
        return None
    return to_descriptor(reps[0]["embedding"], settings)


def detect_all_faces(frame: np.ndarray,
                     options: DetectionOptions,
                     settings: Settings,
                     with_descriptors: bool = True) -> List[FaceAnalysis]:
    """
    Detect every face in a BGR frame and attach landmarks, expressions,
    age/gender and (optionally) a descriptor.

    The "tiny" variant detects on a copy downscaled to `options.input_size`
    width; faces scoring below `options.score_threshold` are dropped.
    """
    from deepface import DeepFace

    H, W = frame.shape[:2]
    if options.variant == "tiny":
        small, scale = resize_for_detect(frame, options.input_size)
    else:
        small, scale = frame, 1.0

    results = _normalize_results(DeepFace.analyze(
        small,
        actions=ANALYZE_ACTIONS,
        enforce_detection=False,
        detector_backend=DETECTOR_BACKENDS[options.variant],
        align=True,
    ))

    faces: List[FaceAnalysis] = []
    for r in results:
        score = _confidence(r)
        if score < options.score_threshold:
            continue
        region = r.get("region") or {}
        box = _to_full_box(region, scale, W, H)
        if box is None:
            continue

        gender, gender_p = _gender(r)
        age = r.get("age")
        face = FaceAnalysis(
            box=box,
            score=score,
            landmarks=_landmarks(region, scale),
            expressions=_fractions(r.get("emotion")),
            age=float(age) if age is not None else None,
            gender=gender,
            gender_probability=gender_p,
        )
        if with_descriptors:
            chip = frame[box.y: box.y + box.h, box.x: box.x + box.w]
            try:
                face.descriptor = extract_descriptor(chip, settings)
            except Exception:
                logger.exception(f"[detect] descriptor extraction failed box={box}")
        faces.append(face)

    logger.debug(f"[detect] variant={options.variant} faces={len(faces)} of {len(results)}")
    return faces


def detect_single_face(image: np.ndarray,
                       settings: Settings,
                       options: DetectionOptions = REGISTRATION_OPTIONS) -> Optional[FaceAnalysis]:
    """
    Return the most confident face in a still image with its descriptor, or
    None when no face clears `options.score_threshold`.
    """
    from deepface import DeepFace

    H, W = image.shape[:2]
    reps = _normalize_results(DeepFace.represent(
        img_path=image,
        model_name=settings.RECOGNITION_MODEL,
        detector_backend=DETECTOR_BACKENDS[options.variant],
        enforce_detection=False,
        align=True,
    ))
    candidates = [r for r in reps if r.get("embedding") is not None and _confidence(r) >= options.score_threshold]
    if not candidates:
        return None

    best = max(candidates, key=_confidence)
    box = _to_full_box(best.get("facial_area") or {}, 1.0, W, H) or FaceBox(x=0, y=0, w=W, h=H)
    return FaceAnalysis(
        box=box,
        score=_confidence(best),
        landmarks=_landmarks(best.get("facial_area") or {}, 1.0),
        descriptor=to_descriptor(best["embedding"], settings),
    )
