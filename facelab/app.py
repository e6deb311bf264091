"""
Application controller.

FaceLab owns the application state (models, running flag, matcher, detection
options) and every operation that touches the identity store. Each store
mutation is followed by a full matcher rebuild under the same lock.
"""
from __future__ import annotations
import logging
import threading
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

import numpy as np

from facelab.config import Settings
from facelab.detection import detect_all_faces, detect_single_face, load_models
from facelab.errors import ModelLoadFailure, ModelsNotLoaded, NoFaceDetected, RegistrationError
from facelab.identity_store import IdentityDB, IdentityStore
from facelab.matcher import FaceMatcher, build_matcher
from facelab.models import DetectionOptions, FrameSummary, RegistrationResult, StoreSummary
from facelab.storage import FileKeyValueStore
from facelab.visual import draw_overlays, summarize_faces

logger = logging.getLogger(__name__)

# (display name, decoded BGR image or None when it could not be decoded)
NamedImage = Tuple[str, Optional[np.ndarray]]


@dataclass
class AppState:
    models_loaded: bool = False
    models_status: str = "not loaded"
    running: bool = False
    started_at: Optional[float] = None
    matcher: Optional[FaceMatcher] = None
    db_count: int = 0
    options: DetectionOptions = field(default_factory=DetectionOptions)
    last_summary: Optional[FrameSummary] = None


class FaceLab:
    def __init__(self, settings: Settings, store: IdentityStore | None = None):
        self.s = settings
        self.store = store or IdentityStore(
            FileKeyValueStore(settings.DB_DIR),
            key=settings.DB_KEY,
            descriptor_length=settings.DESCRIPTOR_LENGTH,
            strict_import=settings.STRICT_IMPORT,
        )
        self.state = AppState(options=DetectionOptions(
            variant=settings.DETECTOR_VARIANT,
            input_size=settings.INPUT_SIZE,
            score_threshold=settings.SCORE_THRESHOLD,
        ))
        self._lock = threading.Lock()
        with self._lock:
            self.rebuild_matcher()

    # ---- models ----
    def load_models(self) -> str:
        self.state.models_status = "loading..."
        try:
            load_models(self.s)
        except ModelLoadFailure:
            self.state.models_loaded = False
            self.state.models_status = "error loading models"
            raise
        self.state.models_loaded = True
        self.state.models_status = "loaded"
        with self._lock:
            self.rebuild_matcher()
        return self.state.models_status

    # ---- options ----
    def update_detection_options(self, variant, input_size=None, score_threshold=None) -> DetectionOptions:
        self.state.options = DetectionOptions.from_controls(variant, input_size, score_threshold)
        logger.info(f"[app] detection options {self.state.options}")
        return self.state.options

    # ---- matcher ----
    def rebuild_matcher(self) -> Optional[FaceMatcher]:
        """Rebuild the matcher from what is currently persisted."""
        db = self.store.load()
        self.state.db_count = len(db)
        try:
            self.state.matcher = build_matcher(db, self.s.MATCH_THRESHOLD)
        except (ValueError, TypeError):
            logger.exception("[app] stored descriptors are malformed; matcher disabled")
            self.state.matcher = None
        return self.state.matcher

    # ---- identity store ----
    def summary(self) -> StoreSummary:
        db = self.store.load()
        return StoreSummary(
            count=len(db),
            identities={name: len(v) if isinstance(v, list) else 0 for name, v in db.items()},
        )

    def register(self, name: str, images: Iterable[NamedImage]) -> RegistrationResult:
        """
        Append one descriptor per usable image to `name`.

        Images that fail to decode or show no face are skipped; if every image
        is skipped, NoFaceDetected is raised and nothing is written.
        """
        label = (name or "").strip()
        images = list(images)
        if not label:
            raise RegistrationError("Enter a name to register")
        if not images:
            raise RegistrationError("Choose one or more images for this person")
        if not self.state.models_loaded:
            raise ModelsNotLoaded("Load models first")

        descriptors: List[List[float]] = []
        skipped: List[str] = []
        for filename, image in images:
            if image is None:
                logger.warning(f"[app] could not decode {filename}")
                skipped.append(filename)
                continue
            face = detect_single_face(image, self.s)
            if face is None or face.descriptor is None:
                logger.warning(f"[app] no face found in {filename}")
                skipped.append(filename)
                continue
            descriptors.append(face.descriptor)

        if not descriptors:
            raise NoFaceDetected("No faces detected in uploaded images. Try clearer photos.")

        with self._lock:
            self.store.append(label, descriptors)
            self.rebuild_matcher()
        logger.info(f"[app] registered {len(descriptors)} face(s) for {label} skipped={len(skipped)}")
        return RegistrationResult(name=label, registered=len(descriptors), skipped=skipped)

    def clear_db(self) -> None:
        with self._lock:
            self.store.clear()
            self.rebuild_matcher()

    def export_db(self) -> str:
        return self.store.export_document()

    def import_db(self, text: str | bytes) -> IdentityDB:
        with self._lock:
            db = self.store.import_document(text)
            self.rebuild_matcher()
        return db

    # ---- per-frame work ----
    def process_frame(self, frame: np.ndarray) -> Tuple[np.ndarray, FrameSummary]:
        """Detect, match and draw one frame; returns (annotated, summary)."""
        if not self.state.models_loaded:
            raise ModelsNotLoaded("Load models first")
        faces = detect_all_faces(frame, self.state.options, self.s)
        matcher = self.state.matcher
        if matcher is not None:
            for face in faces:
                if face.descriptor is not None:
                    face.match = matcher.find_best_match(face.descriptor)
        summary = summarize_faces(faces)
        self.state.last_summary = summary
        return draw_overlays(frame, faces), summary
