"""
Configuration for the face lab.
"""
from pydantic import BaseModel
import os

VARIANTS = ("tiny", "ssd")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def _flag(name: str, default: str) -> bool:
    return (os.getenv(name, default) or default).strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    """
    Runtime settings with environment-variable overrides.
    """
    # Identity store (string-keyed store rooted at DB_DIR)
    DB_DIR: str = os.getenv("FACELAB_DB_DIR", "data")
    DB_KEY: str = os.getenv("FACELAB_DB_KEY", "facelab_db_v1")
    EXPORT_FILENAME: str = "facelab_db.json"

    # DeepFace keeps its weights under DEEPFACE_HOME
    MODELS_HOME: str | None = os.getenv("FACELAB_MODELS_HOME") or None
    RECOGNITION_MODEL: str = os.getenv("RECOGNITION_MODEL", "Facenet")
    DESCRIPTOR_LENGTH: int = int(os.getenv("DESCRIPTOR_LENGTH", "128"))
    NORMALIZE_DESCRIPTORS: bool = _flag("NORMALIZE_DESCRIPTORS", "1")

    # Camera
    CAMERA_INDEX: int = int(os.getenv("CAMERA_INDEX", "0"))
    CAPTURE_WIDTH: int = int(os.getenv("CAPTURE_WIDTH", "1280"))
    CAPTURE_HEIGHT: int = int(os.getenv("CAPTURE_HEIGHT", "720"))
    LOOP_IDLE_SECONDS: float = float(os.getenv("LOOP_IDLE_SECONDS", "0.03"))

    # Detection defaults (live loop)
    DETECTOR_VARIANT: str = os.getenv("DETECTOR_VARIANT", "tiny")
    INPUT_SIZE: int = int(os.getenv("INPUT_SIZE", "320"))
    SCORE_THRESHOLD: float = float(os.getenv("SCORE_THRESHOLD", "0.5"))

    # Matching
    MATCH_THRESHOLD: float = float(os.getenv("MATCH_THRESHOLD", "0.6"))
    STRICT_IMPORT: bool = _flag("STRICT_IMPORT", "1")

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    def __init__(self, **data):
        super().__init__(**data)
        variant = (self.DETECTOR_VARIANT or "tiny").strip().lower()
        if variant not in VARIANTS:
            variant = "tiny"
        object.__setattr__(self, "DETECTOR_VARIANT", variant)

        level = (self.LOG_LEVEL or "INFO").strip().upper()
        if level not in LOG_LEVELS:
            level = "INFO"
        object.__setattr__(self, "LOG_LEVEL", level)
