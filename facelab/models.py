"""
Pydantic data models for detections, matches and API IO.
"""
from __future__ import annotations
from pydantic import BaseModel, Field
from typing import Dict, List, Optional, Literal

DEFAULT_INPUT_SIZE = 320
DEFAULT_SCORE_THRESHOLD = 0.5


def _positive_int(value, default: int) -> int:
    try:
        v = int(float(value))
    except (TypeError, ValueError):
        return default
    return v if v > 0 else default


def _positive_float(value, default: float) -> float:
    try:
        v = float(value)
    except (TypeError, ValueError):
        return default
    return v if v > 0 else default


class DetectionOptions(BaseModel):
    variant: Literal["tiny", "ssd"] = "tiny"
    input_size: int = DEFAULT_INPUT_SIZE
    score_threshold: float = DEFAULT_SCORE_THRESHOLD

    @classmethod
    def from_controls(cls, variant, input_size=None, score_threshold=None) -> "DetectionOptions":
        """
        Build options from raw control values.

        Unparseable or zero sizes/thresholds fall back to the defaults and any
        variant other than "tiny" selects the SSD detector.
        """
        return cls(
            variant="tiny" if str(variant or "").strip().lower() == "tiny" else "ssd",
            input_size=_positive_int(input_size, DEFAULT_INPUT_SIZE),
            score_threshold=_positive_float(score_threshold, DEFAULT_SCORE_THRESHOLD),
        )


class DetectionControls(BaseModel):
    variant: str = "tiny"
    input_size: Optional[str | int] = None
    score_threshold: Optional[str | float] = None


class FaceBox(BaseModel):
    x: int
    y: int
    w: int
    h: int


class Point(BaseModel):
    x: float
    y: float


class MatchResult(BaseModel):
    label: str
    distance: float


class FaceAnalysis(BaseModel):
    box: FaceBox
    score: float = 1.0
    landmarks: List[Point] = Field(default_factory=list)
    expressions: Dict[str, float] = Field(default_factory=dict)
    age: Optional[float] = None
    gender: Optional[str] = None
    gender_probability: Optional[float] = None
    descriptor: Optional[List[float]] = None
    match: Optional[MatchResult] = None


class Identification(BaseModel):
    name: str
    distance: float
    box: FaceBox


class FrameSummary(BaseModel):
    ts: float
    face_count: int = 0
    expression: str = "—"
    age: str = "—"
    gender: str = "—"
    identified: List[Identification] = Field(default_factory=list)


class RegistrationResult(BaseModel):
    name: str
    registered: int
    skipped: List[str] = Field(default_factory=list)


class StoreSummary(BaseModel):
    count: int
    identities: Dict[str, int] = Field(default_factory=dict)


class LiveStatus(BaseModel):
    running: bool
    models_loaded: bool
    models_status: str
    started_at: float | None = None
    last_frame: FrameSummary | None = None
