
"""Overlay drawing & per-frame status text.

- draw_overlays: boxes, landmark dots and identity labels for detected faces
- top_expression: dominant expression of a face
- summarize_faces: status fields shown next to the video (last face wins)
"""
from __future__ import annotations
import time
import cv2
import numpy as np
from typing import Dict, List, Optional, Tuple

from facelab.matcher import UNKNOWN_LABEL
from facelab.models import FaceAnalysis, FrameSummary, Identification

# BGR
BOX_COLOR: Tuple[int, int, int] = (143, 157, 42)
LANDMARK_COLOR: Tuple[int, int, int] = (255, 255, 255)
KNOWN_COLOR: Tuple[int, int, int] = (143, 157, 42)
UNKNOWN_COLOR: Tuple[int, int, int] = (90, 140, 255)
PLACEHOLDER = "—"


def top_expression(expressions: Dict[str, float] | None) -> Optional[Tuple[str, float]]:
    """Highest-scoring expression; ties go to the first listed."""
    if not expressions:
        return None
    label = max(expressions, key=expressions.get)
    return label, float(expressions[label])


def _pct(p: float) -> int:
    return int(round(p * 100))


def draw_overlays(frame: np.ndarray, faces: List[FaceAnalysis] | None = None) -> np.ndarray:
    """Draw boxes, landmarks and identity labels on a copy of a BGR frame.

    Faces without a match get no label; matched faces get "name (distance)"
    or "unknown".
    """
    out = frame.copy()
    h, w = out.shape[:2]

    for face in faces or []:
        b = face.box
        x = max(0, min(b.x, w - 1)); y = max(0, min(b.y, h - 1))
        fw = max(0, min(b.w, w - x)); fh = max(0, min(b.h, h - y))
        cv2.rectangle(out, (x, y), (x + fw, y + fh), BOX_COLOR, 2)

        for pt in face.landmarks:
            cv2.circle(out, (int(pt.x), int(pt.y)), 2, LANDMARK_COLOR, -1, cv2.LINE_AA)

        if face.match is None:
            continue
        anchor = (x + 6, max(12, y - 8))
        if face.match.label != UNKNOWN_LABEL:
            text = f"{face.match.label} ({face.match.distance:.2f})"
            cv2.putText(out, text, anchor, cv2.FONT_HERSHEY_SIMPLEX, 0.6, KNOWN_COLOR, 2, cv2.LINE_AA)
        else:
            cv2.putText(out, UNKNOWN_LABEL, anchor, cv2.FONT_HERSHEY_SIMPLEX, 0.5, UNKNOWN_COLOR, 2, cv2.LINE_AA)

    return out


def summarize_faces(faces: List[FaceAnalysis], ts: float | None = None) -> FrameSummary:
    summary = FrameSummary(ts=time.time() if ts is None else ts, face_count=len(faces))
    for face in faces:
        top = top_expression(face.expressions)
        summary.expression = f"{top[0]} ({_pct(top[1])}%)" if top else PLACEHOLDER
        summary.age = f"{face.age:.0f}" if face.age else PLACEHOLDER
        if face.gender and face.gender_probability is not None:
            summary.gender = f"{face.gender} ({_pct(face.gender_probability)}%)"
        elif face.gender:
            summary.gender = face.gender
        else:
            summary.gender = PLACEHOLDER
        if face.match is not None and face.match.label != UNKNOWN_LABEL:
            summary.identified.append(
                Identification(name=face.match.label, distance=face.match.distance, box=face.box)
            )
    return summary
