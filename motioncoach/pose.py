import logging
from collections.abc import Iterable, Mapping, Sequence

import numpy as np

from .config import Settings, get_settings
from .errors import IncompletePoseError
from .models import Landmark, PoseFrame
from .skeleton import NAME_TO_INDEX, NUM_LANDMARKS

logger = logging.getLogger(__name__)

# (x, y, confidence) or (x, y, z, confidence)
Detection = Sequence[float]


def _to_landmark(name: str, value) -> Landmark:
    if isinstance(value, Landmark):
        return value
    if isinstance(value, Mapping):
        return Landmark(name=name, **value)
    if len(value) == 3:
        x, y, conf = value
        return Landmark(name=name, x=x, y=y, confidence=conf)
    if len(value) == 4:
        x, y, z, conf = value
        return Landmark(name=name, x=x, y=y, z=z, confidence=conf)
    raise ValueError(f"Detection for {name!r} must have 3 or 4 values, got {len(value)}")


def build_frame(
    detections: Mapping[str, Detection] | Iterable[Landmark],
    timestamp: float,
    frame_index: int = 0,
    settings: Settings | None = None,
) -> PoseFrame:
    """Build a PoseFrame from one pose detection.

    Landmarks below the confidence threshold are kept in the frame but the
    frame is rejected with IncompletePoseError when a required landmark is
    missing or unconfident, or when too few landmarks are confident overall.
    """
    settings = settings or get_settings()
    if isinstance(detections, Mapping):
        landmarks = tuple(_to_landmark(name, value) for name, value in detections.items())
    else:
        landmarks = tuple(detections)
    frame = PoseFrame(frame_index=frame_index, timestamp=timestamp, landmarks=landmarks)

    confident = set(frame.confident(settings.confidence_threshold))
    missing = tuple(name for name in settings.required_landmarks if name not in confident)
    if missing:
        raise IncompletePoseError(
            f"Frame {frame_index} missing required landmarks: {', '.join(missing)}",
            missing=missing,
        )
    if len(confident) < settings.min_confident_landmarks:
        raise IncompletePoseError(
            f"Frame {frame_index} has {len(confident)} confident landmarks, "
            f"need {settings.min_confident_landmarks}"
        )
    return frame


def _dims(settings: Settings) -> int:
    return 3 if settings.use_depth else 2


def normalize_frame(frame: PoseFrame, settings: Settings | None = None) -> np.ndarray:
    """Center a frame on the hip midpoint and scale it by torso length.

    Returns a (33, D) array in the fixed landmark order; landmarks that are
    absent or below the confidence threshold are NaN rows. Missing depth
    counts as z = 0 when ``use_depth`` is on.
    """
    settings = settings or get_settings()
    dims = _dims(settings)
    points = np.full((NUM_LANDMARKS, dims), np.nan, dtype=np.float64)
    for lm in frame.landmarks:
        if lm.confidence < settings.confidence_threshold:
            continue
        row = points[NAME_TO_INDEX[lm.name]]
        row[0] = lm.x
        row[1] = lm.y
        if dims == 3:
            row[2] = lm.z if lm.z is not None else 0.0

    l_sh, r_sh = points[NAME_TO_INDEX["left_shoulder"]], points[NAME_TO_INDEX["right_shoulder"]]
    l_hip, r_hip = points[NAME_TO_INDEX["left_hip"]], points[NAME_TO_INDEX["right_hip"]]
    if np.isnan(np.stack([l_sh, r_sh, l_hip, r_hip])).any():
        raise IncompletePoseError(
            f"Frame {frame.frame_index} cannot be normalized without both shoulders and hips"
        )

    hip_center = (l_hip + r_hip) / 2.0
    shoulder_center = (l_sh + r_sh) / 2.0
    torso = float(np.linalg.norm(shoulder_center - hip_center))
    if torso < 1e-6:
        raise IncompletePoseError(f"Frame {frame.frame_index} has a degenerate torso")

    return (points - hip_center) / torso


def normalize_sequence(frames: Sequence[PoseFrame], settings: Settings | None = None) -> np.ndarray:
    """Stack normalized frames into an (N, 33, D) array.

    Frames that cannot be normalized become all-NaN so they drop out of
    comparisons instead of failing the whole sequence.
    """
    settings = settings or get_settings()
    out = np.full((len(frames), NUM_LANDMARKS, _dims(settings)), np.nan, dtype=np.float64)
    for i, frame in enumerate(frames):
        try:
            out[i] = normalize_frame(frame, settings)
        except IncompletePoseError as e:
            logger.debug("Excluding frame %d from comparison: %s", i, e)
    return out
