import logging
from collections.abc import Iterator
from pathlib import Path

import cv2
import mediapipe as mp

from .config import Settings, get_settings
from .errors import IncompletePoseError
from .pose import Detection, build_frame
from .sequence import PoseSequence, serialize
from .skeleton import LANDMARK_NAMES

logger = logging.getLogger(__name__)

vision = mp.tasks.vision


def landmarks_from_result(raw_landmarks) -> dict[str, Detection]:
    """Convert one person's MediaPipe landmarks to named (x, y, z, confidence) detections."""
    detections = {}
    for name, lm in zip(LANDMARK_NAMES, raw_landmarks):
        visibility = getattr(lm, "visibility", None)
        detections[name] = (lm.x, lm.y, lm.z, 1.0 if visibility is None else visibility)
    return detections


def landmarker_options(model_path: str | Path, settings: Settings) -> "vision.PoseLandmarkerOptions":
    """Single-person video-mode options gated on the frame confidence threshold."""
    return vision.PoseLandmarkerOptions(
        base_options=mp.tasks.BaseOptions(model_asset_path=str(model_path)),
        running_mode=vision.RunningMode.VIDEO,
        num_poses=1,
        min_pose_detection_confidence=settings.confidence_threshold,
        min_tracking_confidence=settings.confidence_threshold,
    )


def _video_frames(cap) -> Iterator[mp.Image]:
    while True:
        ok, bgr = cap.read()
        if not ok:
            return
        yield mp.Image(image_format=mp.ImageFormat.SRGB, data=cv2.cvtColor(bgr, cv2.COLOR_BGR2RGB))


def extract_sequence(
    video_path: str | Path,
    model_path: str | Path,
    settings: Settings | None = None,
) -> tuple[PoseSequence, float]:
    """Detect a pose in every frame of a reference video.

    Frames without a usable pose are skipped. Returns (frozen sequence, fps).
    """
    settings = settings or get_settings()
    cap = cv2.VideoCapture(str(video_path))
    if not cap.isOpened():
        raise ValueError(f"Cannot open video: {video_path}")

    fps = cap.get(cv2.CAP_PROP_FPS) or 30.0
    sequence = PoseSequence()
    skipped = 0
    try:
        with vision.PoseLandmarker.create_from_options(landmarker_options(model_path, settings)) as landmarker:
            for index, image in enumerate(_video_frames(cap)):
                result = landmarker.detect_for_video(image, int(index * 1000 / fps))
                if not result.pose_landmarks:
                    skipped += 1
                    continue
                detections = landmarks_from_result(result.pose_landmarks[0])
                try:
                    frame = build_frame(detections, index / fps, frame_index=index, settings=settings)
                except IncompletePoseError as e:
                    logger.debug("Skipping video frame %d: %s", index, e)
                    skipped += 1
                    continue
                sequence.append(frame)
    finally:
        cap.release()

    logger.info("Extracted %d frames from %s (%d skipped)", len(sequence), video_path, skipped)
    return sequence.freeze(), fps


def write_reference(
    video_path: str | Path,
    model_path: str | Path,
    out_path: str | Path,
    settings: Settings | None = None,
    compress: bool = True,
) -> PoseSequence:
    """Extract a reference motion from video and persist it as an ideal blob."""
    sequence, _ = extract_sequence(video_path, model_path, settings)
    Path(out_path).write_bytes(serialize(sequence, compress=compress))
    return sequence
