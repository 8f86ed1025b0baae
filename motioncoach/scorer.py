import logging

import numpy as np

from .aligner import progress_axis
from .config import Settings, get_settings
from .errors import NoComparableLandmarksError
from .models import AlignmentMap, ErrorProfile, SegmentScore
from .pose import normalize_sequence
from .sequence import PoseSequence
from .skeleton import CORE_INDICES, CORE_LANDMARKS

logger = logging.getLogger(__name__)


def _quality(error: float, scale: float) -> float:
    return float(np.clip(1.0 - error / scale, 0.0, 1.0))


def _nanmean_rows(values: np.ndarray) -> np.ndarray:
    """Row means ignoring NaN; rows that are all NaN give NaN without warnings."""
    counts = np.sum(~np.isnan(values), axis=-1)
    sums = np.nansum(values, axis=-1)
    out = np.full(counts.shape, np.nan)
    np.divide(sums, counts, out=out, where=counts > 0)
    return out


class ErrorScorer:
    """Per-frame landmark distance between aligned live and ideal frames."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

    def joint_distances(
        self, live: PoseSequence, ideal: PoseSequence, alignment: AlignmentMap
    ) -> np.ndarray:
        """(M, K) Euclidean distances per live frame and core joint; NaN where
        the joint is not comparable or the frame is unmatched."""
        live_pts = normalize_sequence(live.frames, self.settings)[:, CORE_INDICES, :]
        ideal_pts = normalize_sequence(ideal.frames, self.settings)[:, CORE_INDICES, :]
        distances = np.full((len(live), len(CORE_INDICES)), np.nan)
        for li, ii in alignment.pairs():
            distances[li] = np.linalg.norm(live_pts[li] - ideal_pts[ii], axis=-1)
        return distances

    def score(
        self,
        live: PoseSequence,
        ideal: PoseSequence,
        alignment: AlignmentMap,
        error_scale: float | None = None,
    ) -> ErrorProfile:
        scale = self.settings.default_error_scale if error_scale is None else error_scale
        if scale <= 0:
            raise ValueError(f"error_scale must be positive, got {scale}")
        distances = self.joint_distances(live, ideal, alignment)
        frame_errors = _nanmean_rows(distances)

        comparable = ~np.isnan(frame_errors)
        if not comparable.any():
            raise NoComparableLandmarksError(
                f"None of {len(live)} aligned frame pairs share a confident landmark"
            )
        mean_error = float(frame_errors[comparable].mean())

        errors = [None if np.isnan(e) else float(e) for e in frame_errors]
        joint_errors = self._joint_errors(distances)
        profile = ErrorProfile(
            errors=errors,
            progress=progress_axis(len(live)),
            frame_quality=[None if e is None else _quality(e, scale) for e in errors],
            mean_error=mean_error,
            quality=_quality(mean_error, scale),
            error_scale=scale,
            joint_errors=joint_errors,
            problem_joints=self._problem_joints(joint_errors, scale),
            segments=self._segments(distances, frame_errors, alignment, scale),
        )
        logger.info(
            "Scored %d/%d frames: mean error %.4f, quality %.3f",
            profile.comparable_frames, len(live), mean_error, profile.quality,
        )
        return profile

    def _joint_errors(self, distances: np.ndarray) -> dict[str, float]:
        means = _nanmean_rows(distances.T)
        return {
            name: float(value)
            for name, value in zip(CORE_LANDMARKS, means)
            if not np.isnan(value)
        }

    def _problem_joints(self, joint_errors: dict[str, float], scale: float) -> list[str]:
        limit = self.settings.problem_joint_fraction * scale
        flagged = [name for name, err in joint_errors.items() if err > limit]
        return sorted(flagged, key=lambda name: joint_errors[name], reverse=True)

    def _segments(
        self,
        distances: np.ndarray,
        frame_errors: np.ndarray,
        alignment: AlignmentMap,
        scale: float,
    ) -> list[SegmentScore]:
        count = self.settings.segment_count
        progress = np.array(progress_axis(len(frame_errors)))
        bins = np.minimum((progress * count).astype(int), count - 1)

        segments = []
        for k in range(count):
            members = np.flatnonzero(bins == k)
            targets = [alignment.targets[i] for i in members if alignment.targets[i] is not None]
            seg_errors = frame_errors[members]
            seg_errors = seg_errors[~np.isnan(seg_errors)]
            quality = _quality(float(seg_errors.mean()), scale) if len(seg_errors) else None
            problems = (
                self._problem_joints(self._joint_errors(distances[members]), scale)
                if len(members) else []
            )
            segments.append(
                SegmentScore(
                    start_progress=k / count,
                    end_progress=(k + 1) / count,
                    ideal_start=min(targets) if targets else None,
                    ideal_end=max(targets) if targets else None,
                    quality=quality,
                    problem_joints=problems,
                )
            )
        return segments
