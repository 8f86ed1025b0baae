import logging
from typing import Protocol

import numpy as np
from dtw import dtw

from .config import Settings, get_settings
from .errors import InsufficientFramesError
from .models import AlignmentMap
from .pose import normalize_sequence
from .sequence import PoseSequence
from .skeleton import CORE_INDICES

logger = logging.getLogger(__name__)


def progress(index: int, length: int) -> float:
    """Position of frame ``index`` on the shared [0, 1] progress axis."""
    if length <= 1:
        return 0.0
    return index / (length - 1)


def progress_axis(length: int) -> list[float]:
    return [progress(i, length) for i in range(length)]


def _check_length(sequence: PoseSequence, role: str, min_frames: int) -> None:
    if len(sequence) < min_frames:
        raise InsufficientFramesError(
            f"{role} sequence has {len(sequence)} frame(s), need at least {min_frames}",
            length=len(sequence),
        )


class Aligner(Protocol):
    method: str

    def align(self, live: PoseSequence, ideal: PoseSequence) -> AlignmentMap: ...


class NearestProgressAligner:
    """Maps each live frame to the ideal frame nearest on the progress axis.

    Linear and monotonic. It assumes both recordings move at a near-constant
    relative speed and does not correct local speed changes.
    """

    method = "nearest"

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

    def align(self, live: PoseSequence, ideal: PoseSequence) -> AlignmentMap:
        _check_length(live, "Live", self.settings.min_frames)
        _check_length(ideal, "Ideal", self.settings.min_frames)
        m, n = len(live), len(ideal)
        num_scale, den = n - 1, m - 1
        # nearest ideal index for i * (n-1) / (m-1), ties go to the lower index
        targets = tuple(-((den - 2 * i * num_scale) // (2 * den)) for i in range(m))
        return AlignmentMap(targets=targets, ideal_length=n, method=self.method)


class DtwAligner:
    """Dynamic time warping over normalized core-joint coordinates.

    Follows local speed changes; each live frame maps to the first ideal frame
    it is warped onto. With ``open_end`` the live recording may match just a
    prefix of the ideal, so a partial attempt is scored against the part of
    the motion it actually covers.
    """

    def __init__(self, settings: Settings | None = None, open_end: bool = False):
        self.settings = settings or get_settings()
        self.open_end = open_end
        self.method = "dtw_open_end" if open_end else "dtw"

    def _features(self, sequence: PoseSequence) -> np.ndarray:
        points = normalize_sequence(sequence.frames, self.settings)[:, CORE_INDICES, :]
        return np.nan_to_num(points.reshape(len(sequence), -1), nan=0.0)

    def align(self, live: PoseSequence, ideal: PoseSequence) -> AlignmentMap:
        _check_length(live, "Live", self.settings.min_frames)
        _check_length(ideal, "Ideal", self.settings.min_frames)
        # asymmetric steps visit every live frame exactly once
        extra = {"step_pattern": "asymmetric", "open_end": True} if self.open_end else {}
        alignment = dtw(self._features(live), self._features(ideal), dist_method="euclidean", **extra)

        targets: list[int | None] = [None] * len(live)
        for li, ii in zip(alignment.index1.tolist(), alignment.index2.tolist()):
            if targets[li] is None:
                targets[li] = ii
        logger.debug("DTW alignment distance %.4f", alignment.distance)
        return AlignmentMap(targets=tuple(targets), ideal_length=len(ideal), method=self.method)


def get_aligner(settings: Settings | None = None) -> Aligner:
    settings = settings or get_settings()
    if settings.alignment_method == "dtw":
        return DtwAligner(settings)
    if settings.alignment_method == "dtw_open_end":
        return DtwAligner(settings, open_end=True)
    return NearestProgressAligner(settings)
