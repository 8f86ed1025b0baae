import logging
from collections.abc import Iterable, Mapping
from pathlib import Path

from .config import Settings, get_settings
from .errors import (
    DeserializationError,
    FrameOrderError,
    IncompletePoseError,
    SessionStateError,
)
from .models import Landmark, PoseFrame
from .pose import Detection, build_frame
from .sequence import PoseSequence, deserialize, serialize

logger = logging.getLogger(__name__)


class PoseSequenceStore:
    """Holds the live recording and the ideal reference sequence.

    Not thread-safe on its own: a single owner (the recording session)
    serializes every call.
    """

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self._live: PoseSequence | None = None
        self._ideal: PoseSequence | None = None
        self._captured = 0
        self.dropped_frames = 0

    # Live sequence

    @property
    def live(self) -> PoseSequence | None:
        return self._live

    @property
    def recording(self) -> bool:
        return self._live is not None and not self._live.frozen

    def reset(self) -> None:
        """Discard the live recording and open a fresh one."""
        self._live = PoseSequence()
        self._captured = 0
        self.dropped_frames = 0

    def clear(self) -> None:
        """Discard the live recording without opening a new one."""
        self._live = None
        self._captured = 0
        self.dropped_frames = 0

    def append(self, frame: PoseFrame) -> None:
        if not self.recording:
            raise SessionStateError("No recording is open")
        self._live.append(frame)

    def record(
        self,
        detections: Mapping[str, Detection] | Iterable[Landmark],
        timestamp: float,
    ) -> PoseFrame | None:
        """Build a frame from a detection and append it.

        Per-frame problems never escape: the frame is dropped, or replaced by
        the previous frame's landmarks under the ``substitute`` policy.
        Returns the appended frame, or None if it was dropped.
        """
        if not self.recording:
            raise SessionStateError("No recording is open")
        index = self._captured
        self._captured += 1

        try:
            frame = build_frame(detections, timestamp, frame_index=index, settings=self.settings)
        except IncompletePoseError as e:
            frame = self._substitute(index, timestamp)
            if frame is None:
                self.dropped_frames += 1
                logger.debug("Dropped frame %d: %s", index, e)
                return None
            logger.debug("Substituted frame %d: %s", index, e)
        except ValueError as e:
            self.dropped_frames += 1
            logger.warning("Dropped malformed detection %d: %s", index, e)
            return None

        try:
            self._live.append(frame)
        except FrameOrderError as e:
            self.dropped_frames += 1
            logger.warning("Dropped out-of-order frame %d: %s", index, e)
            return None
        return frame

    def _substitute(self, index: int, timestamp: float) -> PoseFrame | None:
        if self.settings.incomplete_frame_policy != "substitute" or not len(self._live):
            return None
        previous = self._live[-1]
        return PoseFrame(frame_index=index, timestamp=timestamp, landmarks=previous.landmarks)

    def freeze(self) -> PoseSequence:
        if not self.recording:
            raise SessionStateError("No recording is open")
        logger.info(
            "Froze live sequence: %d frames, %d dropped", len(self._live), self.dropped_frames
        )
        return self._live.freeze()

    def export_live(self, compress: bool = False) -> bytes:
        if self._live is None or not self._live.frozen:
            raise SessionStateError("Only a frozen recording can be exported")
        return serialize(self._live, compress=compress)

    def promote_live_to_ideal(self) -> bytes:
        """Make the frozen recording the new reference; returns its blob."""
        blob = self.export_live()
        self._ideal = self._live
        logger.info("Promoted live recording (%d frames) to ideal", len(self._ideal))
        return blob

    # Ideal sequence

    @property
    def ideal(self) -> PoseSequence | None:
        return self._ideal

    @property
    def has_ideal(self) -> bool:
        return self._ideal is not None

    def set_ideal(self, sequence: PoseSequence) -> None:
        self._ideal = sequence.freeze()

    def load_ideal(self, blob: bytes) -> PoseSequence:
        """Load the reference sequence; on failure no ideal is available."""
        try:
            sequence = deserialize(blob)
        except DeserializationError as e:
            self._ideal = None
            logger.warning("Ideal sequence unavailable: %s", e)
            raise
        self._ideal = sequence
        logger.info("Loaded ideal sequence with %d frames", len(sequence))
        return sequence

    def load_ideal_file(self, path: str | Path) -> PoseSequence:
        try:
            blob = Path(path).read_bytes()
        except OSError as e:
            self._ideal = None
            logger.warning("Cannot read ideal sequence %s: %s", path, e)
            raise DeserializationError(f"Cannot read {path}: {e}") from e
        return self.load_ideal(blob)
