import gzip
import logging
import math
from collections.abc import Iterable, Iterator
from typing import Literal

from pydantic import BaseModel, ValidationError

from .errors import DeserializationError, FrameOrderError, SequenceFrozenError
from .models import PoseFrame

logger = logging.getLogger(__name__)

FORMAT_TAG = "motioncoach.pose-sequence"
FORMAT_VERSION = 1
_GZIP_MAGIC = b"\x1f\x8b"


class PoseSequence:
    """Ordered, append-only recording of PoseFrames.

    Timestamps must strictly increase. Once frozen the sequence is read-only
    and may be shared between threads.
    """

    def __init__(self, frames: Iterable[PoseFrame] = (), frozen: bool = False):
        self._frames: list[PoseFrame] = []
        self._frozen = False
        for frame in frames:
            self.append(frame)
        self._frozen = frozen

    def append(self, frame: PoseFrame) -> None:
        if self._frozen:
            raise SequenceFrozenError("Cannot append to a frozen sequence")
        # model_copy(update=...) skips validation, so check again here
        if not math.isfinite(frame.timestamp):
            raise FrameOrderError(f"Frame timestamp {frame.timestamp} is not finite")
        if self._frames and frame.timestamp <= self._frames[-1].timestamp:
            raise FrameOrderError(
                f"Frame at t={frame.timestamp} does not follow t={self._frames[-1].timestamp}"
            )
        self._frames.append(frame)

    def freeze(self) -> "PoseSequence":
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def frames(self) -> tuple[PoseFrame, ...]:
        return tuple(self._frames)

    @property
    def duration(self) -> float:
        if len(self._frames) < 2:
            return 0.0
        return self._frames[-1].timestamp - self._frames[0].timestamp

    def __len__(self) -> int:
        return len(self._frames)

    def __iter__(self) -> Iterator[PoseFrame]:
        return iter(self._frames)

    def __getitem__(self, index: int) -> PoseFrame:
        return self._frames[index]

    def __eq__(self, other) -> bool:
        if not isinstance(other, PoseSequence):
            return NotImplemented
        return self._frames == other._frames

    def __repr__(self) -> str:
        state = "frozen" if self._frozen else "open"
        return f"PoseSequence({len(self._frames)} frames, {state})"


class _SequenceEnvelope(BaseModel):
    format: Literal["motioncoach.pose-sequence"]
    version: int
    frames: list[PoseFrame]


def serialize(sequence: PoseSequence, compress: bool = False) -> bytes:
    envelope = _SequenceEnvelope(format=FORMAT_TAG, version=FORMAT_VERSION, frames=list(sequence))
    data = envelope.model_dump_json(exclude_none=True).encode("utf-8")
    if compress:
        data = gzip.compress(data)
    return data


def deserialize(blob: bytes) -> PoseSequence:
    """Decode a blob written by :func:`serialize` into a frozen sequence."""
    if not blob:
        raise DeserializationError("Empty sequence blob")
    if blob[:2] == _GZIP_MAGIC:
        try:
            blob = gzip.decompress(blob)
        except (OSError, EOFError) as e:
            raise DeserializationError(f"Corrupt compressed sequence: {e}") from e

    try:
        envelope = _SequenceEnvelope.model_validate_json(blob)
    except ValidationError as e:
        raise DeserializationError(f"Malformed sequence blob: {e.error_count()} validation error(s)") from e
    if envelope.version != FORMAT_VERSION:
        raise DeserializationError(
            f"Unsupported sequence version {envelope.version}, expected {FORMAT_VERSION}"
        )
    if not envelope.frames:
        raise DeserializationError("Sequence blob contains no frames")

    try:
        sequence = PoseSequence(envelope.frames, frozen=True)
    except FrameOrderError as e:
        raise DeserializationError(f"Sequence frames out of order: {e}") from e
    logger.debug("Deserialized sequence with %d frames", len(sequence))
    return sequence
