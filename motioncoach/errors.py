class MotionCoachError(Exception):
    """Base class for every error raised by motioncoach."""

    code = "motioncoach_error"


class IncompletePoseError(MotionCoachError):
    """A single frame lacks the landmarks needed to compare it."""

    code = "incomplete_pose"

    def __init__(self, message: str, missing: tuple[str, ...] = ()):
        super().__init__(message)
        self.missing = missing


class FrameOrderError(MotionCoachError):
    code = "frame_order"


class SequenceFrozenError(MotionCoachError):
    code = "sequence_frozen"


class InsufficientFramesError(MotionCoachError):
    """Sequence too short to align."""

    code = "insufficient_frames"

    def __init__(self, message: str, length: int = 0):
        super().__init__(message)
        self.length = length


class DeserializationError(MotionCoachError):
    """Persisted reference sequence is corrupt, missing or of another version."""

    code = "deserialization_failed"


class ReferenceUnavailableError(DeserializationError):
    code = "reference_unavailable"


class NoComparableLandmarksError(MotionCoachError):
    code = "no_comparable_landmarks"


class SessionStateError(MotionCoachError):
    code = "invalid_session_state"
