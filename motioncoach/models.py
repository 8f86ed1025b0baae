from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, FiniteFloat, field_validator, model_validator

from .skeleton import is_known

UNKNOWN_LABEL = "unknown"


class Landmark(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    x: FiniteFloat
    y: FiniteFloat
    z: FiniteFloat | None = None
    confidence: float = Field(ge=0.0, le=1.0, allow_inf_nan=False)

    @field_validator("name")
    @classmethod
    def _known_name(cls, value: str) -> str:
        if not is_known(value):
            raise ValueError(f"Unknown landmark: {value!r}")
        return value


class PoseFrame(BaseModel):
    model_config = ConfigDict(frozen=True)

    frame_index: int = Field(0, ge=0)
    timestamp: FiniteFloat
    landmarks: tuple[Landmark, ...]

    @field_validator("landmarks")
    @classmethod
    def _unique_names(cls, value: tuple[Landmark, ...]) -> tuple[Landmark, ...]:
        names = [lm.name for lm in value]
        if len(names) != len(set(names)):
            raise ValueError("Duplicate landmark names in frame")
        return value

    def get(self, name: str) -> Landmark | None:
        for lm in self.landmarks:
            if lm.name == name:
                return lm
        return None

    def confident(self, threshold: float) -> list[str]:
        """Names of landmarks whose confidence clears ``threshold``."""
        return [lm.name for lm in self.landmarks if lm.confidence >= threshold]


class AlignmentMap(BaseModel):
    model_config = ConfigDict(frozen=True)

    targets: tuple[int | None, ...]  # live index -> ideal index, None = unmatched
    ideal_length: int = Field(ge=0)
    method: str = "nearest"

    @model_validator(mode="after")
    def _monotonic(self) -> "AlignmentMap":
        last = -1
        for target in self.targets:
            if target is None:
                continue
            if not 0 <= target < self.ideal_length:
                raise ValueError(f"Alignment target {target} out of range")
            if target < last:
                raise ValueError("Alignment must be monotonically non-decreasing")
            last = target
        return self

    @property
    def live_length(self) -> int:
        return len(self.targets)

    def pairs(self) -> list[tuple[int, int]]:
        return [(i, t) for i, t in enumerate(self.targets) if t is not None]


class SegmentScore(BaseModel):
    start_progress: float
    end_progress: float
    ideal_start: int | None  # ideal frame range the segment was matched to
    ideal_end: int | None
    quality: float | None
    problem_joints: list[str]


class ErrorProfile(BaseModel):
    errors: list[float | None]          # per live frame, None = uncomparable
    progress: list[float]               # per live frame, in [0, 1]
    frame_quality: list[float | None]   # per live frame, 1 - error / scale
    mean_error: float
    quality: float = Field(ge=0.0, le=1.0)
    error_scale: float
    joint_errors: dict[str, float] = Field(default_factory=dict)
    problem_joints: list[str] = Field(default_factory=list)
    segments: list[SegmentScore] = Field(default_factory=list)

    @property
    def comparable_frames(self) -> int:
        return sum(1 for e in self.errors if e is not None)

    def chart_points(self, width: float = 100.0) -> list[tuple[float, float]]:
        """(x, quality) pairs for a line chart whose x axis spans ``width``."""
        return [
            (p * width, q)
            for p, q in zip(self.progress, self.frame_quality)
            if q is not None
        ]


class ClassificationResult(BaseModel):
    label: str
    confidence: float = Field(ge=0.0, le=1.0, allow_inf_nan=False)
    scores: dict[str, float] = Field(default_factory=dict)

    @classmethod
    def unknown(cls, confidence: float = 0.0, scores: dict[str, float] | None = None) -> "ClassificationResult":
        return cls(label=UNKNOWN_LABEL, confidence=confidence, scores=scores or {})

    @property
    def is_unknown(self) -> bool:
        return self.label == UNKNOWN_LABEL


class OutcomeStatus(str, Enum):
    COMPLETE = "complete"
    ERROR = "error"


class SessionOutcome(BaseModel):
    session_id: int
    status: OutcomeStatus
    message: str = ""
    error: str | None = None  # MotionCoachError.code on failure
    profile: ErrorProfile | None = None
    classification: ClassificationResult | None = None

    @property
    def ok(self) -> bool:
        return self.status == OutcomeStatus.COMPLETE
