from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .skeleton import TORSO_LANDMARKS, is_known


class Settings(BaseSettings):
    """Tunables for frame validation, alignment, scoring and classification.

    Every field can be overridden with a ``MOTIONCOACH_`` environment variable,
    e.g. ``MOTIONCOACH_CONFIDENCE_THRESHOLD=0.6``.
    """

    model_config = SettingsConfigDict(
        env_prefix="MOTIONCOACH_",
        env_file=".env",
        extra="ignore",
    )

    # Pose frames
    confidence_threshold: float = Field(0.5, ge=0.0, le=1.0)
    required_landmarks: tuple[str, ...] = TORSO_LANDMARKS
    min_confident_landmarks: int = Field(4, ge=1)
    use_depth: bool = False
    incomplete_frame_policy: Literal["drop", "substitute"] = "drop"

    # Alignment
    min_frames: int = Field(2, ge=2)
    alignment_method: Literal["nearest", "dtw", "dtw_open_end"] = "nearest"

    # Scoring
    default_error_scale: float = Field(1.0, gt=0.0)
    error_scales: dict[str, float] = Field(default_factory=dict)
    problem_joint_fraction: float = Field(0.35, gt=0.0)
    segment_count: int = Field(4, ge=1)

    # Classification
    min_match_quality: float = Field(0.5, ge=0.0, le=1.0)

    # Engine
    capture_queue_size: int = Field(0, ge=0)

    @field_validator("required_landmarks")
    @classmethod
    def _known_landmarks(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        unknown = [name for name in value if not is_known(name)]
        if unknown:
            raise ValueError(f"Unknown landmarks: {unknown}")
        return value

    @field_validator("error_scales")
    @classmethod
    def _positive_scales(cls, value: dict[str, float]) -> dict[str, float]:
        for label, scale in value.items():
            if scale <= 0:
                raise ValueError(f"Error scale for {label!r} must be positive")
        return value

    def error_scale_for(self, label: str | None, fallback: float | None = None) -> float:
        """Scale for an action: explicit override, then catalog value, then default."""
        if label is not None and label in self.error_scales:
            return self.error_scales[label]
        if fallback is not None:
            return fallback
        return self.default_error_scale


@lru_cache
def get_settings() -> Settings:
    return Settings()
