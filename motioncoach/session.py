import logging
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from .aligner import Aligner
from .catalog import Action, Sport
from .config import Settings
from .errors import (
    MotionCoachError,
    NoComparableLandmarksError,
    ReferenceUnavailableError,
    SessionStateError,
)
from .models import ClassificationResult, ErrorProfile, OutcomeStatus, SessionOutcome
from .scorer import ErrorScorer
from .sequence import PoseSequence

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    FROZEN = "frozen"
    SCORED = "scored"


_TRANSITIONS = {
    SessionState.IDLE: {SessionState.RECORDING},
    SessionState.RECORDING: {SessionState.FROZEN},
    # Frozen falls back to Idle when scoring fails
    SessionState.FROZEN: {SessionState.SCORED, SessionState.IDLE},
    SessionState.SCORED: {SessionState.IDLE},
}


class SessionStateMachine:
    """Idle -> Recording -> Frozen -> Scored -> Idle; reset() from anywhere."""

    def __init__(self):
        self.state = SessionState.IDLE

    def transition(self, target: SessionState) -> None:
        if target not in _TRANSITIONS[self.state]:
            raise SessionStateError(f"Cannot go from {self.state.value} to {target.value}")
        logger.debug("Session state %s -> %s", self.state.value, target.value)
        self.state = target

    def reset(self) -> None:
        self.state = SessionState.IDLE


@dataclass(frozen=True)
class SessionContext:
    """Everything one scoring pass needs, captured when recording stops."""

    session_id: int
    sport: Sport
    action: Action | None
    live: PoseSequence
    ideal: PoseSequence | None
    settings: Settings

    @property
    def error_scale(self) -> float:
        if self.action is None:
            return self.settings.default_error_scale
        return self.settings.error_scale_for(self.action.label, self.action.error_scale)


class SessionResultListener(Protocol):
    """Receives exactly one outcome per completed session.

    Called from a background thread while the engine lock is held;
    implementations hand the outcome over to their own thread and return
    quickly. Calling ``ScoringEngine.flush()`` from here raises
    SessionStateError.
    """

    def on_session_complete(self, outcome: SessionOutcome) -> None: ...


class ActionClassifier(Protocol):
    def classify(
        self,
        sequence: PoseSequence,
        context: SessionContext,
        profile: ErrorProfile | None = None,
    ) -> ClassificationResult: ...


def run_scoring(
    context: SessionContext,
    aligner: Aligner,
    scorer: ErrorScorer,
    classifier: ActionClassifier,
) -> tuple[ErrorProfile | None, ClassificationResult]:
    """Align, score and classify a frozen recording.

    Raises ReferenceUnavailableError or InsufficientFramesError; an entirely
    uncomparable recording yields no profile and an "unknown" label.
    """
    if context.ideal is None:
        raise ReferenceUnavailableError("No ideal sequence is loaded")

    alignment = aligner.align(context.live, context.ideal)
    try:
        profile = scorer.score(context.live, context.ideal, alignment, context.error_scale)
    except NoComparableLandmarksError as e:
        logger.warning("Session %d: %s", context.session_id, e)
        return None, ClassificationResult.unknown()

    classification = classifier.classify(context.live, context, profile)
    return profile, classification


def score_session(
    context: SessionContext,
    aligner: Aligner,
    scorer: ErrorScorer,
    classifier: ActionClassifier,
) -> SessionOutcome:
    try:
        profile, classification = run_scoring(context, aligner, scorer, classifier)
    except MotionCoachError as e:
        logger.warning("Session %d failed: %s", context.session_id, e)
        return SessionOutcome(
            session_id=context.session_id,
            status=OutcomeStatus.ERROR,
            message=str(e),
            error=e.code,
        )

    message = "Done" if profile is not None else "No comparable landmarks"
    logger.info(
        "Session %d scored: label=%s confidence=%.2f",
        context.session_id, classification.label, classification.confidence,
    )
    return SessionOutcome(
        session_id=context.session_id,
        status=OutcomeStatus.COMPLETE,
        message=message,
        profile=profile,
        classification=classification,
    )
