"""
Pose sequence scoring engine: compares a recorded sports motion with an ideal
reference and classifies the action.

The MediaPipe video extractor lives in ``motioncoach.extractor`` and needs the
``extract`` extra.
"""

from .aligner import DtwAligner, NearestProgressAligner, get_aligner, progress
from .catalog import SPORTS, Action, Sport, get_sport
from .classifier import TemplateClassifier, template_key
from .config import Settings, get_settings
from .engine import ScoringEngine
from .errors import (
    DeserializationError,
    FrameOrderError,
    IncompletePoseError,
    InsufficientFramesError,
    MotionCoachError,
    NoComparableLandmarksError,
    ReferenceUnavailableError,
    SequenceFrozenError,
    SessionStateError,
)
from .models import (
    UNKNOWN_LABEL,
    AlignmentMap,
    ClassificationResult,
    ErrorProfile,
    Landmark,
    OutcomeStatus,
    PoseFrame,
    SegmentScore,
    SessionOutcome,
)
from .pose import build_frame, normalize_frame, normalize_sequence
from .scorer import ErrorScorer
from .sequence import PoseSequence, deserialize, serialize
from .session import (
    SessionContext,
    SessionResultListener,
    SessionState,
    run_scoring,
    score_session,
)
from .store import PoseSequenceStore

__all__ = [
    'NearestProgressAligner',
    'DtwAligner',
    'get_aligner',
    'progress',
    'SPORTS',
    'Action',
    'Sport',
    'get_sport',
    'TemplateClassifier',
    'template_key',
    'Settings',
    'get_settings',
    'ScoringEngine',
    'MotionCoachError',
    'IncompletePoseError',
    'FrameOrderError',
    'SequenceFrozenError',
    'InsufficientFramesError',
    'DeserializationError',
    'ReferenceUnavailableError',
    'NoComparableLandmarksError',
    'SessionStateError',
    'UNKNOWN_LABEL',
    'Landmark',
    'PoseFrame',
    'AlignmentMap',
    'ErrorProfile',
    'SegmentScore',
    'ClassificationResult',
    'OutcomeStatus',
    'SessionOutcome',
    'build_frame',
    'normalize_frame',
    'normalize_sequence',
    'ErrorScorer',
    'PoseSequence',
    'serialize',
    'deserialize',
    'SessionContext',
    'SessionResultListener',
    'SessionState',
    'run_scoring',
    'score_session',
    'PoseSequenceStore',
]

__version__ = "0.1.0"
