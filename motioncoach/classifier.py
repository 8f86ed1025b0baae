import logging
from collections.abc import Mapping

import numpy as np

from .aligner import Aligner, get_aligner
from .catalog import Sport
from .config import Settings, get_settings
from .errors import MotionCoachError
from .models import ClassificationResult, ErrorProfile
from .pose import normalize_sequence
from .scorer import ErrorScorer
from .sequence import PoseSequence
from .session import SessionContext

logger = logging.getLogger(__name__)


def template_key(sport: Sport, label: str) -> str:
    return f"{sport.slug}/{label}"


class TemplateClassifier:
    """Picks the sport action whose reference motion the recording matches best.

    Each action with a template is aligned and scored like a normal session;
    the highest quality wins. Data problems never raise: they degrade to
    "unknown" with zero confidence.
    """

    def __init__(
        self,
        templates: Mapping[str, PoseSequence] | None = None,
        aligner: Aligner | None = None,
        scorer: ErrorScorer | None = None,
        settings: Settings | None = None,
    ):
        self.settings = settings or get_settings()
        self.templates: dict[str, PoseSequence] = dict(templates or {})
        self.aligner = aligner or get_aligner(self.settings)
        self.scorer = scorer or ErrorScorer(self.settings)

    def add_template(self, sport: Sport, label: str, sequence: PoseSequence) -> None:
        sport.action(label)
        self.templates[template_key(sport, label)] = sequence.freeze()

    def _usable(self, sequence: PoseSequence) -> bool:
        if len(sequence) < self.settings.min_frames:
            return False
        points = normalize_sequence(sequence.frames, self.settings)
        usable = (~np.isnan(points).all(axis=(1, 2))).sum()
        return usable >= self.settings.min_frames

    def classify(
        self,
        sequence: PoseSequence,
        context: SessionContext,
        profile: ErrorProfile | None = None,
    ) -> ClassificationResult:
        if not self._usable(sequence):
            logger.info("Sequence of %d frames too poor to classify", len(sequence))
            return ClassificationResult.unknown()

        session_label = context.action.label if context.action is not None else None
        scores: dict[str, float] = {}
        for action in context.sport.actions:
            label = action.label
            if label == session_label and profile is not None:
                scores[label] = profile.quality
                continue
            template = self.templates.get(template_key(context.sport, label))
            if template is None and label == session_label:
                template = context.ideal
            if template is None:
                continue
            try:
                alignment = self.aligner.align(sequence, template)
                scale = self.settings.error_scale_for(label, action.error_scale)
                scores[label] = self.scorer.score(sequence, template, alignment, scale).quality
            except MotionCoachError as e:
                logger.debug("Skipping template %s: %s", label, e)

        if not scores:
            return ClassificationResult.unknown()
        best = max(scores, key=scores.get)
        if scores[best] < self.settings.min_match_quality:
            return ClassificationResult.unknown(confidence=1.0 - scores[best], scores=scores)
        return ClassificationResult(label=best, confidence=scores[best], scores=scores)
