import pytest

from motioncoach.catalog import SPORTS, get_sport, slugify
from motioncoach.classifier import TemplateClassifier, template_key
from motioncoach.models import UNKNOWN_LABEL, ErrorProfile, PoseFrame
from motioncoach.sequence import PoseSequence
from motioncoach.session import SessionContext


def _context(settings, sport="volleyball", action="spike", live=None, ideal=None):
    sport = get_sport(sport)
    return SessionContext(
        session_id=1,
        sport=sport,
        action=sport.action(action) if action else None,
        live=live or PoseSequence().freeze(),
        ideal=ideal,
        settings=settings,
    )


def test_catalog_vocabulary():
    volleyball = get_sport("Volleyball")
    assert volleyball.vocabulary() == ["spike", "volley", UNKNOWN_LABEL]
    assert get_sport("basketball").action("jump-shot").name == "Jump Shot"
    assert slugify("Custom motion") == "custom-motion"
    assert {s.slug for s in SPORTS} >= {"create", "golf", "hockey"}
    with pytest.raises(KeyError):
        get_sport("curling")
    with pytest.raises(KeyError):
        volleyball.action("serve")


def test_error_scale_override(settings):
    ctx = _context(settings)
    assert ctx.error_scale == get_sport("volleyball").action("spike").error_scale
    tuned = settings.model_copy(update={"error_scales": {"spike": 2.5}})
    assert _context(tuned).error_scale == 2.5
    assert _context(settings, action=None).error_scale == settings.default_error_scale


@pytest.fixture
def volleyball_classifier(settings, make_sequence):
    # spike raises the arm fully, volley barely moves it
    classifier = TemplateClassifier(settings=settings)
    sport = get_sport("volleyball")
    classifier.add_template(sport, "spike", make_sequence(30, lift=0.3))
    classifier.add_template(sport, "volley", make_sequence(30, lift=0.0))
    return classifier


def test_picks_best_matching_template(volleyball_classifier, settings, make_sequence):
    live = make_sequence(18, lift=0.3)
    result = volleyball_classifier.classify(live, _context(settings, live=live))
    assert result.label == "spike"
    assert result.confidence > 0.95
    assert set(result.scores) == {"spike", "volley"}

    still = make_sequence(18, lift=0.0)
    result = volleyball_classifier.classify(still, _context(settings, live=still))
    assert result.label == "volley"


def test_label_is_in_sport_vocabulary(volleyball_classifier, settings, make_sequence):
    live = make_sequence(10, lift=0.15)
    result = volleyball_classifier.classify(live, _context(settings, live=live))
    assert result.label in get_sport("volleyball").vocabulary()
    assert 0.0 <= result.confidence <= 1.0


def test_poor_match_is_unknown(settings, make_sequence):
    strict = settings.model_copy(update={"min_match_quality": 0.99})
    classifier = TemplateClassifier(settings=strict)
    classifier.add_template(get_sport("volleyball"), "spike", make_sequence(10, lift=0.3))
    live = make_sequence(10, lift=-0.3)
    result = classifier.classify(live, _context(strict, live=live))
    assert result.is_unknown
    assert result.confidence == pytest.approx(1.0 - result.scores["spike"])


@pytest.mark.parametrize("length", [0, 1])
def test_too_short_is_unknown(volleyball_classifier, settings, make_sequence, length):
    live = make_sequence(length) if length else PoseSequence().freeze()
    result = volleyball_classifier.classify(live, _context(settings, live=live))
    assert result.label == UNKNOWN_LABEL
    assert result.confidence == 0.0


def test_unconfident_sequence_is_unknown(volleyball_classifier, settings, make_sequence):
    frames = [
        PoseFrame(
            frame_index=f.frame_index,
            timestamp=f.timestamp,
            landmarks=tuple(lm.model_copy(update={"confidence": 0.1}) for lm in f.landmarks),
        )
        for f in make_sequence(6)
    ]
    live = PoseSequence(frames).freeze()
    result = volleyball_classifier.classify(live, _context(settings, live=live))
    assert result == result.unknown()


def test_no_templates_falls_back_to_session_ideal(settings, make_sequence):
    ideal = make_sequence(20)
    live = make_sequence(8)
    result = TemplateClassifier(settings=settings).classify(
        live, _context(settings, live=live, ideal=ideal)
    )
    assert result.label == "spike"

    result = TemplateClassifier(settings=settings).classify(live, _context(settings, live=live))
    assert result.is_unknown
    assert result.confidence == 0.0


def test_reuses_session_profile(volleyball_classifier, settings, make_sequence):
    live = make_sequence(8, lift=0.0)
    profile = ErrorProfile(
        errors=[0.0] * 8, progress=[i / 7 for i in range(8)], frame_quality=[1.0] * 8,
        mean_error=0.0, quality=1.0, error_scale=1.0,
    )
    result = volleyball_classifier.classify(live, _context(settings, live=live), profile)
    assert result.scores["spike"] == 1.0


def test_template_keys_are_per_sport(settings, make_sequence):
    classifier = TemplateClassifier(settings=settings)
    classifier.add_template(get_sport("golf"), "swing", make_sequence(5))
    assert template_key(get_sport("golf"), "swing") in classifier.templates
    assert template_key(get_sport("baseball"), "swing") not in classifier.templates
    with pytest.raises(KeyError):
        classifier.add_template(get_sport("golf"), "putt", make_sequence(5))
