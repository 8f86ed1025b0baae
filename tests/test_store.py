import pytest

from motioncoach.errors import DeserializationError, SessionStateError
from motioncoach.sequence import serialize
from motioncoach.store import PoseSequenceStore

from poses import pose_at


@pytest.fixture
def store(settings):
    return PoseSequenceStore(settings)


def test_append_requires_open_recording(store, make_frame):
    with pytest.raises(SessionStateError):
        store.append(make_frame())
    store.reset()
    store.append(make_frame())
    assert len(store.live) == 1


def test_record_builds_frames_in_order(store):
    store.reset()
    for i in range(3):
        frame = store.record(pose_at(i / 2), timestamp=i * 0.1)
        assert frame.frame_index == i
    assert [f.timestamp for f in store.live] == pytest.approx([0.0, 0.1, 0.2])


def test_incomplete_frame_is_dropped(store):
    store.reset()
    store.record(pose_at(), 0.0)
    assert store.record(pose_at(confidence=0.0), 0.1) is None
    store.record(pose_at(), 0.2)
    assert len(store.live) == 2
    assert store.dropped_frames == 1


def test_incomplete_frame_is_substituted(settings):
    store = PoseSequenceStore(settings.model_copy(update={"incomplete_frame_policy": "substitute"}))
    store.reset()
    first = store.record(pose_at(0.5), 0.0)
    substitute = store.record(pose_at(confidence=0.0), 0.1)
    assert substitute.timestamp == 0.1
    assert substitute.landmarks == first.landmarks
    assert store.dropped_frames == 0


def test_substitute_without_previous_frame_drops(settings):
    store = PoseSequenceStore(settings.model_copy(update={"incomplete_frame_policy": "substitute"}))
    store.reset()
    assert store.record(pose_at(confidence=0.0), 0.0) is None
    assert store.dropped_frames == 1


def test_out_of_order_and_malformed_frames_are_dropped(store):
    store.reset()
    store.record(pose_at(), 1.0)
    assert store.record(pose_at(), 0.5) is None
    assert store.record({"left_hip": (0.1, 0.2)}, 2.0) is None
    assert len(store.live) == 1
    assert store.dropped_frames == 2


def test_non_finite_detections_are_dropped(store):
    store.reset()
    store.record(pose_at(), 1.0)
    assert store.record(pose_at(), float("nan")) is None
    assert store.record(pose_at(), float("inf")) is None
    nan_wrist = dict(pose_at(), right_wrist=(float("nan"), 0.5, 0.9))
    assert store.record(nan_wrist, 2.0) is None
    assert store.record(pose_at(), 0.5) is None
    store.record(pose_at(), 3.0)
    assert [f.timestamp for f in store.live] == [1.0, 3.0]
    assert store.dropped_frames == 4
    store.freeze()
    assert store.load_ideal(store.export_live()) == store.live


def test_reset_mid_recording_discards_frames(store):
    store.reset()
    for i in range(5):
        store.record(pose_at(), i * 0.1)
    store.reset()
    store.record(pose_at(), 10.0)
    live = store.freeze()
    assert len(live) == 1
    assert live[0].timestamp == 10.0


def test_freeze_closes_recording(store):
    store.reset()
    store.record(pose_at(), 0.0)
    store.freeze()
    assert not store.recording
    with pytest.raises(SessionStateError):
        store.record(pose_at(), 1.0)
    with pytest.raises(SessionStateError):
        store.freeze()


def test_clear_leaves_no_recording(store):
    store.reset()
    store.clear()
    assert store.live is None
    with pytest.raises(SessionStateError):
        store.record(pose_at(), 0.0)


def test_load_ideal(store, make_sequence):
    ideal = make_sequence(5)
    loaded = store.load_ideal(serialize(ideal))
    assert loaded == ideal
    assert store.has_ideal


def test_bad_ideal_disables_scoring(store, make_sequence):
    store.load_ideal(serialize(make_sequence(5)))
    with pytest.raises(DeserializationError):
        store.load_ideal(b"corrupt")
    assert not store.has_ideal


def test_load_ideal_file(store, make_sequence, tmp_path):
    path = tmp_path / "vball-ideal.bin"
    path.write_bytes(serialize(make_sequence(4), compress=True))
    assert len(store.load_ideal_file(path)) == 4
    with pytest.raises(DeserializationError):
        store.load_ideal_file(tmp_path / "missing.bin")
    assert not store.has_ideal


def test_promote_live_to_ideal(store):
    store.reset()
    with pytest.raises(SessionStateError):
        store.export_live()
    for i in range(3):
        store.record(pose_at(i / 2), i * 0.1)
    store.freeze()
    blob = store.promote_live_to_ideal()
    assert store.ideal is store.live
    other = PoseSequenceStore(store.settings)
    assert other.load_ideal(blob) == store.ideal
