import pytest

from motioncoach.config import Settings
from motioncoach.pose import build_frame
from motioncoach.sequence import PoseSequence

from poses import pose_at


@pytest.fixture
def settings():
    return Settings(_env_file=None)


@pytest.fixture
def make_frame(settings):
    def _make(phase=0.0, timestamp=0.0, index=0, **kwargs):
        return build_frame(pose_at(phase, **kwargs), timestamp, frame_index=index, settings=settings)
    return _make


@pytest.fixture
def make_sequence(make_frame):
    def _make(n, lift=0.3, fps=30.0, phases=None, frozen=True, **kwargs):
        if phases is None:
            phases = [i / (n - 1) if n > 1 else 0.0 for i in range(n)]
        seq = PoseSequence(
            make_frame(p, timestamp=i / fps, index=i, lift=lift, **kwargs)
            for i, p in enumerate(phases)
        )
        return seq.freeze() if frozen else seq
    return _make
