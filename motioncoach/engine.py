import logging
import queue
import threading
from collections.abc import Callable, Iterable, Mapping
from pathlib import Path

from .aligner import Aligner, get_aligner
from .catalog import Sport, get_sport
from .classifier import TemplateClassifier
from .config import Settings, get_settings
from .errors import DeserializationError, SessionStateError
from .models import Landmark, OutcomeStatus, SessionOutcome
from .pose import Detection
from .scorer import ErrorScorer
from .sequence import PoseSequence
from .session import (
    ActionClassifier,
    SessionContext,
    SessionResultListener,
    SessionState,
    SessionStateMachine,
    score_session,
)
from .store import PoseSequenceStore

logger = logging.getLogger(__name__)

_STOP = object()
_FRAME = "frame"
_FREEZE = "freeze"

IdealLoadedCallback = Callable[[PoseSequence | None, Exception | None], None]


class ScoringEngine:
    """Runs recording sessions off the caller's thread.

    A long-lived capture worker applies detections to the store in arrival
    order; each stopped recording is scored by a one-shot background task.
    Results reach ``listener`` tagged with their session id; results of a
    session that was reset or superseded are discarded.
    """

    def __init__(
        self,
        listener: SessionResultListener,
        settings: Settings | None = None,
        store: PoseSequenceStore | None = None,
        aligner: Aligner | None = None,
        scorer: ErrorScorer | None = None,
        classifier: ActionClassifier | None = None,
    ):
        self.settings = settings or get_settings()
        self.listener = listener
        self.store = store or PoseSequenceStore(self.settings)
        self.aligner = aligner or get_aligner(self.settings)
        self.scorer = scorer or ErrorScorer(self.settings)
        self.classifier = classifier or TemplateClassifier(
            aligner=self.aligner, scorer=self.scorer, settings=self.settings
        )

        self._lock = threading.RLock()
        self._machine = SessionStateMachine()
        self._session_id = 0
        self._sport: Sport | None = None
        self._action = None
        self._stopping = False
        self._closed = False
        self._tasks: set[threading.Thread] = set()
        self.last_outcome: SessionOutcome | None = None

        # Unbounded so the freeze marker always fits; submit() enforces the frame limit.
        self._queue: queue.Queue = queue.Queue()
        self.dropped_submissions = 0
        self._worker = threading.Thread(target=self._capture_loop, name="motioncoach-capture", daemon=True)
        self._worker.start()

    @property
    def state(self) -> SessionState:
        with self._lock:
            return self._machine.state

    @property
    def session_id(self) -> int:
        with self._lock:
            return self._session_id

    @property
    def scoring_enabled(self) -> bool:
        return self.store.has_ideal

    # Recording

    def start_recording(self, sport: Sport | str = "create", action: str | None = None) -> int:
        """Open a new session and return its id.

        Any earlier session is cancelled; its pending result will be dropped.
        """
        sport = sport if isinstance(sport, Sport) else get_sport(sport)
        chosen = sport.action(action) if action is not None else sport.actions[0]
        with self._lock:
            if self._closed:
                raise SessionStateError("Engine is closed")
            if self._machine.state != SessionState.IDLE:
                self._reset_locked()
            self._session_id += 1
            self._sport, self._action = sport, chosen
            self._stopping = False
            self.store.reset()
            self._machine.transition(SessionState.RECORDING)
            logger.info("Session %d recording %s/%s", self._session_id, sport.slug, chosen.label)
            return self._session_id

    def submit(
        self,
        detections: Mapping[str, Detection] | Iterable[Landmark],
        timestamp: float,
    ) -> bool:
        """Queue one frame's detections without blocking.

        Returns False if no recording is accepting frames or the capture queue
        is at ``capture_queue_size``; the frame is then dropped.
        """
        limit = self.settings.capture_queue_size
        with self._lock:
            if self._closed or self._machine.state != SessionState.RECORDING or self._stopping:
                return False
            if limit and self._queue.qsize() >= limit:
                self.dropped_submissions += 1
                logger.warning("Capture queue full, dropped frame at t=%s", timestamp)
                return False
            session_id = self._session_id
            self._queue.put_nowait((_FRAME, session_id, detections, timestamp))
        return True

    def stop_recording(self) -> int:
        """Stop capture; scoring starts once every queued frame is applied."""
        with self._lock:
            if self._closed:
                raise SessionStateError("Engine is closed")
            if self._machine.state != SessionState.RECORDING or self._stopping:
                raise SessionStateError("No recording in progress")
            self._stopping = True
            session_id = self._session_id
            self._queue.put_nowait((_FREEZE, session_id, None, None))
        return session_id

    def reset(self) -> None:
        """Cancel whatever the current session is doing and go back to Idle."""
        with self._lock:
            self._reset_locked()

    def _reset_locked(self) -> None:
        logger.info("Session %d reset from %s", self._session_id, self._machine.state.value)
        # Bumping the id invalidates queued frames and in-flight scoring.
        self._session_id += 1
        self._stopping = False
        self.store.clear()
        self.last_outcome = None
        self._machine.reset()

    # Reference sequence

    def load_ideal(self, blob: bytes) -> PoseSequence:
        with self._lock:
            return self.store.load_ideal(blob)

    def load_ideal_file(self, path: str | Path) -> PoseSequence:
        with self._lock:
            return self.store.load_ideal_file(path)

    def load_ideal_async(self, blob: bytes, on_done: IdealLoadedCallback | None = None) -> None:
        self._spawn(self._load_ideal_task, blob, on_done)

    def _load_ideal_task(self, blob: bytes, on_done: IdealLoadedCallback | None) -> None:
        try:
            sequence = self.load_ideal(blob)
        except DeserializationError as e:
            if on_done is not None:
                on_done(None, e)
            return
        if on_done is not None:
            on_done(sequence, None)

    def promote_live_to_ideal(self) -> bytes:
        with self._lock:
            return self.store.promote_live_to_ideal()

    # Workers

    def _capture_loop(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                self._handle(*item)
            except Exception:
                logger.exception("Capture worker failed on %s", item[0])
            finally:
                self._queue.task_done()

    def _handle(self, kind: str, session_id: int, detections, timestamp) -> None:
        with self._lock:
            if session_id != self._session_id or not self.store.recording:
                logger.debug("Ignoring %s for stale session %d", kind, session_id)
                return
            if kind == _FRAME:
                self.store.record(detections, timestamp)
                return
            live = self.store.freeze()
            self._machine.transition(SessionState.FROZEN)
            context = SessionContext(
                session_id=session_id,
                sport=self._sport,
                action=self._action,
                live=live,
                ideal=self.store.ideal,
                settings=self.settings,
            )
        self._spawn(self._score_task, context)

    def _score_task(self, context: SessionContext) -> None:
        try:
            outcome = score_session(context, self.aligner, self.scorer, self.classifier)
        except Exception as e:
            logger.exception("Scoring crashed for session %d", context.session_id)
            outcome = SessionOutcome(
                session_id=context.session_id,
                status=OutcomeStatus.ERROR,
                message=str(e),
                error="internal_error",
            )
        self._deliver(outcome)

    def _deliver(self, outcome: SessionOutcome) -> None:
        # Delivery happens under the lock so a reset cannot slip in between
        # the session check and the callback.
        with self._lock:
            if outcome.session_id != self._session_id:
                logger.warning("Discarding result of stale session %d", outcome.session_id)
                return
            if outcome.ok:
                self._machine.transition(SessionState.SCORED)
            else:
                self._machine.transition(SessionState.IDLE)
            self.last_outcome = outcome
            try:
                self.listener.on_session_complete(outcome)
            except Exception:
                logger.exception("Result listener failed for session %d", outcome.session_id)

    def _spawn(self, target: Callable, *args) -> None:
        thread = threading.Thread(target=self._run_task, args=(target, *args), daemon=True)
        with self._lock:
            self._tasks.add(thread)
        thread.start()

    def _run_task(self, target: Callable, *args) -> None:
        try:
            target(*args)
        except Exception:
            logger.exception("Background task %s failed", getattr(target, "__name__", target))
        finally:
            with self._lock:
                self._tasks.discard(threading.current_thread())

    # Lifecycle

    def flush(self, timeout: float | None = None) -> None:
        """Wait until queued frames are applied and background tasks finish.

        Raises SessionStateError when called from a listener or another engine
        thread, which would otherwise wait on itself.
        """
        current = threading.current_thread()
        with self._lock:
            if current is self._worker or current in self._tasks:
                raise SessionStateError("flush() cannot be called from an engine thread")
        self._queue.join()
        while True:
            with self._lock:
                pending = list(self._tasks)
            if not pending:
                return
            for thread in pending:
                thread.join(timeout)
                if thread.is_alive():
                    return

    def close(self, timeout: float | None = None) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._queue.put(_STOP)
        self._worker.join(timeout)
        self.flush(timeout)

    def __enter__(self) -> "ScoringEngine":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
