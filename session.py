"""Session controller: owns the one current artifact and the single-flight
generation flag, and sequences validation, synthesis and refinement."""

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, replace
from enum import Enum

from errors import GenerationFailure, InvalidInstruction, SessionBusy, ValidationRejected
from uploads import UNREADABLE_REASON, prepare_image
from validator import Rejected, UnsupportedDesignFile, classify

logger = logging.getLogger(__name__)


class SessionState(Enum):
    IDLE = "idle"
    UPLOADING = "uploading"
    GUIDANCE = "guidance"
    SYNTHESIZING = "synthesizing"
    READY = "ready"
    REFINING = "refining"


class GenerationStatus(Enum):
    IDLE = "idle"
    IN_FLIGHT = "in_flight"


@dataclass(frozen=True)
class SessionSnapshot:
    """Immutable view of the session; replaced as a whole on every transition."""

    state: SessionState = SessionState.IDLE
    status: GenerationStatus = GenerationStatus.IDLE
    artifact: str = None
    version: int = 0
    error: str = None
    guidance: str = None
    elapsed: float = None

    @property
    def has_artifact(self):
        return self.artifact is not None

    @property
    def resting_state(self):
        return SessionState.READY if self.has_artifact else SessionState.IDLE

    def to_dict(self):
        return {
            "state": self.state.value,
            "status": self.status.value,
            "version": self.version,
            "has_artifact": self.has_artifact,
            "error": self.error,
            "guidance": self.guidance,
            "elapsed": self.elapsed,
        }


@dataclass
class _Attempt:
    number: int
    future: Future
    started: float
    timer: threading.Timer = None


class SessionController:
    def __init__(self, generator, max_image_edge=2048, timeout=None, executor=None):
        self.generator = generator
        self.max_image_edge = max_image_edge
        self.timeout = timeout
        self._executor = executor or ThreadPoolExecutor(
            max_workers=2, thread_name_prefix="generation",
        )
        self._lock = threading.Lock()
        self._snapshot = SessionSnapshot()
        self._listeners = []
        self._counter = 0
        self._pending = None

    @property
    def snapshot(self):
        return self._snapshot

    def subscribe(self, listener):
        """Call listener(snapshot) after every transition. Returns an unsubscribe function.

        Listeners run with the session lock held and must not call back into
        the controller.
        """
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def on_file_selected(self, candidate):
        """Validate an upload and start synthesis.

        Returns the UnsupportedDesignFile result for design-tool files, or a
        Future resolving to the new artifact. Raises ValidationRejected for
        unusable files and SessionBusy while a generation is running.
        """
        with self._lock:
            self._ensure_idle()
            self._transition(state=SessionState.UPLOADING, error=None, guidance=None)

        try:
            result = classify(candidate)
            if isinstance(result, Rejected):
                raise ValidationRejected(result.reason)
            if isinstance(result, UnsupportedDesignFile):
                logger.info("Design-tool file %r routed to export guidance", result.filename)
                with self._lock:
                    self._transition(state=SessionState.GUIDANCE, guidance=result.filename)
                return result
            image, media_type = prepare_image(candidate, self.max_image_edge)
        except ValidationRejected as e:
            logger.info("Upload %r rejected: %s", candidate.filename, e.reason)
            with self._lock:
                self._transition(state=self._snapshot.resting_state)
            raise
        except Exception as e:
            logger.exception("Upload %r failed while preparing the image", candidate.filename)
            with self._lock:
                self._transition(state=self._snapshot.resting_state)
            raise ValidationRejected(UNREADABLE_REASON) from e

        with self._lock:
            return self._start(
                SessionState.SYNTHESIZING,
                lambda: self.generator.synthesize(image, media_type),
            )

    def on_instruction_submitted(self, text):
        """Start a refinement of the current artifact. Returns a Future."""
        instruction = (text or "").strip()
        with self._lock:
            self._ensure_idle()
            if not instruction:
                raise InvalidInstruction("Instruction cannot be empty")
            current = self._snapshot.artifact
            if current is None:
                raise InvalidInstruction("Upload a design before asking for changes.")
            return self._start(
                SessionState.REFINING,
                lambda: self.generator.refine(current, instruction),
            )

    def cancel(self):
        """Abandon the in-flight generation. Its late result, if any, is discarded."""
        with self._lock:
            attempt = self._pending
            if attempt is None:
                return False
            self._clear_pending()
            self._transition(state=self._snapshot.resting_state, status=GenerationStatus.IDLE)
        logger.info("Generation attempt %s cancelled", attempt.number)
        attempt.future.cancel()
        return True

    def leave_guidance(self):
        with self._lock:
            if self._snapshot.state is SessionState.GUIDANCE:
                self._transition(state=self._snapshot.resting_state, guidance=None)

    def dismiss_error(self):
        with self._lock:
            if self._snapshot.error is not None:
                self._transition(error=None)

    def shutdown(self):
        self.cancel()
        self._executor.shutdown(wait=False)

    # internals; everything below that touches state expects self._lock held

    def _ensure_idle(self):
        if (self._snapshot.status is GenerationStatus.IN_FLIGHT
                or self._snapshot.state is SessionState.UPLOADING):
            raise SessionBusy()

    def _start(self, state, work):
        self._counter += 1
        attempt = _Attempt(number=self._counter, future=Future(), started=time.time())
        self._pending = attempt
        self._transition(state=state, status=GenerationStatus.IN_FLIGHT, error=None, guidance=None)
        logger.info("Generation attempt %s started (%s)", attempt.number, state.value)

        if self.timeout:
            attempt.timer = threading.Timer(self.timeout, self._expire, args=(attempt.number,))
            attempt.timer.daemon = True
            attempt.timer.start()

        self._executor.submit(self._run, attempt.number, work)
        return attempt.future

    def _run(self, number, work):
        try:
            artifact = work()
        except GenerationFailure as e:
            self._finish(number, error=e)
        except Exception as e:
            logger.exception("Generation attempt %s crashed", number)
            self._finish(number, error=GenerationFailure(f"Generation failed: {e}"))
        else:
            self._finish(number, artifact=artifact)

    def _expire(self, number):
        self._finish(number, error=GenerationFailure(
            f"Generation timed out after {self.timeout:g}s."
        ))

    def _finish(self, number, artifact=None, error=None):
        with self._lock:
            attempt = self._pending
            if attempt is None or attempt.number != number:
                logger.info("Discarding result of stale generation attempt %s", number)
                return
            self._clear_pending()

            if error is None and not (artifact and artifact.strip()):
                error = GenerationFailure("The model returned an empty response.")

            elapsed = round(time.time() - attempt.started, 1)
            if error is not None:
                logger.warning("Generation attempt %s failed: %s", number, error)
                self._transition(
                    state=self._snapshot.resting_state,
                    status=GenerationStatus.IDLE,
                    error=str(error),
                )
            else:
                self._transition(
                    state=SessionState.READY,
                    status=GenerationStatus.IDLE,
                    artifact=artifact,
                    version=self._snapshot.version + 1,
                    error=None,
                    elapsed=elapsed,
                )

        if error is not None:
            attempt.future.set_exception(error)
        else:
            attempt.future.set_result(artifact)

    def _clear_pending(self):
        if self._pending.timer is not None:
            self._pending.timer.cancel()
        self._pending = None

    def _transition(self, **changes):
        self._snapshot = replace(self._snapshot, **changes)
        snapshot = self._snapshot
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Session listener %r failed", listener)
