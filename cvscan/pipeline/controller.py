import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from functools import partial
from typing import Callable, Iterable, List, Optional

from transitions import MachineError

from cvscan.camera import CaptureSessionManager, OpenCVCamera, PermissionDeniedError, select_files
from cvscan.config import IntakeSettings
from cvscan.device import CapabilityProber
from cvscan.fsm import IntakeFSM
from cvscan.models import (
    CapturedPage,
    DeviceProfile,
    ErrorKind,
    ExtractedCV,
    IntakeResult,
    Phase,
    PipelineState,
)
from cvscan.pipeline.buffer import PageBuffer
from cvscan.pipeline.exceptions import EmptyBufferError
from cvscan.pipeline.submission import SubmissionOrchestrator


CAMERA_DENIED_NOTICE = "Camera access denied. Please enable camera permissions or use file upload instead."
CAMERA_MISSING_NOTICE = "No camera could be started. Please upload your CV from the device instead."
EMPTY_BUFFER_NOTICE = "Add at least one page before processing your CV."
PAGE_LIMIT_NOTICE = "Page limit reached. Remove a page before adding another."


class IntakeController:
    """
    Orchestrates the CV intake workflow:
    - Probes the device once
    - Drives the FSM from user actions
    - Owns the camera session and the page buffer
    - Runs submissions on a worker thread
    - Publishes a PipelineState snapshot after every change
    """

    def __init__(
        self,
        settings: Optional[IntakeSettings] = None,
        prober: Optional[CapabilityProber] = None,
        capture: Optional[CaptureSessionManager] = None,
        orchestrator_factory: Optional[Callable[[DeviceProfile], SubmissionOrchestrator]] = None,
        callbacks: Optional[dict] = None,
        on_accepted: Optional[Callable[[ExtractedCV], None]] = None,
    ):
        self.log = logging.getLogger("IntakeController")
        self.settings = settings or IntakeSettings()

        # --- Core components ---
        camera = OpenCVCamera(max_index=self.settings.camera_max_index)
        self.prober = prober or CapabilityProber(self.settings, camera)
        self.capture = capture or CaptureSessionManager(self.settings, camera)
        self._orchestrator_factory = orchestrator_factory or (
            lambda profile: SubmissionOrchestrator(profile, self.settings)
        )
        self.on_accepted = on_accepted

        # --- Session data ---
        self.buffer = PageBuffer(max_pages=self.settings.max_pages)
        self.profile: Optional[DeviceProfile] = None
        self.orchestrator: Optional[SubmissionOrchestrator] = None
        self.session = None
        self.result: Optional[ExtractedCV] = None
        self.failure = None
        self.notice: Optional[str] = None

        # --- Concurrency ---
        self._lock = threading.RLock()
        self._generation = 0
        self._submission: Optional[Future] = None
        self._settled = threading.Event()
        self._settled.set()
        self._executor = self._new_executor()
        self._listeners: List[Callable[[PipelineState], None]] = []

        # --- FSM ---
        self.fsm = IntakeFSM(
            callbacks=self._fsm_callbacks(callbacks),
            camera_available=lambda: self.profile is not None and self.profile.has_camera,
            file_selection_available=lambda: self.profile is not None and self.profile.supports_file_selection,
            page_count=lambda: len(self.buffer),
        )

    # ----------------------------------------------------------------------
    # FSM CALLBACKS
    # ----------------------------------------------------------------------

    def _fsm_callbacks(self, user_callbacks):
        """Merge internal callbacks with user-provided ones (user callbacks run first)."""
        internal = {
            "on_enter_choosing_method": self._on_enter_choosing_method,
            "on_enter_live_capture": self._on_enter_live_capture,
            "on_exit_live_capture": self._on_exit_live_capture,
            "on_enter_reviewing_pages": self._on_enter_reviewing_pages,
            "on_enter_processing": self._on_enter_processing,
            "on_enter_result": self._on_enter_result,
            "on_enter_failed": self._on_enter_failed,
        }

        merged = {}
        for name, funcs in (user_callbacks or {}).items():
            merged[name] = list(funcs) if isinstance(funcs, (list, tuple)) else [funcs]
        for name, func in internal.items():
            merged.setdefault(name, []).append(func)
        return merged

    def _on_enter_choosing_method(self):
        self.buffer.clear()
        self.result = None
        self.failure = None

    def _on_enter_live_capture(self):
        self.log.info("Starting camera...")
        try:
            self.session = self.capture.start(self.profile)
        except Exception as e:
            self.log.warning(f"Camera initialization failed: {e}")
            self.notice = CAMERA_DENIED_NOTICE if isinstance(e, PermissionDeniedError) else CAMERA_MISSING_NOTICE
            self.fsm.trigger("camera_unavailable")
            return
        self.notice = None

    def _on_exit_live_capture(self):
        session, self.session = self.session, None
        self.capture.stop(session)

    def _on_enter_reviewing_pages(self):
        self.failure = None
        self.log.info(f"Reviewing {len(self.buffer)} page(s)")

    def _on_enter_processing(self):
        pages = self.buffer.to_ordered_list()
        generation = self._generation
        self.result = None
        self.failure = None
        self.log.info(f"Processing CV ({len(pages)} page(s))...")
        self._settled.clear()

        future = self._executor.submit(self.orchestrator.submit, pages)
        self._submission = future
        future.add_done_callback(partial(self._on_submission_done, generation))

    def _on_enter_result(self):
        self.log.info(f"CV processed (confidence {self.result.confidence_score:.0%})")

    def _on_enter_failed(self):
        self.log.error(f"CV processing failed: {self.failure.error_kind.value}: {self.failure.message}")

    def _on_submission_done(self, generation: int, future: Future):
        with self._lock:
            if generation != self._generation or self.fsm.state != Phase.PROCESSING.value:
                self.log.info("Discarding stale submission result")
                return
            if future.cancelled():
                return

            exc = future.exception()
            if exc is not None:
                self.log.error(f"Submission raised: {exc}", exc_info=exc)
                kind = ErrorKind.EMPTY_BUFFER if isinstance(exc, EmptyBufferError) else ErrorKind.SERVER_REJECTED
                result = IntakeResult.failed(kind, str(exc))
            else:
                result = future.result()

            if result.succeeded:
                self.result = result.cv
                self.fsm.trigger("succeed")
            else:
                self.failure = result.failure
                self.fsm.trigger("fail")
            self._settled.set()

        self._publish()

    # ----------------------------------------------------------------------
    # HELPERS
    # ----------------------------------------------------------------------

    def _dispatch(self, trigger: str) -> bool:
        try:
            ok = self.fsm.trigger(trigger)
        except MachineError:
            self.log.warning(f"Cannot {trigger} from state: {self.fsm.state}")
            return False
        if not ok:
            self.log.warning(f"'{trigger}' refused in state {self.fsm.state}: condition not met")
        return ok

    @staticmethod
    def _new_executor() -> ThreadPoolExecutor:
        return ThreadPoolExecutor(max_workers=1, thread_name_prefix="intake-submit")

    def _require_started(self):
        if self.profile is None:
            self.start()

    def _publish(self):
        snapshot = self.state
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                self.log.exception("State listener failed")

    # ----------------------------------------------------------------------
    # PUBLIC API
    # ----------------------------------------------------------------------

    def start(self) -> DeviceProfile:
        """Probe the device (once) and prepare the submission orchestrator."""
        with self._lock:
            if self.profile is None:
                self.profile = self.prober.probe()
                self.orchestrator = self._orchestrator_factory(self.profile)
                self.log.info("Intake pipeline ready")
        self._publish()
        return self.profile

    @property
    def state(self) -> PipelineState:
        with self._lock:
            return PipelineState(
                phase=self.fsm.phase,
                pages=tuple(self.buffer.to_ordered_list()),
                profile=self.profile,
                result=self.result,
                failure=self.failure,
                notice=self.notice,
                actions=self.fsm.available_actions() if self.profile is not None else (),
            )

    @property
    def pages(self):
        with self._lock:
            return tuple(self.buffer.to_ordered_list())

    def subscribe(self, listener: Callable[[PipelineState], None]) -> Callable[[], None]:
        """Call ``listener`` with a fresh snapshot after every change. Returns an unsubscribe function."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener) if listener in self._listeners else None

    def choose_camera(self) -> bool:
        """Enter live capture. Returns False when the camera is not live (refused or fell back to files)."""
        with self._lock:
            self._require_started()
            self._dispatch("choose_camera")
            live = self.fsm.phase is Phase.LIVE_CAPTURE
        self._publish()
        return live

    def choose_files(self) -> bool:
        with self._lock:
            self._require_started()
            ok = self._dispatch("choose_files")
        self._publish()
        return ok

    def capture_frame(self) -> Optional[CapturedPage]:
        with self._lock:
            if self.fsm.state != Phase.LIVE_CAPTURE.value:
                self.log.warning(f"Cannot capture_frame from state: {self.fsm.state}")
                return None
            if self.buffer.is_full:
                self.notice = PAGE_LIMIT_NOTICE
                self._publish()
                return None

            self._dispatch("capture_frame")
            try:
                page = self.capture.capture_frame(self.session)
            except Exception as e:
                self.log.error(f"Camera capture failed: {e}")
                self.notice = "Capture failed. Please try again."
                page = None
            else:
                self.buffer.append(page)
                self.notice = None
        self._publish()
        return page

    def finish_capturing(self) -> bool:
        with self._lock:
            ok = self._dispatch("finish_capturing")
        self._publish()
        return ok

    def cancel(self) -> bool:
        """Leave live capture / file selection, keeping pages already taken."""
        with self._lock:
            ok = self._dispatch("cancel")
        self._publish()
        return ok

    def files_selected(self, paths: Iterable) -> List[CapturedPage]:
        """Add the valid files among ``paths`` as pages and move on to review."""
        with self._lock:
            if self.fsm.state != Phase.FILE_SELECTION.value:
                self.log.warning(f"Cannot files_selected from state: {self.fsm.state}")
                return []

            added = []
            for page in select_files(paths, max_bytes=self.settings.max_file_bytes):
                if self.buffer.is_full:
                    page.release()
                    self.notice = PAGE_LIMIT_NOTICE
                    continue
                self.buffer.append(page)
                added.append(page)

            self._dispatch("files_selected")
        self._publish()
        return added

    def retake_page(self, page_id: str) -> bool:
        """Remove a page by id so it can be captured again."""
        with self._lock:
            if not self._dispatch("retake_page"):
                return False
            removed = self.buffer.remove(page_id) is not None
        self._publish()
        return removed

    def submit(self) -> Optional[Future]:
        """Send the buffered pages for processing. Returns the in-flight future."""
        with self._lock:
            if self.fsm.state == Phase.REVIEWING_PAGES.value and self.buffer.is_empty:
                self.log.warning("Submission blocked: no pages captured")
                self.notice = EMPTY_BUFFER_NOTICE
                self._publish()
                return None
            if not self._dispatch("submit"):
                return None
            self.notice = None
            future = self._submission
        self._publish()
        return future

    def retry(self) -> Optional[Future]:
        """Resubmit the unchanged page set after a failure."""
        with self._lock:
            if not self._dispatch("retry"):
                return None
            future = self._submission
        self._publish()
        return future

    def wait_for_outcome(self, timeout: Optional[float] = None) -> bool:
        """Block until no submission is in flight. Returns False on timeout."""
        return self._settled.wait(timeout)

    def revise(self) -> bool:
        """Go back from a failure to add or remove pages before resubmitting."""
        with self._lock:
            ok = self._dispatch("revise")
        self._publish()
        return ok

    def accept(self) -> Optional[ExtractedCV]:
        """Hand the extracted CV to ``on_accepted`` and start over."""
        with self._lock:
            cv = self.result
            if not self._dispatch("accept"):
                return None
        if self.on_accepted is not None:
            self.on_accepted(cv)
        self._publish()
        return cv

    def reset(self):
        """Back to choosing a method: drop pages and results, stop the camera, ignore in-flight work."""
        with self._lock:
            self._generation += 1
            if self._submission is not None:
                if not self._submission.cancel() and not self._submission.done():
                    # The abandoned request keeps its thread; later submissions get a fresh one
                    self._executor.shutdown(wait=False)
                    self._executor = self._new_executor()
                self._submission = None
            self._settled.set()
            self.notice = None
            self._dispatch("reset")
        self._publish()

    def close(self):
        """Release everything; the controller is unusable afterwards."""
        self.reset()
        self._executor.shutdown(wait=False)
        if self.orchestrator is not None:
            self.orchestrator.close()
        self.log.info("Intake pipeline closed")

    def current_state(self) -> str:
        return self.fsm.state

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
