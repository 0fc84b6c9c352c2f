import logging
import threading
import time
from enum import Enum
from functools import partial
from typing import Any, Callable, Dict, List, Optional, Tuple

import numpy as np

from .alert_debouncer import AlertDebouncer
from .config import PipelineSettings
from .embedding_index import EmbeddingIndex
from .errors import DetectionError, FetchError, InvalidStateError
from .frame_sampler import FrameSampler, SingleFlightDispatcher
from .interfaces import IFaceModel, IVideoSource
from .match_engine import MatchEngine
from .models import BBox, MatchResult
from .plugin_manager import PluginManager
from .roster_store import RosterStore

logger = logging.getLogger("SurveillancePipeline")

RenderCallback = Callable[[np.ndarray, List[Tuple[BBox, str]]], None]
AlertCallback = Callable[[str, str], None]

THREAD_JOIN_TIMEOUT = 2.0


class PipelineState(Enum):
    IDLE = "idle"
    LOADING_ROSTER = "loading_roster"
    BUILDING_INDEX = "building_index"
    RUNNING = "running"
    STOPPED = "stopped"
    ERROR = "error"


class SurveillancePipeline:
    """
    Owns the whole lifecycle:

        load roster -> build index -> acquire camera -> sample frames
        -> match -> debounce -> render / alert

    Threads:
      SamplerThread: pulls frames on a fixed cadence and hands them to the
                     dispatcher.
      DetectionWorker: runs one match pass at a time. Frames arriving while
                       a pass is in flight are dropped.

    The camera is acquired when entering RUNNING and released on every way
    out of it. Errors from a single frame are logged and never stop the loop.
    """

    def __init__(self, roster_store: RosterStore, model: IFaceModel,
                 video_source_factory: Callable[[], IVideoSource],
                 settings: Optional[PipelineSettings] = None,
                 render_callback: Optional[RenderCallback] = None,
                 alert_callback: Optional[AlertCallback] = None,
                 clock: Callable[[], float] = time.time):
        self.settings = settings or PipelineSettings()
        self.roster_store = roster_store
        self.model = model
        self.video_source_factory = video_source_factory
        self.render_callback = render_callback
        self.alert_callback = alert_callback
        self._clock = clock

        self.match_engine = MatchEngine(model, self.settings.match_threshold, self.settings.distance_metric)
        self.debouncer = AlertDebouncer(self.settings.alert_cooldown)

        self._state = PipelineState.IDLE
        self._state_lock = threading.RLock()
        self._build_lock = threading.Lock()
        self._index_lock = threading.Lock()
        self._index = EmbeddingIndex()
        self._index_revision: Optional[int] = None

        self._run_id = 0
        self._teardown_done = threading.Event()
        self._teardown_done.set()
        self._camera: Optional[IVideoSource] = None
        self._sampler: Optional[FrameSampler] = None
        self._dispatcher: Optional[SingleFlightDispatcher] = None
        self._sampler_thread: Optional[threading.Thread] = None

        self.metrics = {
            'frames_sampled': 0,
            'frames_skipped': 0,
            'frames_processed': 0,
            'faces_detected': 0,
            'matches_found': 0,
            'alerts_raised': 0,
            'detection_errors': 0,
        }
        self.metrics_lock = threading.Lock()

    # ------------------------------------------------------------------ state

    @property
    def state(self) -> PipelineState:
        with self._state_lock:
            return self._state

    @property
    def index(self) -> EmbeddingIndex:
        with self._index_lock:
            return self._index

    def _set_state(self, state: PipelineState) -> None:
        with self._state_lock:
            previous = self._state
            self._state = state
        if previous is not state:
            logger.info(f"Pipeline {previous.value} -> {state.value}")

    def _claim_start(self, allowed: Tuple[PipelineState, ...], action: str) -> None:
        # The previous run's camera must be closed before a new one is opened
        while True:
            self._teardown_done.wait()
            with self._state_lock:
                if not self._teardown_done.is_set():
                    continue
                if self._state not in allowed:
                    raise InvalidStateError(f"Cannot {action} pipeline in state '{self._state.value}'")
                self._set_state(PipelineState.LOADING_ROSTER)
                return

    # -------------------------------------------------------------- lifecycle

    def start(self) -> None:
        """Idle -> LoadingRoster -> BuildingIndex -> Running. Startup errors propagate."""
        self._claim_start((PipelineState.IDLE,), 'start')
        self._launch()

    def restart(self) -> None:
        """Re-enter LoadingRoster after an error or a stop."""
        self._claim_start((PipelineState.ERROR, PipelineState.STOPPED), 'restart')
        self._launch()

    def _launch(self) -> None:
        try:
            with self._build_lock:
                self._load_roster()
                self._set_state(PipelineState.BUILDING_INDEX)
                self._rebuild_index()
            self._camera = self.video_source_factory()
        except Exception as e:
            logger.error(f"Pipeline startup failed: {e}")
            self._release_camera()
            self._set_state(PipelineState.ERROR)
            raise
        self._enter_running()

    def _load_roster(self) -> None:
        try:
            self.roster_store.load()
        except FetchError as e:
            if not self.roster_store.has_snapshot:
                raise
            logger.warning(f"Roster fetch failed, continuing with cached snapshot: {e}")

    def _rebuild_index(self) -> bool:
        """Build a fresh index if the roster changed since the last build."""
        revision, identities = self.roster_store.snapshot()
        if revision == self._index_revision:
            return False

        index = EmbeddingIndex.build(identities, self.model, self.roster_store.source.load_image)
        with self._index_lock:
            self._index = index
            self._index_revision = revision
        self.debouncer.retain(identity.id for identity in identities)
        return True

    def _enter_running(self) -> None:
        self._run_id += 1
        sampler = FrameSampler(self._camera, self.settings.frame_interval)
        dispatcher = SingleFlightDispatcher(partial(self._process_frame, self._run_id))
        thread = threading.Thread(target=self._sampling_loop, args=(sampler, dispatcher),
                                  daemon=True, name="SamplerThread")
        self._sampler, self._dispatcher, self._sampler_thread = sampler, dispatcher, thread

        self._set_state(PipelineState.RUNNING)
        thread.start()
        logger.info(f"🚀 Surveillance running: {len(self.index)} identities in index")

    def stop(self) -> None:
        """Running -> Stopped. Halts sampling and releases the camera; in-flight results are discarded."""
        with self._state_lock:
            if self._state is not PipelineState.RUNNING:
                logger.info(f"Stop ignored in state '{self._state.value}'")
                return
            run = self._detach_run()
        self._teardown(*run)

    def _source_ended(self) -> None:
        with self._state_lock:
            if self._state is not PipelineState.RUNNING:
                return
            run = self._detach_run()
        self._teardown(*run)

    def _detach_run(self) -> Tuple[Optional[FrameSampler], Optional[SingleFlightDispatcher],
                                   Optional[threading.Thread], Optional[IVideoSource]]:
        """Leave RUNNING and hand over this run's resources. Caller holds the state lock."""
        camera, self._camera = self._camera, None
        self._teardown_done.clear()
        self._set_state(PipelineState.STOPPED)
        return self._sampler, self._dispatcher, self._sampler_thread, camera

    def _teardown(self, sampler: Optional[FrameSampler], dispatcher: Optional[SingleFlightDispatcher],
                  thread: Optional[threading.Thread], camera: Optional[IVideoSource]) -> None:
        if sampler is not None:
            sampler.stop()
        if thread is not None and thread is not threading.current_thread() and thread.is_alive():
            thread.join(timeout=THREAD_JOIN_TIMEOUT)
        if dispatcher is not None:
            dispatcher.shutdown(wait=False)
        try:
            self._shutdown_camera(camera)
        finally:
            self._teardown_done.set()
        logger.info("Surveillance stopped")

    def _release_camera(self) -> None:
        camera, self._camera = self._camera, None
        self._shutdown_camera(camera)

    def _shutdown_camera(self, camera: Optional[IVideoSource]) -> None:
        if camera is not None:
            try:
                camera.shutdown()
            except Exception as e:
                logger.error(f"Error releasing video source: {e}")

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the sampler thread and any in-flight pass are done."""
        thread, dispatcher = self._sampler_thread, self._dispatcher
        if thread is not None:
            thread.join(timeout)
            if thread.is_alive():
                return False
        if dispatcher is not None:
            return dispatcher.wait_idle(timeout)
        return True

    def refresh_roster(self) -> bool:
        """
        Externally triggered roster re-fetch. When the roster changed and the
        pipeline is running, the index is rebuilt and swapped in. Returns
        whether the roster changed.
        """
        with self._build_lock:
            before = self.roster_store.revision
            self.roster_store.load()
            changed = self.roster_store.revision != before
            if changed and self.state is PipelineState.RUNNING:
                logger.info("Roster changed, rebuilding embedding index")
                self._rebuild_index()
        return changed

    # ------------------------------------------------------------- frame loop

    def _sampling_loop(self, sampler: FrameSampler, dispatcher: SingleFlightDispatcher) -> None:
        logger.info("Sampler Thread Started")
        try:
            for frame in sampler.frames():
                dispatched = dispatcher.dispatch(frame)
                with self.metrics_lock:
                    self.metrics['frames_sampled'] += 1
                    if not dispatched:
                        self.metrics['frames_skipped'] += 1
        except Exception:
            logger.exception("Video source failed")
            self._source_ended()
        else:
            if sampler.source_ended:
                self._source_ended()
        logger.info("Sampler Thread Stopped")

    def _is_current_run(self, run_id: int) -> bool:
        with self._state_lock:
            return run_id == self._run_id and self._state is PipelineState.RUNNING

    def _process_frame(self, run_id: int, frame: np.ndarray) -> None:
        if not self._is_current_run(run_id):
            return

        try:
            results = self.match_engine.match(frame, self.index)
        except DetectionError as e:
            logger.error(f"Detection error, skipping frame: {e}")
            with self.metrics_lock:
                self.metrics['detection_errors'] += 1
            return

        # Stopped while detecting: discard
        if not self._is_current_run(run_id):
            return

        self._publish(frame, results)

    def _publish(self, frame: np.ndarray, results: List[MatchResult]) -> None:
        matched = [r for r in results if r.matched]
        with self.metrics_lock:
            self.metrics['frames_processed'] += 1
            self.metrics['faces_detected'] += len(results)
            self.metrics['matches_found'] += len(matched)

        if self.render_callback:
            try:
                self.render_callback(frame, [(r.detection.bbox, r.label) for r in results])
            except Exception as e:
                logger.error(f"Render sink failed: {e}")

        now = self._clock()
        for result in matched:
            identity = result.identity
            if not self.debouncer.should_alert(identity.id, now):
                continue
            with self.metrics_lock:
                self.metrics['alerts_raised'] += 1
            logger.warning(f"🚨 MATCH: '{identity.display_name}' ({identity.id}) "
                           f"at distance {result.distance:.3f}")
            if self.alert_callback:
                try:
                    self.alert_callback(identity.id, identity.display_name)
                except Exception as e:
                    logger.error(f"Alert notifier failed for '{identity.id}': {e}")

    # ---------------------------------------------------------------- reports

    def get_metrics(self) -> Dict[str, Any]:
        with self.metrics_lock:
            return self.metrics.copy()

    def status(self) -> Dict[str, Any]:
        index = self.index
        return {
            'state': self.state.value,
            'roster_size': len(self.roster_store.current()),
            'index_size': len(index),
            'excluded': [identity.id for identity in index.excluded],
            'threshold': self.match_engine.threshold,
            'distance_metric': self.match_engine.metric,
            'alert_cooldown': self.debouncer.cooldown,
            'metrics': self.get_metrics(),
        }


def build_pipeline(config: Dict[str, Any],
                   render_callback: Optional[RenderCallback] = None,
                   alert_callback: Optional[AlertCallback] = None) -> SurveillancePipeline:
    """Wire a pipeline from the system config's active components."""
    pm = PluginManager()
    settings = PipelineSettings.from_config(config)
    camera_factory = pm.camera_factory(config)
    roster_source = pm.initialize_roster(config)
    # Model load is slow; the camera stays closed until the pipeline runs
    model = pm.initialize_model(config)
    return SurveillancePipeline(RosterStore(roster_source), model, camera_factory, settings,
                                render_callback=render_callback, alert_callback=alert_callback)
