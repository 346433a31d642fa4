"""
ShotMonitor — Monitor Service

================================================================================
Scheduler + throttle for the live shot-quality dashboard.
================================================================================

One `ShotMonitor` per dashboard. Lifecycle:

    monitor = ShotMonitor(frame_source, vision=MoondreamClient(), ...)
    await monitor.start()      # IDLE → MONITORING, first cycle runs now
    monitor.toggle("focus")    # user clicks a card
    await monitor.stop()       # MONITORING → IDLE, cards back to N/A

Every cycle (default 1.5 s):
  a. dispatch a landmark pass if the source is a live stream and the
     previous pass has resolved; its result feeds orientation / talking /
     focus whenever it lands
  b. run lighting synchronously
  c. if the throttle window (default 2 s) has passed, fire one batch of
     remote calls: a shared "face" detect for presence + composition and
     a caption for scene context

Cycles never wait for async work. Each start() opens a new generation;
anything dispatched under an older generation is discarded when it
resolves, so a stopped session never reacts to a late response.
================================================================================
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from typing import Any, Callable, Coroutine, Dict, Optional, Set

from ..core.aggregator import StatusAggregator
from ..core.config import (
    SchedulerConfig,
    ThresholdConfig,
    VisionServiceConfig,
    scheduler_cfg,
    threshold_cfg,
    vision_cfg,
)
from ..core.interfaces import FrameSource, LandmarkDetector, PixelStatsBackend, VisionService
from ..core.models import (
    DETECT_MONITORS,
    LANDMARK_MONITORS,
    Frame,
    LandmarkFrame,
    MonitorKey,
    MonitorState,
    MonitorTelemetry,
    Reading,
    StatusClass,
    TalkingHysteresis,
    ThrottleClock,
)
from ..core.state_machine import MonitorPhase, MonitorStateMachine
from ..processing.geometry import NO_FACE, TalkingAnalyzer, analyze_orientation
from ..processing.image_stats import OpenCVStatsBackend, analyze_focus, analyze_lighting
from ..processing.remote import (
    REMOTE_ERROR,
    classify_caption,
    classify_composition,
    classify_presence,
)
from ..processing.smoother import LandmarkSmoother

logger = logging.getLogger("shotmonitor.monitor")

ANALYZER_ERROR = Reading("ERROR", StatusClass.WARNING)
NO_FRAME_MESSAGE = "Start the webcam or upload an image first"


class ShotMonitor:
    """Fuses local and remote analyzers into one live StatusAggregator."""

    def __init__(
        self,
        frame_source: FrameSource,
        vision: VisionService,
        landmark_detector: Optional[LandmarkDetector] = None,
        stats_backend: Optional[PixelStatsBackend] = None,
        thresholds: ThresholdConfig = threshold_cfg,
        schedule: SchedulerConfig = scheduler_cfg,
        vision_config: VisionServiceConfig = vision_cfg,
        clock: Callable[[], float] = time.monotonic,
        on_update: Optional[Callable[[MonitorState], Any]] = None,
        session_id: Optional[str] = None,
    ) -> None:
        self.session_id = session_id or uuid.uuid4().hex[:12]
        self.telemetry = MonitorTelemetry(session_id=self.session_id)

        self._frames = frame_source
        self._vision = vision
        self._landmarks = landmark_detector
        self._stats = stats_backend or OpenCVStatsBackend()
        self._thresholds = thresholds
        self._schedule = schedule
        self._detect_class = vision_config.detect_class
        self._clock = clock
        self._on_update = on_update

        self.aggregator = StatusAggregator(on_update=self._notify)
        self._state = MonitorStateMachine(on_transition=self._on_phase_change)
        self._smoother = LandmarkSmoother(schedule.landmark_history)
        self._talking = TalkingAnalyzer(thresholds, schedule.talking_debounce, clock)
        self._throttle = ThrottleClock()

        self._generation = 0
        self._cycle_task: Optional[asyncio.Task] = None
        self._landmark_task: Optional[asyncio.Task] = None
        self._pending: Set[asyncio.Task] = set()

        self.scene_description: str = ""

    # ── public API ──────────────────────────────────────────────────────

    @property
    def is_monitoring(self) -> bool:
        return self._state.is_monitoring

    @property
    def phase(self) -> MonitorPhase:
        return self._state.phase

    @property
    def talking_state(self) -> TalkingHysteresis:
        return self._talking.hysteresis

    @property
    def throttle(self) -> ThrottleClock:
        return self._throttle

    @property
    def smoother(self) -> LandmarkSmoother:
        return self._smoother

    def get(self, key: MonitorKey) -> MonitorState:
        return self.aggregator.get(key)

    def toggle(self, key: MonitorKey) -> bool:
        return self.aggregator.toggle(key)

    def snapshot(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "phase": self.phase.value,
            "monitors": self.aggregator.snapshot(),
            "scene_description": self.scene_description,
            "telemetry": self.telemetry.to_dict(),
        }

    async def start(self) -> bool:
        """Enter MONITORING and run the first cycle right away. Needs a frame."""
        if self.is_monitoring:
            return False
        if self._frames.current_frame() is None:
            logger.warning(f"[{self.session_id}] Start refused: no frame yet. {NO_FRAME_MESSAGE}")
            return False

        self._generation += 1
        generation = self._generation
        self._talking.reset()
        self._state.transition(MonitorPhase.MONITORING, reason="start")
        self.aggregator.mark_analyzing()

        self.run_cycle()
        self._cycle_task = asyncio.create_task(
            self._cycle_worker(generation), name=f"monitor-cycle-{self.session_id}"
        )
        logger.info(
            f"[{self.session_id}] Monitoring started "
            f"(cycle={self._schedule.cycle_period}s, throttle={self._schedule.remote_throttle}s)"
        )
        return True

    async def stop(self) -> Dict[str, Any]:
        """
        Leave MONITORING. The periodic cycle is cancelled; in-flight remote
        and landmark calls keep running but their results are discarded.
        """
        if not self.is_monitoring:
            return self.telemetry.to_dict()

        self._generation += 1
        self._state.transition(MonitorPhase.IDLE, reason="stop")

        task, self._cycle_task = self._cycle_task, None
        if task and not task.done() and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except (asyncio.CancelledError, Exception):
                pass

        self.aggregator.reset()
        self.scene_description = ""
        logger.info(f"[{self.session_id}] Monitoring stopped ({self.telemetry.cycles_run} cycles)")
        return self.telemetry.to_dict()

    async def drain(self) -> None:
        """Wait until every dispatched landmark/remote call has resolved."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ── cycle ───────────────────────────────────────────────────────────

    def run_cycle(self) -> None:
        """One scheduling tick. Never blocks on async work."""
        if not self.is_monitoring:
            return
        generation = self._generation
        self.telemetry.cycles_run += 1
        frame = self._frames.current_frame()

        if (
            self._landmarks is not None
            and frame is not None
            and self._frames.landmark_capable
            and any(self.aggregator.is_enabled(k) for k in LANDMARK_MONITORS)
        ):
            if self._landmark_task is not None and not self._landmark_task.done():
                # One pass at a time; the detector runs on a single worker
                self.telemetry.landmark_passes_skipped += 1
                logger.debug(f"[{self.session_id}] Landmark pass still running, skipped")
            else:
                epochs = {k: self.aggregator.epoch(k) for k in LANDMARK_MONITORS}
                self.telemetry.landmark_passes += 1
                self._landmark_task = self._spawn(self._landmark_pass(frame, generation, epochs))

        if self.aggregator.is_enabled(MonitorKey.LIGHTING):
            self._run_guarded(
                MonitorKey.LIGHTING,
                lambda: analyze_lighting(frame, self._thresholds),
            )

        now = self._clock()
        if now - self._throttle.last_remote_call > self._schedule.remote_throttle:
            self._throttle.last_remote_call = now
            self._dispatch_remote(frame, generation)

    async def _cycle_worker(self, generation: int) -> None:
        while self._is_live(generation):
            try:
                await asyncio.sleep(self._schedule.cycle_period)
                if not self._is_live(generation):
                    break
                self.run_cycle()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"[{self.session_id}] Cycle error: {e}", exc_info=True)

    # ── landmark path ───────────────────────────────────────────────────

    def process_landmarks(
        self,
        landmarks: Optional[LandmarkFrame],
        frame: Optional[Frame] = None,
        epochs: Optional[Dict[MonitorKey, int]] = None,
    ) -> None:
        """Landmark-detector callback: zero or one face."""
        if not self.is_monitoring:
            return
        epochs = epochs or {}

        if not landmarks:
            for key in LANDMARK_MONITORS:
                if self.aggregator.is_enabled(key):
                    self.aggregator.apply(key, NO_FACE, epoch=epochs.get(key))
            return

        smoothed = self._smoother.push(landmarks)
        if frame is None:
            frame = self._frames.current_frame()

        if self.aggregator.is_enabled(MonitorKey.ORIENTATION):
            self._run_guarded(
                MonitorKey.ORIENTATION,
                lambda: analyze_orientation(smoothed, self._thresholds),
                epochs.get(MonitorKey.ORIENTATION),
            )
        if self.aggregator.is_enabled(MonitorKey.TALKING):
            self._run_guarded(
                MonitorKey.TALKING,
                lambda: self._talking.analyze(smoothed),
                epochs.get(MonitorKey.TALKING),
            )
        if self.aggregator.is_enabled(MonitorKey.FOCUS):
            self._run_guarded(
                MonitorKey.FOCUS,
                lambda: analyze_focus(frame, smoothed, self._stats, self._thresholds),
                epochs.get(MonitorKey.FOCUS),
            )

    async def _landmark_pass(
        self,
        frame: Frame,
        generation: int,
        epochs: Dict[MonitorKey, int],
    ) -> None:
        try:
            landmarks = await asyncio.wait_for(
                self._landmarks.detect(frame),
                timeout=self._schedule.landmark_timeout,
            )
        except Exception as e:
            if not self._is_live(generation):
                self.telemetry.stale_results_dropped += 1
                return
            logger.warning(f"[{self.session_id}] Landmark detection failed: {type(e).__name__}: {e}")
            for key in LANDMARK_MONITORS:
                if self.aggregator.is_enabled(key):
                    self.aggregator.apply(key, ANALYZER_ERROR, epoch=epochs[key])
            return

        if not self._is_live(generation):
            self.telemetry.stale_results_dropped += 1
            return
        self.telemetry.landmark_results += 1
        self.process_landmarks(landmarks, frame, epochs)

    # ── remote path ─────────────────────────────────────────────────────

    def _dispatch_remote(self, frame: Optional[Frame], generation: int) -> None:
        if frame is None:
            logger.debug(f"[{self.session_id}] No frame yet, remote batch skipped")
            return

        dispatched = False
        if any(self.aggregator.is_enabled(k) for k in DETECT_MONITORS):
            epochs = {k: self.aggregator.epoch(k) for k in DETECT_MONITORS}
            self._spawn(self._detect_pass(frame, generation, epochs))
            dispatched = True
        if self.aggregator.is_enabled(MonitorKey.SCENE_CONTEXT):
            epoch = self.aggregator.epoch(MonitorKey.SCENE_CONTEXT)
            self._spawn(self._caption_pass(frame, generation, epoch))
            dispatched = True

        if dispatched:
            self.telemetry.remote_batches += 1

    async def _detect_pass(
        self,
        frame: Frame,
        generation: int,
        epochs: Dict[MonitorKey, int],
    ) -> None:
        try:
            boxes = await asyncio.wait_for(
                self._vision.detect(frame, self._detect_class),
                timeout=self._schedule.remote_timeout,
            )
        except Exception as e:
            if not self._is_live(generation):
                self.telemetry.stale_results_dropped += 1
                return
            self.telemetry.remote_failures += 1
            logger.warning(f"[{self.session_id}] Detect call failed: {type(e).__name__}: {e}")
            for key in DETECT_MONITORS:
                if self.aggregator.is_enabled(key):
                    self.aggregator.apply(key, REMOTE_ERROR, epoch=epochs[key])
            return

        if not self._is_live(generation):
            self.telemetry.stale_results_dropped += 1
            return

        logger.debug(f"[{self.session_id}] Detect returned {len(boxes)} box(es)")
        self._apply_guarded(MonitorKey.PRESENCE, lambda: classify_presence(boxes), epochs)
        self._apply_guarded(
            MonitorKey.COMPOSITION,
            lambda: classify_composition(boxes, self._thresholds),
            epochs,
        )

    async def _caption_pass(self, frame: Frame, generation: int, epoch: int) -> None:
        key = MonitorKey.SCENE_CONTEXT
        try:
            caption = await asyncio.wait_for(
                self._vision.caption(frame),
                timeout=self._schedule.remote_timeout,
            )
        except Exception as e:
            if not self._is_live(generation):
                self.telemetry.stale_results_dropped += 1
                return
            self.telemetry.remote_failures += 1
            logger.warning(f"[{self.session_id}] Caption call failed: {type(e).__name__}: {e}")
            self.aggregator.apply(key, REMOTE_ERROR, epoch=epoch)
            return

        if not self._is_live(generation):
            self.telemetry.stale_results_dropped += 1
            return

        reading, text = classify_caption(caption)
        if self.aggregator.apply(key, reading, epoch=epoch):
            self.scene_description = text

    # ── helpers ─────────────────────────────────────────────────────────

    def _is_live(self, generation: int) -> bool:
        return self.is_monitoring and generation == self._generation

    def _run_guarded(
        self,
        key: MonitorKey,
        analyze: Callable[[], Reading],
        epoch: Optional[int] = None,
    ) -> None:
        """Run one analyzer; its failure becomes an ERROR card, nothing more."""
        try:
            reading = analyze()
        except Exception as e:
            logger.warning(f"[{self.session_id}] {key.value} analyzer failed: {e}")
            reading = ANALYZER_ERROR
        self.aggregator.apply(key, reading, epoch=epoch)

    def _apply_guarded(
        self,
        key: MonitorKey,
        analyze: Callable[[], Reading],
        epochs: Dict[MonitorKey, int],
    ) -> None:
        if self.aggregator.is_enabled(key):
            self._run_guarded(key, analyze, epochs.get(key))

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    def _notify(self, state: MonitorState) -> None:
        if self._on_update is None:
            return
        result = self._on_update(state)
        if not asyncio.iscoroutine(result):
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            # Toggled from sync code: nothing to schedule the listener on
            result.close()
            logger.debug(f"[{self.session_id}] No event loop, update for {state.key.value} not pushed")
            return
        self._spawn(result)

    def _on_phase_change(self, prev: MonitorPhase, new: MonitorPhase, reason: str) -> None:
        self.telemetry.phase = new.value
