"""
ShotMonitor — Status Aggregator

Single source of truth for what the dashboard shows: one MonitorState per
MonitorKey. Only analyzer callbacks and the toggle action write here; the
last accepted write per key wins.

Each key carries a write epoch that moves whenever the user toggles it.
Asynchronous analyzers capture the epoch when they dispatch and hand it
back on write, so a response that was already in flight when a monitor was
switched off can never overwrite the OFF status.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, Optional

from .models import MonitorKey, MonitorState, Reading, StatusClass

logger = logging.getLogger("shotmonitor.status")

STATUS_INITIAL = "N/A"
STATUS_OFF = "OFF"
STATUS_ANALYZING = "Analyzing..."


class StatusAggregator:
    """Keyed MonitorState container with toggle and change notification."""

    def __init__(
        self,
        enabled: Optional[Iterable[MonitorKey]] = None,
        on_update: Optional[Callable[[MonitorState], Any]] = None,
    ) -> None:
        enabled_keys = set(MonitorKey) if enabled is None else set(enabled)
        self._states: Dict[MonitorKey, MonitorState] = {
            key: MonitorState(key=key, enabled=key in enabled_keys)
            for key in MonitorKey
        }
        self._epochs: Dict[MonitorKey, int] = {key: 0 for key in MonitorKey}
        self._on_update = on_update

    # ── reads ───────────────────────────────────────────────────────────

    def get(self, key: MonitorKey) -> MonitorState:
        return self._states[MonitorKey(key)]

    def is_enabled(self, key: MonitorKey) -> bool:
        return self._states[MonitorKey(key)].enabled

    def epoch(self, key: MonitorKey) -> int:
        return self._epochs[MonitorKey(key)]

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        """Read-only copy of every monitor, keyed by wire name."""
        return {key.value: state.to_dict() for key, state in self._states.items()}

    # ── writes ──────────────────────────────────────────────────────────

    def set(
        self,
        key: MonitorKey,
        status: str,
        status_class: StatusClass,
        epoch: Optional[int] = None,
    ) -> bool:
        """
        Record an analyzer result. Returns False when the write was dropped:
        the monitor is disabled, or the caller's epoch predates a toggle.
        """
        key = MonitorKey(key)
        state = self._states[key]
        if not state.enabled:
            return False
        if epoch is not None and epoch != self._epochs[key]:
            logger.debug(f"Dropped stale write to {key.value}: {status}")
            return False
        self._write(state, status, StatusClass(status_class))
        return True

    def apply(self, key: MonitorKey, reading: Reading, epoch: Optional[int] = None) -> bool:
        return self.set(key, reading.status, reading.status_class, epoch=epoch)

    def toggle(self, key: MonitorKey) -> bool:
        """
        Flip a monitor's enabled flag and return the new value.
        Disabling forces OFF immediately; enabling waits for the next cycle.
        """
        key = MonitorKey(key)
        state = self._states[key]
        state.enabled = not state.enabled
        self._epochs[key] += 1
        if not state.enabled:
            self._write(state, STATUS_OFF, StatusClass.DISABLED)
        logger.info(f"Monitor {key.value} {'enabled' if state.enabled else 'disabled'}")
        return state.enabled

    def mark_analyzing(self) -> None:
        for state in self._states.values():
            if state.enabled:
                self._write(state, STATUS_ANALYZING, StatusClass.WARNING)

    def reset(self) -> None:
        """Back to the idle look; enabled flags are preserved."""
        for key, state in self._states.items():
            self._epochs[key] += 1
            self._write(state, STATUS_INITIAL, StatusClass.DISABLED)

    def _write(self, state: MonitorState, status: str, status_class: StatusClass) -> None:
        state.status = status
        state.status_class = status_class
        if self._on_update:
            try:
                self._on_update(state)
            except Exception as e:
                logger.error(f"Status listener error for {state.key.value}: {e}")
