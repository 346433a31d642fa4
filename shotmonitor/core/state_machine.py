"""
ShotMonitor — Monitoring State Machine

Enforces the lifecycle: IDLE → MONITORING → IDLE.
There is no pause state; start and stop are the only transitions, and
every transition is logged and recorded.
"""

from __future__ import annotations

import logging
import time
from enum import Enum
from typing import Callable, Dict, List, Optional, Set

logger = logging.getLogger("shotmonitor.state")


class MonitorPhase(str, Enum):
    IDLE = "idle"
    MONITORING = "monitoring"


# Legal phase transitions
_TRANSITIONS: Dict[MonitorPhase, Set[MonitorPhase]] = {
    MonitorPhase.IDLE:       {MonitorPhase.MONITORING},
    MonitorPhase.MONITORING: {MonitorPhase.IDLE},
}


class MonitorStateMachine:
    """
    Tracks the monitor phase and notifies a listener on change.

    Usage:
        sm = MonitorStateMachine(on_transition=my_callback)
        sm.transition(MonitorPhase.MONITORING, reason="start")
        sm.transition(MonitorPhase.IDLE, reason="stop")
    """

    def __init__(
        self,
        on_transition: Optional[Callable[[MonitorPhase, MonitorPhase, str], None]] = None,
    ) -> None:
        self._phase = MonitorPhase.IDLE
        self._on_transition = on_transition
        self._history: List[Dict] = []
        self._entered_at = time.time()

    @property
    def phase(self) -> MonitorPhase:
        return self._phase

    @property
    def is_monitoring(self) -> bool:
        return self._phase == MonitorPhase.MONITORING

    @property
    def history(self) -> List[Dict]:
        return list(self._history)

    def transition(self, target: MonitorPhase, reason: str = "") -> None:
        """
        Attempt a phase transition. Raises ValueError on illegal transitions.
        """
        if target == self._phase:
            return

        allowed = _TRANSITIONS.get(self._phase, set())
        if target not in allowed:
            raise ValueError(
                f"Illegal phase transition: {self._phase.value} → {target.value}. "
                f"Allowed from {self._phase.value}: {[p.value for p in allowed]}. "
                f"Reason: {reason}"
            )

        prev = self._phase
        now = time.time()
        self._history.append({
            "from": prev.value,
            "to": target.value,
            "reason": reason,
            "timestamp": now,
            "duration_in_prev_ms": round((now - self._entered_at) * 1000, 1),
        })
        self._phase = target
        self._entered_at = now

        logger.info(
            f"PHASE: {prev.value} → {target.value}"
            + (f" ({reason})" if reason else "")
        )

        if self._on_transition:
            try:
                self._on_transition(prev, target, reason)
            except Exception as e:
                logger.error(f"Phase transition callback error: {e}")
