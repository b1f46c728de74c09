"""
Low-stock alerting.

Runs after every committed outbound movement. An alert is eligible only on a
downward crossing of the part's minimum (``before > min >= after``); a zero
minimum means the part is not monitored. Eligible alerts are throttled per
part: at most one notification per throttle window, however often the total
oscillates around the minimum.

Throttle state lives in this instance only and is lost on restart.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Mapping, Optional, Tuple

from partstore.core.clock import Clock, SystemClock

from .notifier import Notifier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AlertThrottleState:
    last_sent_at: datetime
    quantity: int


def is_crossing(min_qty: int, total_before: int, total_after: int) -> bool:
    if min_qty <= 0:
        return False
    return total_before > min_qty and total_after <= min_qty


class AlertEngine:
    def __init__(
        self,
        notifier: Notifier,
        *,
        clock: Optional[Clock] = None,
        throttle_minutes: int = 30,
        recipient: str = "",
    ):
        self.notifier = notifier
        self.clock = clock or SystemClock()
        self.window = timedelta(minutes=throttle_minutes)
        self.recipient = recipient
        self._state: Dict[int, AlertThrottleState] = {}

    def last_alert(self, part_id: int) -> Optional[AlertThrottleState]:
        return self._state.get(part_id)

    def reset(self) -> None:
        self._state.clear()

    def render(self, part: Mapping[str, Any], total: int) -> Tuple[str, str]:
        subject = f"Low stock: {part['part_number']}"
        body = (
            f"Part {part['part_number']} ({part.get('description') or ''}) now has a total quantity "
            f"of {total}, at or below its minimum of {part['min_qty']}."
        )
        return subject, body

    async def on_outbound(self, part: Mapping[str, Any], total_before: int, total_after: int) -> bool:
        """Returns True when a notification was dispatched."""
        min_qty = int(part.get("min_qty") or 0)
        if not is_crossing(min_qty, total_before, total_after):
            return False

        part_id = part["id"]
        now = self.clock.now()
        previous = self._state.get(part_id)
        if previous is not None and now - previous.last_sent_at < self.window:
            logger.info(
                "Low-stock alert for %s suppressed (last sent %s)",
                part["part_number"],
                previous.last_sent_at.isoformat(),
            )
            return False

        # Claim the slot before awaiting so a concurrent crossing is throttled.
        self._state[part_id] = AlertThrottleState(last_sent_at=now, quantity=total_after)
        subject, body = self.render(part, total_after)
        try:
            await self.notifier.send(self.recipient, subject, body)
        except Exception:
            # The movement is already committed; a failed notification must not undo it.
            logger.exception("Failed to send low-stock alert for %s", part["part_number"])
            if previous is None:
                self._state.pop(part_id, None)
            else:
                self._state[part_id] = previous
            return False

        logger.info("Low-stock alert sent for %s (total %s, min %s)", part["part_number"], total_after, min_qty)
        return True
