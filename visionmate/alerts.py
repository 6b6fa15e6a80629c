"""Alert log (last few hazards, newest first) and alert detection rules."""

import logging
from datetime import datetime
from typing import Callable, List, Optional

from visionmate.config import Config
from visionmate.models import AlertRecord
from visionmate.services.persistence import BackgroundWrites

logger = logging.getLogger(__name__)

ALERT_PREFIX = "ALERT:"


def is_alert(text: str) -> bool:
    """True when the first token of ``text`` starts with ALERT: (any case)."""
    if not text:
        return False
    tokens = text.split(maxsplit=1)
    return bool(tokens) and tokens[0][:len(ALERT_PREFIX)].upper() == ALERT_PREFIX


def alert_lines(text: str) -> List[str]:
    """Lines of a multi-line result that start with ALERT:."""
    return [line for line in (text or "").splitlines() if line.strip() and line.startswith(ALERT_PREFIX)]


class AlertLog:
    """Bounded newest-first alert buffer. ``add`` is the only mutation."""

    def __init__(self, capacity: Optional[int] = None):
        self.capacity = Config.ALERT_CAPACITY if capacity is None else capacity
        self._alerts: List[AlertRecord] = []

    def add(self, message: str) -> AlertRecord:
        record = AlertRecord(message=message, timestamp=datetime.now().strftime("%H:%M"))
        self._alerts = ([record] + self._alerts)[:max(self.capacity, 0)]
        return record

    @property
    def alerts(self) -> List[AlertRecord]:
        return list(self._alerts)

    def __len__(self):
        return len(self._alerts)


class AlertCenter:
    """Records alerts locally and forwards them to the alert store."""

    def __init__(
        self,
        log: Optional[AlertLog] = None,
        store=None,
        user_id: Optional[Callable[[], Optional[str]]] = None,
        writes: Optional[BackgroundWrites] = None,
    ):
        self.log = log or AlertLog()
        self._store = store
        self._user_id = user_id
        self.writes = writes or BackgroundWrites()

    def report(self, message: str) -> AlertRecord:
        record = self.log.add(message)
        logger.info("Alert: %s", message[:80])
        user_id = self._user_id() if self._user_id else None
        if self._store is not None and user_id:
            self.writes.submit(self._store.save_alert(message, user_id), label="alert save")
        return record

    @property
    def alerts(self) -> List[AlertRecord]:
        return self.log.alerts
