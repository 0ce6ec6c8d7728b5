from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Protocol

from phoneauth_shared import mask_phone

logger = logging.getLogger("identity.audit")


@dataclass
class AuditEvent:
    type: str
    phone_number: str = ""  # always masked
    outcome: str = "ok"
    user_id: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)
    at: str = field(default_factory=lambda: datetime.utcnow().isoformat() + "Z")


class AuditSink(Protocol):
    def emit(self, event: AuditEvent) -> None:  # pragma: no cover - interface
        ...


class LoggingAuditSink:
    """Writes each event as one JSON log line on ``identity.audit``."""

    _WARN_TYPES = {"security", "rate_limit"}

    def emit(self, event: AuditEvent) -> None:
        level = logging.WARNING if event.type in self._WARN_TYPES else logging.INFO
        logger.log(level, json.dumps(asdict(event), default=str))


def record_event(
    sink: Optional[AuditSink],
    event_type: str,
    phone_number: str = "",
    *,
    outcome: str = "ok",
    user_id: Optional[str] = None,
    **details: Any,
) -> None:
    if sink is None:
        return
    try:
        sink.emit(AuditEvent(
            type=event_type,
            phone_number=mask_phone(phone_number),
            outcome=outcome,
            user_id=user_id,
            details=details,
        ))
    except Exception:
        # Never break primary flow on audit errors
        logger.debug("audit sink %s dropped event %s", type(sink).__name__, event_type, exc_info=True)
