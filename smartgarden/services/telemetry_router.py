"""
Telemetry router.

Resolves an inbound ``(channel, payload)`` message to exactly one
``(user, device)`` pair and stores the reading, or rejects it.

Channel names are shared by every device of every user on the cloud side, so
a message is only accepted for a device that is its owner's active device.
Rejections are logged and reported on the result; they never raise.
"""
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, List, Optional, Tuple, Union
from uuid import UUID

from sqlalchemy.orm import Session

from smartgarden.core.config import settings
from smartgarden.db.channel_tables import FeedStore, feed_store
from smartgarden.models.device import Device
from smartgarden.services import arbitrator, device_registry
from smartgarden.services.threshold import Evaluation, evaluate_device

logger = logging.getLogger(__name__)


class RejectReason(str, Enum):
    EMPTY_VALUE = "empty value"
    NO_DEVICE_FOR_CHANNEL = "no device declares this channel"
    HINTED_DEVICE_NOT_FOUND = "hinted device not found for channel"
    DEVICE_NOT_ACTIVE = "device not active for its user"
    NO_ACTIVE_DEVICE = "no active device for this channel"


@dataclass
class RoutingResult:
    channel: str
    accepted: bool
    value: Optional[str] = None
    device_id: Optional[str] = None
    user_id: Optional[UUID] = None
    hint: Optional[str] = None
    reason: Optional[RejectReason] = None
    reading_id: Optional[int] = None
    evaluation: Optional[Evaluation] = None


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value).strip() or None


def parse_payload(payload: Union[bytes, str, dict]) -> Tuple[Optional[str], Optional[str]]:
    """
    Returns ``(device_hint, value)``.

    A JSON object carrying ``deviceId`` or ``value`` is structured; anything
    else (plain strings, numbers, unparseable JSON) is the value itself.
    """
    if isinstance(payload, bytes):
        payload = payload.decode("utf-8", errors="replace")

    data = payload
    if isinstance(payload, str) and payload.strip().startswith("{"):
        try:
            data = json.loads(payload)
        except ValueError:
            data = payload

    if isinstance(data, dict) and ("deviceId" in data or "value" in data):
        hint = data.get("deviceId")
        hint = str(hint).strip() if hint is not None and str(hint).strip() else None
        return hint, _as_text(data.get("value"))

    return None, _as_text(data)


class TelemetryRouter:
    """
    ``activity_clock`` stamps both the device's last activity and the stored
    reading; tests replace it.
    """

    def __init__(
        self,
        store: FeedStore = feed_store,
        soil_channel: Optional[str] = None,
        activity_clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        self.store = store
        self.soil_channel = soil_channel or settings.SOIL_MOISTURE_CHANNEL
        self.clock = activity_clock

    def _reject(self, result: RoutingResult, reason: RejectReason) -> RoutingResult:
        result.accepted = False
        result.reason = reason
        logger.warning(
            "Rejected %s message (hint=%s, value=%r): %s",
            result.channel,
            result.hint or "-",
            result.value,
            reason.value,
        )
        return result

    def resolve(
        self, db: Session, channel: str, hint: Optional[str]
    ) -> Tuple[Optional[Device], Optional[RejectReason]]:
        candidates: List[Device] = device_registry.find_devices_by_channel(db, channel)
        if not candidates:
            return None, RejectReason.NO_DEVICE_FOR_CHANNEL

        if hint is not None:
            device = next((d for d in candidates if d.device_id == hint), None)
            if device is None:
                # no fallback to unhinted resolution
                return None, RejectReason.HINTED_DEVICE_NOT_FOUND
            if not arbitrator.is_active_device(db, device.user_id, device.device_id):
                return None, RejectReason.DEVICE_NOT_ACTIVE
            return device, None

        # first match wins, candidate order is not a priority
        for device in candidates:
            if arbitrator.is_active_device(db, device.user_id, device.device_id):
                return device, None
        return None, RejectReason.NO_ACTIVE_DEVICE

    def route(self, db: Session, channel: str, payload: Union[bytes, str, dict]) -> RoutingResult:
        """
        Routes one message and commits the accepted reading.

        Persistence errors propagate; the transport layer catches them per
        message.
        """
        hint, value = parse_payload(payload)
        result = RoutingResult(channel=channel, accepted=False, value=value, hint=hint)
        if value is None:
            return self._reject(result, RejectReason.EMPTY_VALUE)

        device, reason = self.resolve(db, channel, hint)
        if device is None:
            return self._reject(result, reason)

        now = self.clock()
        device_registry.set_activity(db, device, now)
        result.reading_id = self.store.insert(
            db,
            channel,
            device_id=device.device_id,
            value=value,
            user_id=device.user_id,
            created_at=now,
        )
        db.commit()

        result.accepted = True
        result.device_id = device.device_id
        result.user_id = device.user_id
        logger.info(
            "Saved %s=%s for device %s (user %s, reading %s)",
            channel,
            value,
            device.device_id,
            device.user_id,
            result.reading_id,
        )

        if channel == self.soil_channel:
            result.evaluation = self._evaluate(db, device, value)
        return result

    def _evaluate(self, db: Session, device: Device, value: str) -> Optional[Evaluation]:
        try:
            moisture = float(value)
        except ValueError:
            logger.warning("Soil moisture %r from device %s is not numeric, not evaluated", value, device.device_id)
            return None
        evaluation = evaluate_device(db, device, moisture)
        logger.info(
            "Device %s moisture %.1f -> %s",
            device.device_id,
            moisture,
            evaluation.action.value,
        )
        return evaluation


default_router = TelemetryRouter()
