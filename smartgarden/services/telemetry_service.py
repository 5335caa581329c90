"""
Readings queries, polled fetch from the REST API and outbound commands.
"""
import csv
import logging
from datetime import datetime
from io import StringIO
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from smartgarden.core.clock import utc_naive
from smartgarden.core.config import settings
from smartgarden.core.errors import NotFoundError, PermissionDenied, UpstreamError, ValidationError
from smartgarden.db.channel_tables import feed_store
from smartgarden.services import arbitrator, device_registry
from smartgarden.services.adafruit import AdafruitClient
from smartgarden.services.command_dispatch import CommandDispatcher, dispatcher as default_dispatcher

logger = logging.getLogger(__name__)

DEVICE_DATA_PER_CHANNEL = 20


def _require_feed(channel: str) -> None:
    if channel not in settings.FEED_NAMES:
        raise ValidationError(f"Invalid feed name: {channel}")


def _parse_remote_time(value: Optional[str]) -> datetime:
    if not value:
        return datetime.utcnow()
    try:
        return utc_naive(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError:
        return datetime.utcnow()


# ========= Polled fetch =========

def fetch_data(
    db: Session,
    device_id: Optional[str] = None,
    user_id: Optional[UUID] = None,
    client: Optional[AdafruitClient] = None,
) -> Dict[str, Any]:
    """
    Pulls the latest value of each channel from the REST API and stores it.

    For a specific device under active-device gating, nothing is fetched or
    stored unless it is its user's active device; a ``skipped`` result is
    returned instead. A failing channel is reported in its own entry.
    """
    device = None
    channels = list(settings.FEED_NAMES)

    if device_id:
        device = device_registry.get_device(db, device_id)
        if device is None:
            raise NotFoundError(f"Device {device_id} not found")
        if device.channels:
            channels = device.channels

        if user_id is not None and settings.SAVE_FOR_ACTIVE_DEVICES_ONLY:
            active = arbitrator.get_active(db, user_id)
            if active != device_id:
                logger.warning(
                    "Skipping fetch for non-active device %s (active: %s)", device_id, active or "none"
                )
                return {"skipped": True, "reason": "Not active device", "deviceId": device_id}

    client = client or AdafruitClient()
    results: Dict[str, Any] = {}
    for channel in channels:
        try:
            latest = client.latest(channel)
            if latest is None:
                results[channel] = {"success": False, "error": "No data found"}
                continue

            value = str(latest.get("value"))
            saved_id = feed_store.insert(
                db,
                channel,
                device_id=device_id or "unknown",
                user_id=device.user_id if device else None,
                value=value,
                created_at=_parse_remote_time(latest.get("created_at")),
            )
            db.commit()
            results[channel] = {"success": True, "value": value, "deviceId": device_id, "savedId": saved_id}
            logger.info("Fetched %s=%s for device %s", channel, value, device_id or "unknown")
        except (UpstreamError, SQLAlchemyError) as e:
            db.rollback()
            logger.error("Fetching %s failed: %s", channel, e)
            results[channel] = {"success": False, "error": str(e)}
    return results


# ========= Queries =========

def latest_for_user(db: Session, user_id: UUID) -> Dict[str, Any]:
    channels = dict.fromkeys(
        channel for device in device_registry.list_user_devices(db, user_id) for channel in device.channels
    )
    data = {}
    for channel in channels:
        row = feed_store.latest(db, channel, user_id=user_id)
        data[channel] = (
            {"value": row["value"], "timestamp": row["created_at"], "deviceId": row["device_id"]}
            if row
            else {"value": None, "timestamp": None, "deviceId": None}
        )
    return data


def channel_history(
    db: Session, user_id: UUID, channel: str, device_id: Optional[str] = None, limit: int = 24
) -> List[Dict[str, Any]]:
    if channel not in settings.FEED_NAMES:
        raise NotFoundError(f"Feed {channel} not found")

    if device_id:
        device = device_registry.get_user_device(db, user_id, device_id)
        if not device.supports(channel):
            raise ValidationError(f"Device {device_id} does not support {channel}")
    elif not any(d.supports(channel) for d in device_registry.list_user_devices(db, user_id)):
        return []

    return feed_store.find(db, channel, user_id=user_id, device_id=device_id, limit=limit)


def history_csv(rows: Iterable[Dict[str, Any]]) -> StringIO:
    output = StringIO()
    writer = csv.writer(output, delimiter=";")
    writer.writerow(["timestamp", "deviceId", "value"])
    for row in rows:
        writer.writerow([row["created_at"].isoformat(), row["device_id"], row["value"]])
    output.seek(0)
    return output


def device_data(db: Session, user_id: UUID, device_id: str) -> Dict[str, Any]:
    device = device_registry.get_user_device(db, user_id, device_id)
    readings = []
    for channel in device.channels:
        for row in feed_store.find(db, channel, device_id=device_id, limit=DEVICE_DATA_PER_CHANNEL):
            readings.append({"channel": channel, "value": row["value"], "timestamp": row["created_at"]})
    readings.sort(key=lambda r: r["timestamp"], reverse=True)
    return {
        "device": {"id": device.device_id, "name": device.name, "channels": device.channels},
        "data": readings,
    }


def latest_moisture(db: Session, user_id: UUID, device_id: str) -> Optional[Dict[str, Any]]:
    channel = settings.SOIL_MOISTURE_CHANNEL
    device = device_registry.get_user_device(db, user_id, device_id)
    if not device.supports(channel):
        raise ValidationError(f"Device {device_id} has no soil moisture sensor")

    row = feed_store.latest(db, channel, device_id=device_id)
    if row is None:
        return None
    try:
        value = float(row["value"])
    except ValueError:
        value = None
    return {"value": value, "timestamp": row["created_at"]}


def feed_value(db: Session, user_id: UUID, channel: str) -> Dict[str, Any]:
    """Latest value of a channel across the user's devices."""
    _require_feed(channel)
    row = feed_store.latest(db, channel, user_id=user_id)
    if row is None:
        raise NotFoundError(f"No data found for {channel}")
    return {"channel": channel, "value": row["value"], "timestamp": row["created_at"], "deviceId": row["device_id"]}


def device_feed_value(db: Session, user_id: UUID, device_id: str, channel: str) -> Optional[Dict[str, Any]]:
    _require_feed(channel)
    device = device_registry.get_user_device(db, user_id, device_id)
    if not device.supports(channel):
        raise ValidationError(f"Device {device_id} does not support {channel}")
    row = feed_store.latest(db, channel, device_id=device_id)
    if row is None:
        return None
    return {"deviceId": device_id, "channel": channel, "value": row["value"], "timestamp": row["created_at"]}


# ========= Commands =========

def send_command(
    db: Session,
    user_id: UUID,
    channel: str,
    value: Any,
    device_id: Optional[str] = None,
    dispatcher: CommandDispatcher = default_dispatcher,
) -> str:
    if value is None or str(value) == "":
        raise ValidationError("Missing required parameters: feedName and value")
    _require_feed(channel)

    if device_id:
        device = device_registry.get_user_device(db, user_id, device_id)
        if not device.supports(channel):
            raise ValidationError(f"Device {device_id} does not support {channel}")
        if settings.SAVE_FOR_ACTIVE_DEVICES_ONLY:
            active = arbitrator.get_active(db, user_id)
            if active != device_id:
                raise PermissionDenied(
                    f"Commands can only be sent to the active device ({active or 'not set'})",
                    detail={"activeDeviceId": active},
                )
    elif not any(d.supports(channel) for d in device_registry.list_user_devices(db, user_id)):
        raise PermissionDenied(f"No device of yours accepts {channel}")

    transport = dispatcher.dispatch(channel, value)
    logger.info("User %s sent %s=%s (device %s) via %s", user_id, channel, value, device_id or "-", transport)
    return transport
