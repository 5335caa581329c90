import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from smartgarden.core.config import settings
from smartgarden.db.channel_tables import feed_store
from smartgarden.services import device_registry

logger = logging.getLogger(__name__)


@dataclass
class Summary:
    records: List[Dict[str, Any]] = field(default_factory=list)
    counts: Dict[str, int] = field(default_factory=dict)
    activations: int = 0
    total: int = 0


def summarize(rows: Iterable[Dict[str, Any]], on: str = "1", off: str = "0") -> Summary:
    """
    Run-length compresses chronologically ordered records to their transition
    points, in one forward pass.

    ``counts`` is taken over the compressed sequence; ``activations`` counts
    ``off -> on`` transitions in it.
    """
    summary = Summary()
    last: Optional[str] = None
    for row in rows:
        summary.total += 1
        value = str(row["value"]).strip()
        if value == last:
            continue
        if last == off and value == on:
            summary.activations += 1
        summary.records.append(row)
        summary.counts[value] = summary.counts.get(value, 0) + 1
        last = value
    return summary


def _binary_history(db: Session, channel: str, user_id: UUID, device_id: str) -> Summary:
    device_registry.get_user_device(db, user_id, device_id)
    rows = feed_store.find(db, channel, user_id=user_id, device_id=device_id, newest_first=False)
    return summarize(rows)


def mode_summary(db: Session, user_id: UUID, device_id: str) -> Dict[str, Any]:
    # "0" is automatic mode, "1" manual
    summary = _binary_history(db, settings.MODE_CHANNEL, user_id, device_id)
    return {
        "deviceId": device_id,
        "records": summary.records,
        "autoMode": summary.counts.get("0", 0),
        "manualMode": summary.counts.get("1", 0),
        "total": summary.total,
        "filtered": len(summary.records),
    }


def pump_summary(db: Session, user_id: UUID, device_id: str) -> Dict[str, Any]:
    summary = _binary_history(db, settings.PUMP_CHANNEL, user_id, device_id)
    return {
        "deviceId": device_id,
        "records": summary.records,
        "off": summary.counts.get("0", 0),
        "on": summary.counts.get("1", 0),
        "activations": summary.activations,
        "total": summary.total,
        "filtered": len(summary.records),
    }


def _mean(values: List[float]) -> float:
    return round(sum(values) / len(values), 2) if values else 0


def daily_averages(rows: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    buckets: Dict[str, List[float]] = defaultdict(list)
    for row in rows:
        try:
            value = float(row["value"])
        except (TypeError, ValueError):
            continue
        buckets[row["created_at"].date().isoformat()].append(value)
    return [{"date": day, "avgMoisture": _mean(buckets[day])} for day in sorted(buckets)]


def average_soil_moisture(db: Session, user_id: UUID, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    """
    Daily soil-moisture averages of every device of the user over the last 30
    days, plus the mean of the daily averages for the last 7 and 30 days.
    """
    now = now or datetime.utcnow()
    since_30 = now - timedelta(days=30)
    since_7 = (now - timedelta(days=7)).date().isoformat()

    result = []
    for device in device_registry.list_user_devices(db, user_id):
        rows = feed_store.find(
            db,
            settings.SOIL_MOISTURE_CHANNEL,
            user_id=user_id,
            device_id=device.device_id,
            since=since_30,
            newest_first=False,
        )
        days = daily_averages(rows)
        result.append(
            {
                "deviceId": device.device_id,
                "deviceName": device.name,
                "dailyAverages": days,
                "last7DaysAvg": _mean([d["avgMoisture"] for d in days if d["date"] >= since_7]),
                "last30DaysAvg": _mean([d["avgMoisture"] for d in days]),
            }
        )
    return result
