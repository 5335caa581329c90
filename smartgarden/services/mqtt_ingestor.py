import logging
import ssl
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional

import paho.mqtt.client as mqtt
from sqlalchemy.orm import Session

from smartgarden.core.config import settings
from smartgarden.db.session import SessionLocal
from smartgarden.services.telemetry_router import RoutingResult, TelemetryRouter, default_router

logger = logging.getLogger(__name__)

_mqtt_client: Optional[mqtt.Client] = None
_executor: Optional[ThreadPoolExecutor] = None
_lock = threading.Lock()


def channel_from_topic(topic: str) -> Optional[str]:
    """``<username>/feeds/<channel>`` -> ``<channel>``."""
    parts = topic.split("/")
    if len(parts) < 3 or parts[-2] != "feeds" or not parts[-1]:
        return None
    return parts[-1]


def handle_message(
    topic: str,
    payload: bytes,
    session_factory: Callable[[], Session] = SessionLocal,
    router: TelemetryRouter = default_router,
) -> Optional[RoutingResult]:
    """
    Routes one broker message in its own session.

    Any failure is logged and swallowed here so the next message is still
    processed.
    """
    channel = channel_from_topic(topic)
    if channel is None:
        logger.debug("Ignoring message on unexpected topic %s", topic)
        return None

    db = session_factory()
    try:
        return router.route(db, channel, payload)
    except Exception:
        db.rollback()
        logger.exception("Error processing message on %s", topic)
        return None
    finally:
        db.close()


# ========= MQTT callbacks =========

def _on_connect(client: mqtt.Client, userdata, flags, reason_code, properties=None):
    if reason_code.is_failure:
        logger.error("Connection to broker failed: %s", reason_code)
        return
    logger.info("Connected to %s:%s", settings.MQTT_BROKER_HOST, settings.MQTT_BROKER_PORT)
    # subscriptions are not kept across reconnects with a clean session
    for channel in dict.fromkeys(settings.FEED_NAMES):
        topic = settings.feed_topic(channel)
        client.subscribe(topic)
        logger.info("Subscribed to %s", topic)


def _on_disconnect(client: mqtt.Client, userdata, flags, reason_code, properties=None):
    if reason_code.is_failure:
        logger.warning("Disconnected from broker: %s, reconnecting", reason_code)
    else:
        logger.info("Disconnected from broker")


def _on_message(client: mqtt.Client, userdata, msg: mqtt.MQTTMessage):
    # keep the network loop free: routing touches the database
    executor = _executor
    if executor is None:
        handle_message(msg.topic, msg.payload)
        return
    executor.submit(handle_message, msg.topic, msg.payload)


# ========= Lifecycle =========

def start_mqtt_ingestor():
    """
    Creates the client, connects to the broker and runs the network loop in a
    daemon thread. Called from the FastAPI startup event.
    """
    global _mqtt_client, _executor
    with _lock:
        if _mqtt_client is not None:
            return

        settings.require_broker_credentials()

        client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id="smartgarden-ingestor",
            clean_session=True,
        )
        client.username_pw_set(settings.AIO_USERNAME, settings.AIO_KEY)
        if settings.MQTT_USE_TLS:
            client.tls_set(tls_version=ssl.PROTOCOL_TLS_CLIENT)
        client.reconnect_delay_set(min_delay=1, max_delay=30)

        client.on_connect = _on_connect
        client.on_disconnect = _on_disconnect
        client.on_message = _on_message

        logger.info("Connecting to %s:%s ...", settings.MQTT_BROKER_HOST, settings.MQTT_BROKER_PORT)
        try:
            client.connect(settings.MQTT_BROKER_HOST, settings.MQTT_BROKER_PORT, keepalive=settings.MQTT_KEEPALIVE)
        except OSError:
            logger.exception("Could not connect to %s:%s", settings.MQTT_BROKER_HOST, settings.MQTT_BROKER_PORT)
            raise

        # messages only flow once the loop runs, the pool is ready before that
        _executor = ThreadPoolExecutor(max_workers=settings.INGEST_WORKERS, thread_name_prefix="ingest")

        thread = threading.Thread(target=client.loop_forever, name="mqtt-ingestor", daemon=True)
        thread.start()

        _mqtt_client = client
    logger.info("MQTT ingestor started")


def stop_mqtt_ingestor():
    global _mqtt_client, _executor
    with _lock:
        client, executor = _mqtt_client, _executor
        _mqtt_client = None
        _executor = None
    if client is not None:
        client.disconnect()
    if executor is not None:
        executor.shutdown(wait=True)
    logger.info("MQTT ingestor stopped")


def publish(channel: str, value: str) -> bool:
    """
    Publishes ``value`` on the channel's feed topic. Fire-and-forget: returns
    False when there is no connected client, True once the message is queued.
    """
    client = _mqtt_client
    if client is None or not client.is_connected():
        return False
    info = client.publish(settings.feed_topic(channel), value)
    if info.rc != mqtt.MQTT_ERR_SUCCESS:
        logger.warning("Publish to %s failed: %s", channel, mqtt.error_string(info.rc))
        return False
    return True
