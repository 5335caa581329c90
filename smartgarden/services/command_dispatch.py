"""
Outbound commands to the device fleet.

A command is a ``(channel, value)`` pair. It goes out over the broker
connection when there is one, otherwise through the REST API. There is no
delivery confirmation either way.
"""
import logging
from typing import Optional

from smartgarden.core.errors import UpstreamError
from smartgarden.services import mqtt_ingestor
from smartgarden.services.adafruit import AdafruitClient

logger = logging.getLogger(__name__)


class CommandDispatcher:
    def __init__(self, client: Optional[AdafruitClient] = None):
        self._client = client

    @property
    def client(self) -> AdafruitClient:
        if self._client is None:
            self._client = AdafruitClient()
        return self._client

    def dispatch(self, channel: str, value) -> str:
        """Sends the command and returns the transport used ("mqtt" or "rest")."""
        value = str(value)
        if mqtt_ingestor.publish(channel, value):
            logger.info("Command %s=%s published", channel, value)
            return "mqtt"

        try:
            self.client.send(channel, value)
        except UpstreamError:
            logger.exception("Command %s=%s could not be sent", channel, value)
            raise
        logger.info("Command %s=%s sent over REST", channel, value)
        return "rest"


dispatcher = CommandDispatcher()
