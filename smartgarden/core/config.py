from typing import List, Optional

from pydantic_settings import BaseSettings

from smartgarden.core.errors import ConfigurationError


class Settings(BaseSettings):
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 1000
    DATABASE_URL: str

    # Adafruit IO credentials, shared by the broker and the REST API
    AIO_USERNAME: Optional[str] = None
    AIO_KEY: Optional[str] = None
    AIO_API_URL: str = "https://io.adafruit.com/api/v2"
    HTTP_TIMEOUT_SECONDS: float = 10.0

    MQTT_ENABLED: bool = True
    MQTT_BROKER_HOST: str = "io.adafruit.com"
    MQTT_BROKER_PORT: int = 8883
    MQTT_USE_TLS: bool = True
    MQTT_KEEPALIVE: int = 60
    INGEST_WORKERS: int = 4

    FEED_NAMES: List[str] = ["sensor-temp", "sensor-soil", "sensor-humidity", "mode", "pump-motor"]
    SOIL_MOISTURE_CHANNEL: str = "sensor-soil"
    MODE_CHANNEL: str = "mode"
    PUMP_CHANNEL: str = "pump-motor"
    SCHEDULE_CHANNEL: str = "schedule-status"

    # only the user's active device may have telemetry saved / receive commands
    SAVE_FOR_ACTIVE_DEVICES_ONLY: bool = True

    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:5500",
    ]

    class Config:
        env_file = ".env"

    def require_broker_credentials(self) -> None:
        """
        Refuses to go on when the cloud broker credentials are missing.
        Called at startup, before telemetry ingestion is launched.
        """
        missing = [name for name in ("AIO_USERNAME", "AIO_KEY") if not getattr(self, name)]
        if missing:
            raise ConfigurationError(
                f"Missing environment variables: {', '.join(missing)}",
                detail={"missing": missing},
            )

    def feed_topic(self, channel: str) -> str:
        return f"{self.AIO_USERNAME}/feeds/{channel}"


settings = Settings()
