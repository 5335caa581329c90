import logging

import uvicorn
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from smartgarden.api import areas, auth, devices, iot, schedules, summaries, telemetry, users
from smartgarden.core.config import settings
from smartgarden.core.errors import GardenError
from smartgarden.core.logging_config import setup_logging
from smartgarden.db.init_db import init_db
from smartgarden.services.mqtt_ingestor import start_mqtt_ingestor, stop_mqtt_ingestor
from smartgarden.services.watering_scheduler import watering_scheduler

logger = logging.getLogger(__name__)

app = FastAPI(title="Smart Garden")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router)
app.include_router(users.router)
app.include_router(areas.router)
app.include_router(devices.router)
app.include_router(telemetry.router)
app.include_router(iot.router)
app.include_router(summaries.router)
app.include_router(schedules.router)


@app.exception_handler(GardenError)
def garden_error_handler(request: Request, exc: GardenError):
    if exc.http_status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    body = {"success": False, "message": exc.message}
    if exc.detail:
        body["detail"] = jsonable_encoder(exc.detail)
    return JSONResponse(status_code=exc.http_status, content=body)


@app.on_event("startup")
def on_startup():
    setup_logging(settings.LOG_LEVEL)
    init_db()
    if settings.MQTT_ENABLED:
        # raises ConfigurationError and aborts startup when credentials are missing
        settings.require_broker_credentials()
        start_mqtt_ingestor()
    watering_scheduler.initialize()


@app.on_event("shutdown")
def on_shutdown():
    watering_scheduler.shutdown()
    stop_mqtt_ingestor()


def main():
    uvicorn.run("smartgarden.main:app", host="0.0.0.0", port=8000)
