from smartgarden.core.config import settings
from smartgarden.db.base import Base
from smartgarden.db.channel_tables import channel_tables
from smartgarden.db.session import engine

# register the ORM tables on Base.metadata
from smartgarden.models import area, device, schedule, user  # noqa: F401


def init_db(bind=engine):
    Base.metadata.create_all(bind=bind)
    # configured feeds are created up front; any other channel is created on first write
    for channel in settings.FEED_NAMES:
        channel_tables.ensure(bind, channel)
