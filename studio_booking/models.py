import uuid

from sqlalchemy import Column, Date, DateTime, String, Text, Time
from sqlalchemy.sql import func

from .database import Base

SERVICE_VIDEO = "video"
SERVICE_PHOTO = "photo"
SERVICE_BOTH = "both"
SERVICE_TYPES = (SERVICE_VIDEO, SERVICE_PHOTO, SERVICE_BOTH)

STATUS_SCHEDULED = "scheduled"
STATUS_CANCELLED = "cancelled"

DEFAULT_CALENDAR_ID = "primary"


def generate_id():
    """Generate an opaque unique ID"""
    return str(uuid.uuid4())


class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(String(36), primary_key=True, default=generate_id)
    appointment_date = Column(Date, nullable=False, index=True)
    appointment_time = Column(Time, nullable=False)
    service_type = Column(String(20), nullable=False)  # video, photo, both
    notes = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default=STATUS_SCHEDULED, index=True)  # scheduled, cancelled

    client_name = Column(String(255), nullable=False)
    client_email = Column(String(255), nullable=False, default="")
    client_phone = Column(String(50), nullable=True)
    client_company = Column(String(255), nullable=True)

    # Google Calendar event id, set once the appointment has been pushed
    external_event_id = Column(String(1024), nullable=True, unique=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    @property
    def is_synced(self) -> bool:
        return bool(self.external_event_id)


class AdminConfig(Base):
    """Singleton row holding the calendar connection and the dashboard access token"""

    __tablename__ = "admin_config"

    id = Column(String(36), primary_key=True)

    # OAuth tokens (encrypted)
    access_token = Column(Text, nullable=True)
    refresh_token = Column(Text, nullable=True)

    calendar_id = Column(String(500), nullable=True)
    google_user_email = Column(String(255), nullable=True)

    # Secret in the dashboard link
    admin_token = Column(String(255), nullable=True, unique=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
