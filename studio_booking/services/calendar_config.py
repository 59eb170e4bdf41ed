"""
Calendar configuration store

Wraps the singleton admin_config row. Sync code receives a store instance
and only talks to it through ``load()`` and ``save_access_token()``.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from ..config import ADMIN_CONFIG_ID
from ..models import DEFAULT_CALENDAR_ID, AdminConfig
from ..security import decrypt_token_or_none, encrypt_token

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CalendarSettings:
    refresh_token: Optional[str]
    access_token: Optional[str]
    calendar_id: str = DEFAULT_CALENDAR_ID
    google_user_email: Optional[str] = None

    @property
    def connected(self) -> bool:
        return bool(self.refresh_token)


class CalendarConfigStore:
    """admin_config accessor/mutator backed by a SQLAlchemy session"""

    def __init__(self, db: Session, config_id: str = ADMIN_CONFIG_ID):
        self.db = db
        self.config_id = config_id

    def _row(self) -> Optional[AdminConfig]:
        return self.db.query(AdminConfig).filter(AdminConfig.id == self.config_id).first()

    def _row_or_create(self) -> AdminConfig:
        row = self._row()
        if row is None:
            row = AdminConfig(id=self.config_id, calendar_id=DEFAULT_CALENDAR_ID)
            self.db.add(row)
        return row

    def load(self) -> Optional[CalendarSettings]:
        row = self._row()
        if row is None:
            return None
        return CalendarSettings(
            refresh_token=decrypt_token_or_none(row.refresh_token),
            access_token=decrypt_token_or_none(row.access_token),
            calendar_id=row.calendar_id or DEFAULT_CALENDAR_ID,
            google_user_email=row.google_user_email,
        )

    def save_access_token(self, access_token: str) -> None:
        row = self._row_or_create()
        row.access_token = encrypt_token(access_token)
        self.db.commit()

    def save_connection(self, access_token: str, refresh_token: str, google_user_email: Optional[str]) -> None:
        row = self._row_or_create()
        row.access_token = encrypt_token(access_token)
        row.refresh_token = encrypt_token(refresh_token)
        row.google_user_email = google_user_email
        self.db.commit()
        logger.info(f"✅ Google Calendar connected: {google_user_email or 'unknown account'}")

    def set_calendar_id(self, calendar_id: Optional[str]) -> str:
        row = self._row_or_create()
        row.calendar_id = (calendar_id or "").strip() or DEFAULT_CALENDAR_ID
        self.db.commit()
        return row.calendar_id

    def ensure_admin_token(self, admin_token: str) -> None:
        """Seed or rotate the dashboard access token"""
        row = self._row_or_create()
        if row.admin_token != admin_token:
            row.admin_token = admin_token
            self.db.commit()
            logger.info("🔑 Admin access token updated")

    def clear_connection(self) -> None:
        row = self._row()
        if row is None:
            return
        row.access_token = None
        row.refresh_token = None
        row.google_user_email = None
        self.db.commit()
