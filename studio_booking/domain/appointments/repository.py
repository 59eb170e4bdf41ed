"""Appointment repository - Database operations for appointments"""

from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from ...models import STATUS_SCHEDULED, Appointment


class AppointmentRepository:
    """Repository for appointment database operations"""

    @staticmethod
    def get_by_id(db: Session, appointment_id: str) -> Optional[Appointment]:
        return db.query(Appointment).filter(Appointment.id == appointment_id).first()

    @staticmethod
    def get_all(db: Session) -> list[Appointment]:
        return db.query(Appointment).all()

    @staticmethod
    def get_scheduled(db: Session) -> list[Appointment]:
        """Scheduled appointments, earliest first"""
        return (
            db.query(Appointment)
            .filter(Appointment.status == STATUS_SCHEDULED)
            .order_by(Appointment.appointment_date.asc(), Appointment.appointment_time.asc())
            .all()
        )

    @staticmethod
    def get_booked_dates(db: Session, from_date: Optional[date] = None) -> list[date]:
        query = db.query(Appointment.appointment_date).filter(Appointment.status == STATUS_SCHEDULED)
        if from_date:
            query = query.filter(Appointment.appointment_date >= from_date)
        return sorted({row[0] for row in query.distinct().all()})

    @staticmethod
    def create(db: Session, **appointment_data) -> Appointment:
        appointment = Appointment(**appointment_data)
        db.add(appointment)
        db.commit()
        db.refresh(appointment)
        return appointment

    @staticmethod
    def claim_external_event_id(db: Session, appointment_id: str, event_id: str) -> bool:
        """
        Store the event id only if none is stored yet.
        Returns False when another sync pass got there first.
        """
        updated = (
            db.query(Appointment)
            .filter(Appointment.id == appointment_id, Appointment.external_event_id.is_(None))
            .update({Appointment.external_event_id: event_id}, synchronize_session=False)
        )
        db.commit()
        return updated == 1

    @staticmethod
    def set_status(db: Session, appointment: Appointment, status: str) -> Appointment:
        appointment.status = status
        db.commit()
        db.refresh(appointment)
        return appointment

    @staticmethod
    def delete(db: Session, appointment: Appointment) -> None:
        db.delete(appointment)
        db.commit()
