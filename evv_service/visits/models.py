from enum import Enum
from uuid import uuid4
from sqlalchemy import JSON, Column, DateTime, Float, String, Text, Uuid
from evv_service.db.base import Base
from evv_service.utils.timezone import utcnow


class VisitStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class VisitRecord(Base):
    """
    EVV record for one caregiver visit.

    open_appointment_id mirrors appointment_id while the visit is open and is
    cleared on check-out; its unique constraint allows a single open visit
    per appointment.
    """
    __tablename__ = "evv_records"
    __table_args__ = {'extend_existing': True}

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    appointment_id = Column(String(64), nullable=False, index=True)
    caregiver_id = Column(String(64), nullable=False, index=True)
    open_appointment_id = Column(String(64), unique=True, nullable=True)
    site_address = Column(Text, nullable=True)
    expected_latitude = Column(Float, nullable=True)
    expected_longitude = Column(Float, nullable=True)
    proximity_tier = Column(String(20), nullable=True)
    check_in_time = Column(DateTime, nullable=True)
    check_in_location = Column(JSON, nullable=True)
    check_out_time = Column(DateTime, nullable=True)
    check_out_location = Column(JSON, nullable=True)
    tasks_completed = Column(JSON, nullable=False, default=list)
    caregiver_notes = Column(Text, nullable=False, default="")
    status = Column(String(20), default=VisitStatus.IN_PROGRESS.value, nullable=False, index=True)
    supervisor_verification = Column(JSON, nullable=True)
    device_info = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
