"""Validation logic for EVV visit transitions"""
from datetime import datetime
from typing import Optional
from evv_service.visits.exceptions import (
    InvalidVisitTimesException,
    VisitNotCompletedException,
    VisitNotInProgressException,
)
from evv_service.visits.models import VisitRecord, VisitStatus


class VisitValidator:
    """Validates visit lifecycle rules"""

    def validate_in_progress(self, record: Optional[VisitRecord]) -> VisitRecord:
        """Visit must exist and be checked in but not out"""
        if record is None:
            raise VisitNotInProgressException()
        if record.status != VisitStatus.IN_PROGRESS.value or record.check_in_time is None:
            raise VisitNotInProgressException(record.status)
        return record

    def validate_completed(self, record: Optional[VisitRecord]) -> VisitRecord:
        """Visit must exist and be checked out"""
        if record is None:
            raise VisitNotCompletedException()
        if record.status != VisitStatus.COMPLETED.value or record.check_out_time is None:
            raise VisitNotCompletedException(record.status)
        return record

    def validate_visit_times(self, check_in_time: datetime, check_out_time: datetime) -> None:
        """check_out_time must not precede check_in_time"""
        if check_in_time is None or check_out_time < check_in_time:
            raise InvalidVisitTimesException()
