from evv_service.visits.models import VisitRecord, VisitStatus
from evv_service.visits.repository import VisitRecordRepository
from evv_service.visits.service import VisitTransition, VisitVerificationService

__all__ = [
    "VisitRecord",
    "VisitStatus",
    "VisitRecordRepository",
    "VisitTransition",
    "VisitVerificationService",
]
