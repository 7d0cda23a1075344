"""Custom exceptions for EVV visits"""
from fastapi import HTTPException, status


class VisitNotFoundException(HTTPException):
    """Raised when an EVV record is not found"""
    def __init__(self, visit_id=None):
        detail = "Visit record not found"
        if visit_id:
            detail = f"Visit record {visit_id} not found"
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class AlreadyCheckedInException(HTTPException):
    """Raised when checking in to an appointment that already has an open visit"""
    def __init__(self, appointment_id: str = None):
        detail = "Caregiver is already checked in for this appointment"
        if appointment_id:
            detail = f"Caregiver is already checked in for appointment {appointment_id}"
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class VisitNotInProgressException(HTTPException):
    """Raised when a visit must be in progress (task completion, check-out)"""
    def __init__(self, current_status: str = None):
        if current_status:
            detail = f"Visit is not in progress (status: {current_status})"
        else:
            detail = "No visit in progress: check in first"
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class VisitNotCompletedException(HTTPException):
    """Raised when verifying a visit that has not been checked out"""
    def __init__(self, current_status: str = None):
        if current_status:
            detail = f"Only completed visits can be verified (status: {current_status})"
        else:
            detail = "Only completed visits can be verified"
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class InvalidVisitTimesException(HTTPException):
    """Raised when check_out_time is before check_in_time"""
    def __init__(self):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Check-out time cannot be before check-in time"
        )


class LocationUnavailableException(HTTPException):
    """Raised when no location could be acquired for a check-in/check-out"""
    def __init__(self, message: str, reason: str = None):
        self.reason = reason
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Unable to determine location: {message}"
        )


class ProximityCheckFailedException(HTTPException):
    """Raised when the proximity policy blocks a check-in/check-out"""
    def __init__(self, message: str):
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Location verification failed: {message}"
        )


class PersistenceFailedException(HTTPException):
    """Raised when the EVV record store fails"""
    def __init__(self, operation: str):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Could not {operation} the visit record. Please try again."
        )
