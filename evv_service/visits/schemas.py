from uuid import UUID
from datetime import datetime
from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, Field
from evv_service.geo.distance import ProximityTier
from evv_service.utils.timezone import DEFAULT_LOCAL_TZ, convert_to_local
from evv_service.visits.summary import format_duration, visit_duration


class CoordinateSchema(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class DevicePositionReport(BaseModel):
    """Position (or positioning error) captured by the caregiver's device"""
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    accuracy_meters: Optional[float] = Field(None, ge=0)
    captured_at: Optional[datetime] = None
    error_code: Optional[Union[int, str]] = None  # unsupported | permission_denied | unavailable | timeout | 1-3
    error_message: Optional[str] = None


class ManualLocation(BaseModel):
    """Location entered by hand when the device cannot provide one"""
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    accuracy_meters: float = Field(0.0, ge=0)


class TaskCompletionRequest(BaseModel):
    task_id: str
    name: str
    completed: bool = True
    notes: str = ""


class CheckInRequest(BaseModel):
    """Request to check in to an appointment"""
    appointment_id: str
    caregiver_id: str
    position: Optional[DevicePositionReport] = None
    manual_location: Optional[ManualLocation] = None
    expected_site: Optional[CoordinateSchema] = None
    proximity_tier: Optional[ProximityTier] = None
    site_address: Optional[str] = None
    device_info: Optional[Dict[str, Any]] = None


class CompleteTaskRequest(BaseModel):
    """Request to record a task completion (upsert by task id)"""
    name: str
    completed: bool = True
    notes: str = ""


class CheckOutRequest(BaseModel):
    """Request to check out of a visit"""
    position: Optional[DevicePositionReport] = None
    manual_location: Optional[ManualLocation] = None
    tasks_completed: List[TaskCompletionRequest] = []
    caregiver_notes: Optional[str] = None


class SupervisorVerificationRequest(BaseModel):
    """Supervisor sign-off on a completed visit"""
    verified_by: str
    verified: bool = True
    notes: str = ""


class LocationSnapshot(BaseModel):
    latitude: float
    longitude: float
    accuracy_meters: float
    captured_at: Optional[datetime] = None
    address: Optional[str] = None
    source: str = "device"


class TaskCompletionSchema(BaseModel):
    task_id: str
    name: str
    completed: bool
    notes: str = ""
    completed_at: Optional[datetime] = None


class SupervisorVerificationSchema(BaseModel):
    verified: bool
    verified_by: str
    verified_at: datetime
    notes: str = ""


class ProximityResultSchema(BaseModel):
    is_valid: bool
    distance_meters: Optional[float] = None
    threshold_meters: Optional[float] = None
    message: str


class VisitRecordResponse(BaseModel):
    """EVV record response"""
    id: UUID
    appointment_id: str
    caregiver_id: str
    site_address: Optional[str] = None
    check_in_time: Optional[datetime] = None
    check_in_location: Optional[LocationSnapshot] = None
    check_out_time: Optional[datetime] = None
    check_out_location: Optional[LocationSnapshot] = None
    tasks_completed: List[TaskCompletionSchema] = []
    caregiver_notes: str = ""
    status: str  # in_progress | completed
    supervisor_verification: Optional[SupervisorVerificationSchema] = None
    device_info: Optional[Dict[str, Any]] = None
    duration: str = "Incomplete"
    check_in_time_local: Optional[datetime] = None
    check_out_time_local: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record, tz_name: str = DEFAULT_LOCAL_TZ) -> "VisitRecordResponse":
        return cls(
            id=record.id,
            appointment_id=record.appointment_id,
            caregiver_id=record.caregiver_id,
            site_address=record.site_address,
            check_in_time=record.check_in_time,
            check_in_location=record.check_in_location,
            check_out_time=record.check_out_time,
            check_out_location=record.check_out_location,
            tasks_completed=record.tasks_completed or [],
            caregiver_notes=record.caregiver_notes or "",
            status=record.status,
            supervisor_verification=record.supervisor_verification,
            device_info=record.device_info,
            duration=format_duration(visit_duration(record)),
            check_in_time_local=convert_to_local(record.check_in_time, tz_name),
            check_out_time_local=convert_to_local(record.check_out_time, tz_name),
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


class VisitTransitionResponse(BaseModel):
    """Result of a check-in or check-out"""
    visit: VisitRecordResponse
    proximity: Optional[ProximityResultSchema] = None
    warnings: List[str] = []


class VisitListResponse(BaseModel):
    visits: List[VisitRecordResponse]
    count: int


class VisitStatusResponse(BaseModel):
    appointment_id: str
    status: str  # not_started | in_progress | completed
    visit_id: Optional[UUID] = None


class ComplianceMetricsResponse(BaseModel):
    caregiver_id: str
    total_visits: int
    completed_visits: int
    verified_visits: int
    compliance_rate: float
    verification_rate: float
    average_accuracy_meters: Optional[float] = None
    total_billable_hours: float
