from typing import Optional
from uuid import UUID
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from evv_service.config import get_settings
from evv_service.db.postgres import get_db
from evv_service.geo.geocoding import build_address_resolver
from evv_service.geo.location import ReportedLocationProvider, resolve_location_options
from evv_service.messaging.rabbitmq import RabbitMQPublisher
from evv_service.visits.event_publisher import VisitEventPublisher
from evv_service.visits.repository import VisitRecordRepository
from evv_service.visits.schemas import (
    CheckInRequest,
    CheckOutRequest,
    CompleteTaskRequest,
    ComplianceMetricsResponse,
    DevicePositionReport,
    ManualLocation,
    ProximityResultSchema,
    SupervisorVerificationRequest,
    VisitListResponse,
    VisitRecordResponse,
    VisitStatusResponse,
    VisitTransitionResponse,
)
from evv_service.visits.service import VisitTransition, VisitVerificationService

router = APIRouter(
    prefix="/evv",
    tags=["evv"],
)


def build_service(
    db: AsyncSession,
    position: Optional[DevicePositionReport] = None,
    manual_location: Optional[ManualLocation] = None,
) -> VisitVerificationService:
    """Wire a VisitVerificationService for one request."""
    settings = get_settings()

    location_provider = ReportedLocationProvider.from_report(
        position.model_dump() if position else None
    )
    fallback_provider = None
    if manual_location is not None:
        fallback_provider = ReportedLocationProvider.from_report(manual_location.model_dump())

    event_publisher = None
    publisher = RabbitMQPublisher.from_settings(settings)
    if publisher is not None:
        event_publisher = VisitEventPublisher(publisher, settings.db_schema)

    return VisitVerificationService(
        repository=VisitRecordRepository(db, settings.db_schema),
        location_provider=location_provider,
        address_resolver=build_address_resolver(settings),
        fallback_provider=fallback_provider,
        proximity_policy=settings.proximity_policy,
        default_proximity_tier=settings.proximity_tier,
        location_options=resolve_location_options(settings.location_accuracy),
        event_publisher=event_publisher,
    )


def _visit_response(record) -> VisitRecordResponse:
    return VisitRecordResponse.from_record(record, get_settings().local_timezone)


def _transition_response(transition: VisitTransition) -> VisitTransitionResponse:
    proximity = None
    if transition.proximity is not None:
        proximity = ProximityResultSchema(**transition.proximity.as_dict())
    return VisitTransitionResponse(
        visit=_visit_response(transition.visit),
        proximity=proximity,
        warnings=transition.warnings,
    )


@router.post("/check-in", response_model=VisitTransitionResponse, status_code=status.HTTP_201_CREATED)
async def check_in(
    request: CheckInRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Check a caregiver in to an appointment.

    Workflow:
    1. Rejects if the appointment already has an open visit
    2. Uses the position reported by the device (or the manual location)
    3. Validates proximity to the expected site and returns any warning
    4. Creates the EVV record with check_in timestamp and location
    """
    service = build_service(db, request.position, request.manual_location)

    transition = await service.check_in(
        appointment_id=request.appointment_id,
        caregiver_id=request.caregiver_id,
        site_address=request.site_address,
        expected_site=request.expected_site,
        proximity_tier=request.proximity_tier,
        device_info=request.device_info,
    )
    return _transition_response(transition)


@router.get("/pending-verifications", response_model=VisitListResponse)
async def list_pending_verifications(
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
):
    """Completed visits awaiting supervisor verification, oldest check-out first."""
    service = build_service(db)
    records = await service.list_pending_verifications(limit=limit)
    return VisitListResponse(
        visits=[_visit_response(r) for r in records],
        count=len(records),
    )


@router.get("/appointments/{appointment_id}", response_model=VisitListResponse)
async def list_appointment_visits(
    appointment_id: str,
    db: AsyncSession = Depends(get_db),
):
    """All EVV records for an appointment, newest first."""
    service = build_service(db)
    records = await service.list_visits_for_appointment(appointment_id)
    return VisitListResponse(
        visits=[_visit_response(r) for r in records],
        count=len(records),
    )


@router.get("/appointments/{appointment_id}/status", response_model=VisitStatusResponse)
async def get_appointment_status(
    appointment_id: str,
    db: AsyncSession = Depends(get_db),
):
    service = build_service(db)
    visit_status, record = await service.get_visit_status(appointment_id)
    return VisitStatusResponse(
        appointment_id=appointment_id,
        status=visit_status.value,
        visit_id=record.id if record else None,
    )


@router.get("/caregivers/{caregiver_id}/metrics", response_model=ComplianceMetricsResponse)
async def get_caregiver_metrics(
    caregiver_id: str,
    db: AsyncSession = Depends(get_db),
):
    """EVV compliance metrics for payroll and performance review."""
    service = build_service(db)
    metrics = await service.get_caregiver_metrics(caregiver_id)
    return ComplianceMetricsResponse(caregiver_id=caregiver_id, **metrics)


@router.get("/{visit_id}", response_model=VisitRecordResponse)
async def get_visit(
    visit_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    """Get EVV record details."""
    service = build_service(db)
    record = await service.get_visit(visit_id)
    return _visit_response(record)


@router.get("/{visit_id}/proximity")
async def get_visit_proximity(
    visit_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    """Recompute proximity of the recorded locations against the expected site."""
    service = build_service(db)
    record = await service.get_visit(visit_id)
    results = service.evaluate_proximity(record)
    return {
        key: ProximityResultSchema(**result.as_dict()) if result else None
        for key, result in results.items()
    }


@router.put("/{visit_id}/tasks/{task_id}", response_model=VisitRecordResponse)
async def complete_task(
    visit_id: UUID,
    task_id: str,
    request: CompleteTaskRequest,
    db: AsyncSession = Depends(get_db),
):
    """Record a task completion on an in-progress visit (replaces earlier entries for the task)."""
    service = build_service(db)
    record = await service.complete_task(
        visit_id=visit_id,
        task_id=task_id,
        name=request.name,
        completed=request.completed,
        notes=request.notes,
    )
    return _visit_response(record)


@router.put("/{visit_id}/check-out", response_model=VisitTransitionResponse)
async def check_out(
    visit_id: UUID,
    request: CheckOutRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Check a caregiver out of a visit.

    Workflow:
    1. Validates the visit is in progress
    2. Re-validates proximity with the position reported at check-out
    3. Merges final tasks and notes, sets check_out_time, marks as completed
    """
    service = build_service(db, request.position, request.manual_location)
    transition = await service.check_out(
        visit_id=visit_id,
        tasks_completed=[task.model_dump() for task in request.tasks_completed],
        caregiver_notes=request.caregiver_notes,
    )
    return _transition_response(transition)


@router.put("/{visit_id}/verification", response_model=VisitRecordResponse)
async def verify_visit(
    visit_id: UUID,
    request: SupervisorVerificationRequest,
    db: AsyncSession = Depends(get_db),
):
    """Supervisor verification of a completed visit (re-verifying overwrites)."""
    service = build_service(db)
    record = await service.supervisor_verify(
        visit_id=visit_id,
        verified_by=request.verified_by,
        verified=request.verified,
        notes=request.notes,
    )
    return _visit_response(record)
