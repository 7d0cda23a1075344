import logging
from datetime import datetime
from dataclasses import dataclass, field
from uuid import UUID
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple
from evv_service.config import PROXIMITY_POLICY_BLOCK, PROXIMITY_POLICY_FLAG
from evv_service.geo.distance import DEFAULT_PROXIMITY_TIER, ProximityTier, resolve_threshold, validate_proximity
from evv_service.geo.geocoding import AddressResolver, CoordinateLabelResolver, coordinate_label
from evv_service.geo.location import (
    LocationError,
    LocationOptions,
    LocationProvider,
    format_location_for_evv,
)
from evv_service.geo.models import Coordinate, LocationReading, ProximityResult
from evv_service.utils.timezone import isoformat_utc, utcnow
from evv_service.visits.exceptions import (
    AlreadyCheckedInException,
    LocationUnavailableException,
    ProximityCheckFailedException,
    VisitNotFoundException,
    VisitNotInProgressException,
)
from evv_service.visits.models import VisitRecord, VisitStatus
from evv_service.visits.summary import compute_compliance_metrics
from evv_service.visits.validators import VisitValidator

logger = logging.getLogger(__name__)

SOURCE_DEVICE = "device"
SOURCE_MANUAL = "manual"


@dataclass
class VisitTransition:
    """Outcome of a check-in or check-out"""
    visit: VisitRecord
    proximity: Optional[ProximityResult] = None
    warnings: List[str] = field(default_factory=list)


def upsert_task(tasks: Iterable[Dict[str, Any]], entry: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Return a new task list with ``entry`` replacing any entry sharing its task_id."""
    updated = []
    replaced = False
    for task in tasks or []:
        if task.get("task_id") == entry["task_id"]:
            if not replaced:
                updated.append(entry)
                replaced = True
            continue
        updated.append(task)
    if not replaced:
        updated.append(entry)
    return updated


def _task_entry(task: Mapping[str, Any]) -> Dict[str, Any]:
    completed_at = task.get("completed_at") or utcnow()
    if isinstance(completed_at, datetime):
        completed_at = isoformat_utc(completed_at)
    return {
        "task_id": str(task["task_id"]),
        "name": task.get("name") or "",
        "completed": bool(task.get("completed", True)),
        "notes": task.get("notes") or "",
        "completed_at": completed_at,
    }


class VisitVerificationService:
    """
    Visit lifecycle: check-in -> task completion -> check-out -> supervisor verification.

    The location provider, address resolver and store are injected so the
    same lifecycle runs against a phone-reported position, a positioning
    platform or a test double.
    """

    def __init__(
        self,
        repository,
        location_provider: LocationProvider,
        address_resolver: Optional[AddressResolver] = None,
        fallback_provider: Optional[LocationProvider] = None,
        proximity_policy: str = PROXIMITY_POLICY_FLAG,
        default_proximity_tier: ProximityTier = DEFAULT_PROXIMITY_TIER,
        location_options: Optional[LocationOptions] = None,
        event_publisher=None,
    ):
        self.repository = repository
        self.location_provider = location_provider
        self.address_resolver = address_resolver or CoordinateLabelResolver()
        self.fallback_provider = fallback_provider
        self.proximity_policy = proximity_policy
        self.default_proximity_tier = ProximityTier(default_proximity_tier)
        self.location_options = location_options
        self.event_publisher = event_publisher
        self.validator = VisitValidator()

    async def _acquire_location(self) -> Tuple[LocationReading, str]:
        try:
            reading = await self.location_provider.get_current_location(self.location_options)
            return reading, SOURCE_DEVICE
        except LocationError as e:
            if self.fallback_provider is None:
                logger.warning(f"Location acquisition failed ({e.reason}): {e.message}")
                raise LocationUnavailableException(e.message, e.reason) from e
            logger.warning(f"Device location failed ({e.reason}); using manual location")

        try:
            reading = await self.fallback_provider.get_current_location(self.location_options)
        except LocationError as e:
            raise LocationUnavailableException(e.message, e.reason) from e
        return reading, SOURCE_MANUAL

    async def _resolve_address(self, reading: LocationReading) -> str:
        try:
            return await self.address_resolver.reverse_geocode(reading.coordinate)
        except Exception as e:
            logger.warning(f"Address resolution failed, using coordinates: {e}")
            return coordinate_label(reading.latitude, reading.longitude)

    def _check_proximity(
        self,
        reading: LocationReading,
        expected_site: Optional[Coordinate],
        tier,
    ) -> Tuple[Optional[ProximityResult], List[str]]:
        if expected_site is None:
            return None, []

        result = validate_proximity(reading.coordinate, expected_site, resolve_threshold(tier))
        if result.is_valid:
            return result, []

        if self.proximity_policy == PROXIMITY_POLICY_BLOCK:
            logger.warning(f"Proximity check blocked transition: {result.message}")
            raise ProximityCheckFailedException(result.message)
        return result, [result.message]

    async def _publish(self, event: str, record: VisitRecord) -> None:
        if self.event_publisher is None:
            return
        await getattr(self.event_publisher, f"publish_{event}")(record)

    async def check_in(
        self,
        appointment_id: str,
        caregiver_id: str,
        site_address: Optional[str] = None,
        expected_site=None,
        proximity_tier=None,
        device_info: Optional[Dict[str, Any]] = None,
    ) -> VisitTransition:
        """
        Check a caregiver in to an appointment.

        Steps:
        1. Reject if the appointment already has an open visit
        2. Acquire a location reading (manual fallback if configured)
        3. Validate proximity to the expected site, when one is given
        4. Resolve an address label (best effort)
        5. Create the visit record atomically (create-if-absent)
        """
        existing = await self.repository.get_open_visit_record(appointment_id)
        if existing:
            raise AlreadyCheckedInException(appointment_id)

        reading, source = await self._acquire_location()

        tier = ProximityTier(proximity_tier or self.default_proximity_tier)
        expected = None
        if expected_site is not None:
            expected = Coordinate(latitude=expected_site.latitude, longitude=expected_site.longitude)
        proximity, warnings = self._check_proximity(reading, expected, tier)

        address = await self._resolve_address(reading)

        new_record = VisitRecord(
            appointment_id=str(appointment_id),
            caregiver_id=str(caregiver_id),
            site_address=site_address,
            expected_latitude=expected.latitude if expected else None,
            expected_longitude=expected.longitude if expected else None,
            proximity_tier=tier.value,
            check_in_time=utcnow(),
            check_in_location=format_location_for_evv(reading, address, source),
            tasks_completed=[],
            caregiver_notes="",
            status=VisitStatus.IN_PROGRESS.value,
            device_info=device_info,
        )

        record, created = await self.repository.create_if_absent(new_record)
        if not created:
            raise AlreadyCheckedInException(appointment_id)

        logger.info(
            f"Checked in visit {record.id} - Appointment: {appointment_id}, "
            f"Caregiver: {caregiver_id}, Accuracy: {reading.accuracy_meters}m, Source: {source}"
        )
        await self._publish("checked_in", record)
        return VisitTransition(visit=record, proximity=proximity, warnings=warnings)

    async def complete_task(
        self,
        visit_id: UUID,
        task_id: str,
        name: str,
        completed: bool = True,
        notes: str = "",
    ) -> VisitRecord:
        """Record a task completion; re-submitting a task_id replaces the earlier entry."""
        record = self.validator.validate_in_progress(await self.repository.get_by_id(visit_id))

        entry = _task_entry({"task_id": task_id, "name": name, "completed": completed, "notes": notes})
        tasks = upsert_task(record.tasks_completed, entry)

        updated = await self.repository.update_visit_record(record.id, {"tasks_completed": tasks})
        if updated is None:
            raise VisitNotInProgressException()
        logger.info(f"Task {task_id} recorded on visit {visit_id} (completed={completed})")
        return updated

    async def check_out(
        self,
        visit_id: UUID,
        tasks_completed: Optional[Iterable[Mapping[str, Any]]] = None,
        caregiver_notes: Optional[str] = None,
    ) -> VisitTransition:
        """
        Check a caregiver out of a visit.

        Steps:
        1. Validate the visit is in progress
        2. Acquire a fresh location reading and re-validate proximity
        3. Merge final tasks and notes, set check_out_time, mark completed
        """
        record = self.validator.validate_in_progress(await self.repository.get_by_id(visit_id))

        reading, source = await self._acquire_location()

        expected = None
        if record.expected_latitude is not None and record.expected_longitude is not None:
            expected = Coordinate(latitude=record.expected_latitude, longitude=record.expected_longitude)
        proximity, warnings = self._check_proximity(
            reading, expected, record.proximity_tier or self.default_proximity_tier
        )

        address = await self._resolve_address(reading)

        check_out_time = utcnow()
        self.validator.validate_visit_times(record.check_in_time, check_out_time)

        tasks = list(record.tasks_completed or [])
        for task in tasks_completed or []:
            tasks = upsert_task(tasks, _task_entry(task))

        patch = {
            "check_out_time": check_out_time,
            "check_out_location": format_location_for_evv(reading, address, source),
            "tasks_completed": tasks,
            "status": VisitStatus.COMPLETED.value,
            "open_appointment_id": None,
        }
        if caregiver_notes is not None:
            patch["caregiver_notes"] = caregiver_notes

        updated = await self.repository.update_visit_record(record.id, patch)
        if updated is None:
            raise VisitNotInProgressException()

        logger.info(
            f"Checked out visit {visit_id} - Tasks: {len(tasks)}, "
            f"Accuracy: {reading.accuracy_meters}m, Source: {source}"
        )
        await self._publish("checked_out", updated)
        return VisitTransition(visit=updated, proximity=proximity, warnings=warnings)

    async def supervisor_verify(
        self,
        visit_id: UUID,
        verified_by: str,
        verified: bool = True,
        notes: str = "",
    ) -> VisitRecord:
        """Record (or overwrite) a supervisor's verification of a completed visit."""
        record = self.validator.validate_completed(await self.repository.get_by_id(visit_id))

        verification = {
            "verified": verified,
            "verified_by": str(verified_by),
            "verified_at": isoformat_utc(utcnow()),
            "notes": notes or "",
        }
        updated = await self.repository.update_visit_record(
            record.id, {"supervisor_verification": verification}
        )
        if updated is None:
            raise VisitNotFoundException(visit_id)

        logger.info(f"Visit {visit_id} verification by {verified_by}: verified={verified}")
        await self._publish("verified", updated)
        return updated

    async def get_visit(self, visit_id: UUID) -> VisitRecord:
        """Get an EVV record by ID"""
        record = await self.repository.get_by_id(visit_id)
        if not record:
            raise VisitNotFoundException(visit_id)
        return record

    async def get_open_visit(self, appointment_id: str) -> Optional[VisitRecord]:
        return await self.repository.get_open_visit_record(appointment_id)

    async def get_visit_status(self, appointment_id: str) -> Tuple[VisitStatus, Optional[VisitRecord]]:
        """Current lifecycle state of an appointment and the visit that defines it"""
        open_visit = await self.repository.get_open_visit_record(appointment_id)
        if open_visit:
            return VisitStatus.IN_PROGRESS, open_visit

        for record in await self.repository.list_by_appointment(appointment_id):
            if record.status == VisitStatus.COMPLETED.value:
                return VisitStatus.COMPLETED, record
        return VisitStatus.NOT_STARTED, None

    async def list_visits_for_appointment(self, appointment_id: str) -> List[VisitRecord]:
        return await self.repository.list_by_appointment(appointment_id)

    async def list_pending_verifications(self, limit: int = 100) -> List[VisitRecord]:
        """Completed visits awaiting supervisor sign-off"""
        return await self.repository.list_pending_verification(limit=limit)

    async def get_caregiver_metrics(self, caregiver_id: str, limit: int = 1000) -> Dict:
        records = await self.repository.list_by_caregiver(caregiver_id, limit=limit)
        return compute_compliance_metrics(records)

    def evaluate_proximity(self, record: VisitRecord) -> Dict[str, Optional[ProximityResult]]:
        """Recompute proximity of the stored check-in/check-out locations for review."""
        if record.expected_latitude is None or record.expected_longitude is None:
            return {"check_in": None, "check_out": None}

        expected = Coordinate(latitude=record.expected_latitude, longitude=record.expected_longitude)
        threshold = resolve_threshold(record.proximity_tier or self.default_proximity_tier)
        results = {}
        for key, location in (("check_in", record.check_in_location), ("check_out", record.check_out_location)):
            if not location:
                results[key] = None
                continue
            current = Coordinate(latitude=location.get("latitude"), longitude=location.get("longitude"))
            results[key] = validate_proximity(current, expected, threshold)
        return results
