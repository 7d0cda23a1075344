"""EVV Record Repository Layer"""
import logging
from uuid import UUID
from typing import Any, Dict, List, Optional, Tuple
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from evv_service.db.repository import BaseRepository
from evv_service.utils.timezone import utcnow
from evv_service.visits.exceptions import PersistenceFailedException
from evv_service.visits.models import VisitRecord, VisitStatus

logger = logging.getLogger(__name__)


class VisitRecordRepository(BaseRepository):
    """Persistence boundary for EVV records"""

    def __init__(self, db: AsyncSession, tenant_schema: Optional[str] = None):
        super().__init__(db, tenant_schema)

    async def _fail(self, operation: str, error: Exception):
        logger.error(f"EVV record store failed to {operation}: {error}")
        await self.db.rollback()
        raise PersistenceFailedException(operation) from error

    async def create_visit_record(self, record: VisitRecord) -> VisitRecord:
        """Insert a new EVV record"""
        try:
            await self._set_search_path()
            self.db.add(record)
            await self.db.commit()
            await self.db.refresh(record)
        except SQLAlchemyError as e:
            await self._fail("create", e)
        return record

    async def create_if_absent(self, record: VisitRecord) -> Tuple[VisitRecord, bool]:
        """
        Insert ``record`` unless its appointment already has an open visit.

        Returns:
            Tuple of (record, created); when an open visit exists it is
            returned with created=False
        """
        record.open_appointment_id = record.appointment_id
        try:
            await self._set_search_path()
            self.db.add(record)
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            existing = await self.get_open_visit_record(record.appointment_id)
            if existing is None:
                raise PersistenceFailedException("create")
            return existing, False
        except SQLAlchemyError as e:
            await self._fail("create", e)

        await self.db.refresh(record)
        return record, True

    async def get_by_id(self, visit_id: UUID) -> Optional[VisitRecord]:
        """Get EVV record by ID"""
        try:
            await self._set_search_path()
            stmt = select(VisitRecord).where(VisitRecord.id == visit_id)
            result = await self.db.execute(stmt)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            await self._fail("load", e)

    async def get_open_visit_record(self, appointment_id: str) -> Optional[VisitRecord]:
        """Get the in-progress EVV record for an appointment"""
        try:
            await self._set_search_path()
            stmt = select(VisitRecord).where(VisitRecord.open_appointment_id == appointment_id)
            result = await self.db.execute(stmt)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            await self._fail("load", e)

    async def update_visit_record(self, visit_id: UUID, patch: Dict[str, Any]) -> Optional[VisitRecord]:
        """Apply ``patch`` (column -> value) to a record; None if it does not exist"""
        record = await self.get_by_id(visit_id)
        if record is None:
            return None

        try:
            for field, value in patch.items():
                setattr(record, field, value)
            record.updated_at = utcnow()
            await self.db.commit()
            await self.db.refresh(record)
        except SQLAlchemyError as e:
            await self._fail("update", e)
        return record

    async def list_by_appointment(self, appointment_id: str) -> List[VisitRecord]:
        """All EVV records for an appointment, newest first"""
        try:
            await self._set_search_path()
            stmt = select(VisitRecord).where(
                VisitRecord.appointment_id == appointment_id
            ).order_by(VisitRecord.created_at.desc())
            result = await self.db.execute(stmt)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            await self._fail("load", e)

    async def list_by_caregiver(self, caregiver_id: str, limit: int = 100) -> List[VisitRecord]:
        """EVV records by caregiver, newest first"""
        try:
            await self._set_search_path()
            stmt = select(VisitRecord).where(
                VisitRecord.caregiver_id == caregiver_id
            ).order_by(VisitRecord.created_at.desc()).limit(limit)
            result = await self.db.execute(stmt)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            await self._fail("load", e)

    async def list_pending_verification(self, limit: int = 100) -> List[VisitRecord]:
        """Completed EVV records without a positive supervisor verification"""
        try:
            await self._set_search_path()
            stmt = select(VisitRecord).where(
                VisitRecord.status == VisitStatus.COMPLETED.value
            ).order_by(VisitRecord.check_out_time.asc())
            result = await self.db.execute(stmt)
            records = result.scalars().all()
        except SQLAlchemyError as e:
            await self._fail("load", e)

        pending = [
            record for record in records
            if not (record.supervisor_verification or {}).get("verified")
        ]
        return pending[:limit]
