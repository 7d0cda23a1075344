"""Event publisher for EVV visits (billing, payroll and review consumers)"""
import asyncio
import logging
from evv_service.visits.schemas import VisitRecordResponse

logger = logging.getLogger(__name__)


class VisitEventPublisher:
    """Publishes visit lifecycle events"""

    CHECKED_IN = "evv.checked_in"
    CHECKED_OUT = "evv.checked_out"
    VERIFIED = "evv.verified"

    def __init__(self, publisher, tenant_schema: str = None):
        self.tenant_schema = tenant_schema
        self.publisher = publisher

    async def _publish(self, event: str, record) -> bool:
        try:
            visit_response = VisitRecordResponse.from_record(record)
            message = {
                "event": event,
                "tenant": self.tenant_schema,
                "data": visit_response.model_dump(mode="json"),
            }
            # pika's BlockingConnection must stay off the event loop
            await asyncio.to_thread(self.publisher.publish, event, message)
        except Exception as e:
            logger.error(f"Failed to publish {event} for visit {record.id}: {e}")
            return False
        return True

    async def publish_checked_in(self, record) -> bool:
        """Publish visit checked-in event"""
        return await self._publish(self.CHECKED_IN, record)

    async def publish_checked_out(self, record) -> bool:
        """Publish visit checked-out event"""
        return await self._publish(self.CHECKED_OUT, record)

    async def publish_verified(self, record) -> bool:
        """Publish supervisor verification event"""
        return await self._publish(self.VERIFIED, record)
