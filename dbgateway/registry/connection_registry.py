"""Registry of open backend connections keyed by opaque connection id."""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from dbgateway.core.exceptions import NotFoundError
from dbgateway.utils.database_connection_schema import DatabaseType

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ConnectionRecord:
    id: str
    backend_type: DatabaseType
    handle: Any
    created_at: datetime
    last_used_at: datetime

    def idle_for(self, now: Optional[datetime] = None) -> timedelta:
        return (now or _utcnow()) - self.last_used_at


class ConnectionRegistry:
    """
    Owns every open connection record.

    Created by the service and handed to the dispatcher; it is mutated only
    from the event loop, so no locking is needed.
    """

    def __init__(self):
        self._records: Dict[str, ConnectionRecord] = {}

    def register(self, backend_type: DatabaseType, handle: Any) -> str:
        """
        Store a live handle under a fresh id.

        Returns:
            Connection id of the form ``conn_<32 hex chars>``
        """
        connection_id = f"conn_{uuid.uuid4().hex}"
        while connection_id in self._records:
            connection_id = f"conn_{uuid.uuid4().hex}"

        now = _utcnow()
        self._records[connection_id] = ConnectionRecord(
            id=connection_id,
            backend_type=backend_type,
            handle=handle,
            created_at=now,
            last_used_at=now,
        )
        logger.info(f"Registered {backend_type.value} connection {connection_id}")
        return connection_id

    def resolve(self, connection_id: str) -> ConnectionRecord:
        record = self._records.get(connection_id)
        if record is None:
            raise NotFoundError(f"Connection not found: {connection_id}")
        return record

    def touch(self, connection_id: str) -> ConnectionRecord:
        record = self.resolve(connection_id)
        record.last_used_at = _utcnow()
        return record

    def remove(self, connection_id: str) -> ConnectionRecord:
        record = self._records.pop(connection_id, None)
        if record is None:
            raise NotFoundError(f"Connection not found: {connection_id}")
        logger.info(f"Removed connection {connection_id}")
        return record

    def records(self) -> List[ConnectionRecord]:
        return list(self._records.values())

    def idle_records(self, max_idle: timedelta, now: Optional[datetime] = None) -> List[ConnectionRecord]:
        """Records whose last use is older than `max_idle`."""
        now = now or _utcnow()
        return [record for record in self._records.values() if record.idle_for(now) > max_idle]

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, connection_id: str) -> bool:
        return connection_id in self._records
