"""
Tenant Record Store

Repository abstraction over the external tabular record store, with an
in-memory implementation and a MongoDB implementation.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any, Iterable, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, IndexModel, ReturnDocument
from pymongo.errors import DuplicateKeyError

from ..config import PipelineConfig, get_config
from ..errors import ConflictError, NotFoundError, ValidationError
from .models import RecordStage, TenantRecord

_IMMUTABLE_FIELDS = frozenset({"id", "row", "created_at"})
_ROW_ALLOCATION_ATTEMPTS = 5


class TenantRecordRepository(ABC):
    """
    Record store operations used by runners and the orchestrator.

    Writes are targeted field updates keyed by record id.
    """

    @abstractmethod
    async def scan(self, stages: Optional[Iterable[RecordStage]] = None) -> list[TenantRecord]:
        """Return all records in row order, optionally filtered by stage."""

    @abstractmethod
    async def get_by_id(self, record_id: str) -> Optional[TenantRecord]:
        """Get a record by request id."""

    @abstractmethod
    async def get_by_slug(self, slug: str) -> Optional[TenantRecord]:
        """Get a record by slug (case-insensitive)."""

    @abstractmethod
    async def update(self, record_id: str, fields: dict[str, Any]) -> TenantRecord:
        """
        Update fields on a record.

        Raises:
            NotFoundError: If the record does not exist
            ValidationError: If an immutable field is included
        """

    @abstractmethod
    async def create(self, record: TenantRecord) -> TenantRecord:
        """Append a record, assigning the next row index."""

    @abstractmethod
    async def acquire_lease(self, record_id: str, holder: str, ttl_seconds: int) -> bool:
        """Take the record lease if it is free or expired."""

    @abstractmethod
    async def release_lease(self, record_id: str, holder: str) -> None:
        """Release the record lease if ``holder`` owns it."""

    @staticmethod
    def _check_fields(fields: dict[str, Any]) -> dict[str, Any]:
        blocked = _IMMUTABLE_FIELDS.intersection(fields)
        if blocked:
            raise ValidationError(f"Immutable fields cannot be updated: {sorted(blocked)}")
        return {k: (v.value if isinstance(v, RecordStage) else v) for k, v in fields.items()}


class InMemoryTenantRecordRepository(TenantRecordRepository):
    """Record store held in process memory. Row 1 is the header row."""

    def __init__(self, records: Optional[Iterable[TenantRecord]] = None):
        self._records: list[TenantRecord] = []
        for record in records or []:
            self._append(record)

    def _append(self, record: TenantRecord) -> TenantRecord:
        if any(r.id == record.id for r in self._records):
            raise ValidationError(f"Record with ID '{record.id}' already exists")
        stored = record.model_copy(update={"row": len(self._records) + 2})
        self._records.append(stored)
        return stored

    def _index(self, record_id: str) -> int:
        for i, record in enumerate(self._records):
            if record.id == record_id:
                return i
        raise NotFoundError(f"Could not find record by id: {record_id}")

    async def scan(self, stages: Optional[Iterable[RecordStage]] = None) -> list[TenantRecord]:
        wanted = set(stages) if stages is not None else None
        return [r for r in self._records if wanted is None or r.stage in wanted]

    async def get_by_id(self, record_id: str) -> Optional[TenantRecord]:
        return next((r for r in self._records if r.id == record_id.strip()), None)

    async def get_by_slug(self, slug: str) -> Optional[TenantRecord]:
        wanted = slug.strip().lower()
        return next((r for r in self._records if wanted and r.slug == wanted), None)

    async def update(self, record_id: str, fields: dict[str, Any]) -> TenantRecord:
        checked = self._check_fields(fields)
        i = self._index(record_id)
        updated = TenantRecord.model_validate({**self._records[i].model_dump(), **checked})
        self._records[i] = updated
        return updated

    async def create(self, record: TenantRecord) -> TenantRecord:
        return self._append(record)

    async def acquire_lease(self, record_id: str, holder: str, ttl_seconds: int) -> bool:
        i = self._index(record_id)
        record = self._records[i]
        if record.is_leased() and record.lease_holder != holder:
            return False
        self._records[i] = record.model_copy(
            update={
                "lease_holder": holder,
                "lease_expires_at": datetime.utcnow() + timedelta(seconds=ttl_seconds),
            }
        )
        return True

    async def release_lease(self, record_id: str, holder: str) -> None:
        i = self._index(record_id)
        if self._records[i].lease_holder == holder:
            self._records[i] = self._records[i].model_copy(
                update={"lease_holder": None, "lease_expires_at": None}
            )


class MongoTenantRecordRepository(TenantRecordRepository):
    """
    Record store backed by a MongoDB collection.

    Each document is one row; ``row`` mirrors the tabular row index.
    """

    def __init__(
        self,
        db: Optional[AsyncIOMotorDatabase] = None,
        settings: Optional[PipelineConfig] = None,
    ):
        """
        Initialize the Mongo record store.

        Args:
            db: Optional database instance. If not provided, creates new connection.
            settings: Optional configuration (defaults to the cached config)
        """
        settings = settings or get_config()
        if db is None:
            client = AsyncIOMotorClient(settings.platform_mongo_db_url)
            self.db = client[settings.platform_mongo_db_name]
        else:
            self.db = db

        self.collection = self.db[settings.tenant_collection]

    async def ensure_indexes(self) -> None:
        """Create necessary indexes for the record collection."""
        indexes = [
            IndexModel([("id", ASCENDING)], unique=True),
            IndexModel([("row", ASCENDING)], unique=True),
            IndexModel([("slug", ASCENDING)], sparse=True),
            IndexModel([("stage", ASCENDING)]),
        ]
        await self.collection.create_indexes(indexes)

    @staticmethod
    def _to_record(doc: Optional[dict]) -> Optional[TenantRecord]:
        if not doc:
            return None
        doc.pop("_id", None)
        return TenantRecord(**doc)

    async def scan(self, stages: Optional[Iterable[RecordStage]] = None) -> list[TenantRecord]:
        query: dict[str, Any] = {}
        if stages is not None:
            query["stage"] = {"$in": [RecordStage(s).value for s in stages]}
        cursor = self.collection.find(query).sort("row", ASCENDING)
        return [TenantRecord(**{k: v for k, v in doc.items() if k != "_id"}) async for doc in cursor]

    async def get_by_id(self, record_id: str) -> Optional[TenantRecord]:
        return self._to_record(await self.collection.find_one({"id": record_id.strip()}))

    async def get_by_slug(self, slug: str) -> Optional[TenantRecord]:
        wanted = slug.strip().lower()
        if not wanted:
            return None
        return self._to_record(await self.collection.find_one({"slug": wanted}))

    async def update(self, record_id: str, fields: dict[str, Any]) -> TenantRecord:
        checked = self._check_fields(fields)
        result = await self.collection.find_one_and_update(
            {"id": record_id},
            {"$set": checked},
            return_document=ReturnDocument.AFTER,
        )
        record = self._to_record(result)
        if record is None:
            raise NotFoundError(f"Could not find record by id: {record_id}")
        return record

    async def create(self, record: TenantRecord) -> TenantRecord:
        """
        Insert a record at the next free row.

        Concurrent writers may read the same maximum row; the unique ``row``
        index rejects the loser, which re-reads and tries the next row.

        Raises:
            ValidationError: If a record with the same id exists
            ConflictError: If no row could be allocated
        """
        for _ in range(_ROW_ALLOCATION_ATTEMPTS):
            last = await self.collection.find_one({}, sort=[("row", -1)], projection={"row": 1})
            next_row = (last["row"] + 1) if last else 2
            doc = record.model_copy(update={"row": next_row}).model_dump(mode="json")
            doc["created_at"] = record.created_at
            try:
                await self.collection.insert_one(doc)
            except DuplicateKeyError:
                if await self.collection.find_one({"id": record.id}, projection={"id": 1}):
                    raise ValidationError(f"Record with ID '{record.id}' already exists")
                continue
            return self._to_record(doc)

        raise ConflictError(f"Could not allocate a row for record '{record.id}'")

    async def acquire_lease(self, record_id: str, holder: str, ttl_seconds: int) -> bool:
        now = datetime.utcnow()
        result = await self.collection.update_one(
            {
                "id": record_id,
                "$or": [
                    {"lease_holder": None},
                    {"lease_holder": holder},
                    {"lease_expires_at": {"$lte": now}},
                ],
            },
            {
                "$set": {
                    "lease_holder": holder,
                    "lease_expires_at": now + timedelta(seconds=ttl_seconds),
                }
            },
        )
        return result.matched_count > 0

    async def release_lease(self, record_id: str, holder: str) -> None:
        await self.collection.update_one(
            {"id": record_id, "lease_holder": holder},
            {"$set": {"lease_holder": None, "lease_expires_at": None}},
        )
