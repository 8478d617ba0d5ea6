import contextlib
import logging
from collections.abc import AsyncIterator, Sequence
from datetime import UTC, datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlmodel import SQLModel, col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from alarm_scheduler_engine import errors, models


class AlarmStore:
    """Row-level CRUD over the alarm table. Knows nothing about scheduling."""

    def __init__(self, db_engine: AsyncEngine, logger: logging.Logger | None = None) -> None:
        self.db_engine = db_engine
        self.logger = logger or logging.getLogger(__name__)

    @contextlib.asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        try:
            async with AsyncSession(self.db_engine, expire_on_commit=False) as session:
                yield session
        except SQLAlchemyError as exc:
            self.logger.error("Database operation failed: %s", exc)
            raise errors.StoreError(str(exc)) from exc

    async def create_tables(self) -> None:
        try:
            async with self.db_engine.begin() as conn:
                await conn.run_sync(SQLModel.metadata.create_all)
        except SQLAlchemyError as exc:
            raise errors.StoreError(str(exc)) from exc

    async def insert(self, title: str, scheduled_time: datetime) -> int:
        async with self._session() as session:
            record = models.AlarmRecord(title=title, scheduled_time=scheduled_time.astimezone(UTC))
            session.add(record)
            await session.flush()
            alarm_id = record.id
            await session.commit()
        if alarm_id is None:
            raise errors.StoreError("Database did not assign an id to the new alarm.")
        self.logger.debug("Inserted alarm %s scheduled for %s.", alarm_id, scheduled_time)
        return alarm_id

    async def get(self, alarm_id: int) -> models.AlarmRecord:
        async with self._session() as session:
            record = await session.get(models.AlarmRecord, alarm_id)
        if record is None:
            raise errors.AlarmNotFound(alarm_id)
        return record

    async def list(self, pending_only: bool = False) -> Sequence[models.AlarmRecord]:
        statement = select(models.AlarmRecord)
        if pending_only:
            statement = statement.where(
                col(models.AlarmRecord.is_active).is_(True),
                col(models.AlarmRecord.fired_at).is_(None),
            )
        statement = statement.order_by(col(models.AlarmRecord.scheduled_time), col(models.AlarmRecord.id))
        async with self._session() as session:
            query_result = await session.exec(statement)
            return query_result.all()

    async def delete(self, alarm_id: int) -> None:
        async with self._session() as session:
            record = await session.get(models.AlarmRecord, alarm_id)
            if record is None:
                raise errors.AlarmNotFound(alarm_id)
            await session.delete(record)
            await session.commit()

    async def update_active(self, alarm_id: int, active: bool) -> models.AlarmRecord:
        async with self._session() as session:
            record = await session.get(models.AlarmRecord, alarm_id)
            if record is None:
                raise errors.AlarmNotFound(alarm_id)
            record.is_active = active
            session.add(record)
            await session.commit()
        return record

    async def update_fired(self, alarm_id: int, fired_at: datetime) -> models.AlarmRecord:
        async with self._session() as session:
            record = await session.get(models.AlarmRecord, alarm_id)
            if record is None:
                raise errors.AlarmNotFound(alarm_id)
            record.fired_at = fired_at.astimezone(UTC)
            session.add(record)
            await session.commit()
        return record
