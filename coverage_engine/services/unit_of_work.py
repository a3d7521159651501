"""
Unit of Work for Bulk Tariff Provisioning.

A unit of work is one atomic, isolated transaction: the eligible services
are read and the whole batch is written inside it, and leaving the context
without ``commit()`` discards everything.

Source: https://docs.sqlalchemy.org/en/20/orm/session_transaction.html#setting-transaction-isolation-levels-dbapi-autocommit
Verified: 2026-10-19
"""

from typing import Callable, Protocol, runtime_checkable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from coverage_engine.schemas.coverage import ServiceInfo
from coverage_engine.schemas.tariff import TariffCreate, TariffRecord
from coverage_engine.services.repositories import InMemoryTariffStore, SqlAlchemyTariffRepository
from coverage_engine.utils.logging import get_logger

logger = get_logger(__name__)

SERIALIZABLE = "SERIALIZABLE"


@runtime_checkable
class UnitOfWork(Protocol):
    async def __aenter__(self) -> "UnitOfWork": ...

    async def __aexit__(self, exc_type, exc, tb) -> bool: ...

    async def list_eligible_services(
        self, plan_id: str, skip_existing: bool = True
    ) -> list[ServiceInfo]: ...

    async def add_many(self, tariffs: list[TariffCreate]) -> int: ...

    async def commit(self) -> None: ...

    async def rollback(self) -> None: ...


UnitOfWorkFactory = Callable[[], UnitOfWork]


class InMemoryUnitOfWork:
    """
    Unit of work over an InMemoryTariffStore.

    Writes are staged and only reach the store on commit. The store lock is
    held for the whole unit, which serializes concurrent runs the same way
    a serializable transaction would.
    """

    def __init__(self, store: InMemoryTariffStore):
        self.store = store
        self._staged: list[TariffCreate] = []
        self.committed: list[TariffRecord] = []
        self.rolled_back = False
        self._done = False

    async def __aenter__(self) -> "InMemoryUnitOfWork":
        await self.store.lock.acquire()
        self._staged = []
        self.committed = []
        self.rolled_back = False
        self._done = False
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        try:
            if not self._done:
                await self.rollback()
        finally:
            self.store.lock.release()
        return False

    async def list_eligible_services(
        self, plan_id: str, skip_existing: bool = True
    ) -> list[ServiceInfo]:
        services = await self.store.list_active_services()
        if not skip_existing:
            return services
        return [s for s in services if not await self.store.has_live_tariff(plan_id, s.service_id)]

    async def add_many(self, tariffs: list[TariffCreate]) -> int:
        self._staged.extend(tariffs)
        return len(tariffs)

    async def commit(self) -> None:
        self.committed = self.store.persist_many(self._staged)
        self._staged = []
        self._done = True

    async def rollback(self) -> None:
        self._staged = []
        self.rolled_back = True


class SqlAlchemyUnitOfWork:
    """
    Unit of work over one AsyncSession at SERIALIZABLE isolation.

    Evidence: per-connection isolation through execution options
    Source: https://docs.sqlalchemy.org/en/20/orm/session_transaction.html
    Verified: 2026-10-19
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        isolation_level: str = SERIALIZABLE,
    ):
        self.session_maker = session_maker
        self.isolation_level = isolation_level
        self.session: AsyncSession | None = None
        self.repository: SqlAlchemyTariffRepository | None = None
        self._committed = False

    async def __aenter__(self) -> "SqlAlchemyUnitOfWork":
        self.session = self.session_maker()
        self._committed = False
        # First statement of the transaction fixes the isolation level
        await self.session.connection(execution_options={"isolation_level": self.isolation_level})
        self.repository = SqlAlchemyTariffRepository(self.session)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        try:
            if not self._committed:
                await self.rollback()
        finally:
            await self.session.close()
            self.session = None
            self.repository = None
        return False

    async def list_eligible_services(
        self, plan_id: str, skip_existing: bool = True
    ) -> list[ServiceInfo]:
        if skip_existing:
            return await self.repository.list_services_without_tariff(plan_id)
        return await self.repository.list_active_services()

    async def add_many(self, tariffs: list[TariffCreate]) -> int:
        records = await self.repository.add_many(tariffs)
        return len(records)

    async def commit(self) -> None:
        await self.session.commit()
        self._committed = True

    async def rollback(self) -> None:
        await self.session.rollback()
        logger.debug("Unit of work rolled back")
