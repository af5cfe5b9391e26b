from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from pbac.core.database.engine import enable_sqlite_foreign_keys, get_db, init_db
from pbac.features.permissions.models import Permission, Role
from pbac.features.positions.models import Position
from pbac.features.users.models import User
from tests.helpers import make_user


@dataclass(frozen=True, slots=True)
class Catalog:
    """Permissions, roles and positions shared by most tests."""
    approve_invoice: Permission
    read_reports: Permission
    approver: Role
    auditor: Role
    manager: Position
    clerk: Position
    auditor_position: Position


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncIterator[AsyncEngine]:
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'pbac.db'}", poolclass=NullPool)
    enable_sqlite_foreign_keys(engine)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncIterator[AsyncSession]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def catalog(db: AsyncSession) -> Catalog:
    approve_invoice = Permission(name="approve-invoice")
    read_reports = Permission(name="reports.read")
    approver = Role(name="approver", permissions=[approve_invoice])
    auditor = Role(name="auditor", permissions=[read_reports])
    manager = Position(name="Manager", roles=[approver])
    clerk = Position(name="Accounts Clerk")
    auditor_position = Position(name="Auditor", roles=[auditor])

    db.add_all([approve_invoice, read_reports, approver, auditor, manager, clerk, auditor_position])
    await db.commit()

    return Catalog(
        approve_invoice=approve_invoice,
        read_reports=read_reports,
        approver=approver,
        auditor=auditor,
        manager=manager,
        clerk=clerk,
        auditor_position=auditor_position,
    )


@pytest_asyncio.fixture
async def admin(db: AsyncSession) -> User:
    return await make_user(db, "admin@acme.io", is_admin=True)


@pytest_asyncio.fixture
async def async_client(session_factory) -> AsyncIterator[AsyncClient]:
    from pbac.main import app

    async def override_get_db() -> AsyncIterator[AsyncSession]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
