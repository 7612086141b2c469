"""pytest fixtures for Cadenza backend tests.

Provides:
- database_url: Session-scoped database (SQLite file by default, PostgreSQL
  testcontainer with migrations applied when CADENZA_TEST_POSTGRES=1)
- utc_timezone: Autouse fixture enforcing UTC timezone
- session_factory / session: Function-scoped sessions with table cleanup
- uow_factory: Function-scoped UnitOfWork factory
- make_user / make_plan / make_job: Entity builders
- make_provider: Scripted provider double for the External Job Client contract
"""

import os
import subprocess
import sys
from pathlib import Path
from typing import AsyncGenerator

# Settings are strict only in production; app import below builds Settings()
os.environ.setdefault("APP_ENV", "test")

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402

from cadenza import models  # noqa: E402, F401
from cadenza.core.database import create_db_engine  # noqa: E402
from cadenza.models.generation_job import JobKind, JobStatus, Visibility  # noqa: E402
from cadenza.models.plan import SubscriptionPlan  # noqa: E402
from cadenza.models.user import PlanStatus, User  # noqa: E402
from cadenza.services.providers.base import JobResult, ProviderObservation  # noqa: E402
from cadenza.uow import create_uow_factory  # noqa: E402

BACKEND_DIR = Path(__file__).resolve().parent.parent


@pytest.fixture(scope="session")
def database_url(tmp_path_factory):
    """Provide a session-scoped database URL with the schema in place.

    PostgreSQL runs in a testcontainer; migrations are applied using a
    subprocess to avoid asyncio event loop conflicts. SQLite tables are
    created per test in session_factory.
    """
    if os.environ.get("CADENZA_TEST_POSTGRES") == "1":
        from testcontainers.postgres import PostgresContainer

        with PostgresContainer(
            image="postgres:17",
            username="test",
            password="test",
            dbname="test_cadenza",
        ) as container:
            db_url = container.get_connection_url(driver="psycopg")

            env = os.environ.copy()
            env["DATABASE_URL"] = db_url
            subprocess.run(
                [sys.executable, "-m", "alembic", "upgrade", "head"],
                check=True,
                capture_output=True,
                text=True,
                env=env,
                cwd=BACKEND_DIR,
            )

            yield db_url
        return

    db_path = tmp_path_factory.mktemp("db") / "cadenza.db"
    yield f"sqlite+aiosqlite:///{db_path}"


@pytest.fixture(scope="session", autouse=True)
def utc_timezone():
    """Enforce UTC timezone for all tests."""
    os.environ["TZ"] = "UTC"
    yield


@pytest_asyncio.fixture(scope="function")
async def session_factory(database_url) -> AsyncGenerator[async_sessionmaker, None]:
    """Provide a session factory over empty tables.

    Every table is emptied after the test, dependents first.
    """
    engine = create_db_engine(database_url, pool_size=5)
    if database_url.startswith("sqlite"):
        async with engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    yield factory

    async with factory() as cleanup:
        for table in reversed(SQLModel.metadata.sorted_tables):
            await cleanup.execute(table.delete())
        await cleanup.commit()
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session
        # Rollback any uncommitted changes from the test
        await session.rollback()


@pytest_asyncio.fixture(scope="function")
async def uow_factory(session_factory):
    """Provide function-scoped UnitOfWork factory."""
    return create_uow_factory(session_factory)


@pytest_asyncio.fixture(scope="function")
async def make_plan(uow_factory):
    async def _make_plan(**fields) -> SubscriptionPlan:
        fields.setdefault("name", "Creator")
        fields.setdefault("max_generations", 50)
        fields.setdefault("max_image_generations", 50)
        fields.setdefault("max_video_generations", 10)
        async with await uow_factory() as uow:
            return await uow.plans.add(SubscriptionPlan(**fields))

    return _make_plan


@pytest_asyncio.fixture(scope="function")
async def make_user(uow_factory):
    counter = {"n": 0}

    async def _make_user(**fields) -> User:
        counter["n"] += 1
        fields.setdefault("email", f"user{counter['n']}@example.com")
        fields.setdefault("plan_status", PlanStatus.FREE)
        async with await uow_factory() as uow:
            return await uow.users.add(User(**fields))

    return _make_user


@pytest_asyncio.fixture(scope="function")
async def make_job(uow_factory):
    """Build a job already driven to the requested status."""

    async def _make_job(
        user_id,
        status: JobStatus = JobStatus.COMPLETED,
        kind: JobKind = JobKind.TEXT_TO_MUSIC,
        visibility: Visibility = Visibility.PUBLIC,
        album_id=None,
        title=None,
    ):
        async with await uow_factory() as uow:
            jobs = uow.generation_jobs
            job = await jobs.create(
                user_id, kind, {"tags": "lofi"}, visibility=visibility, title=title
            )
            if status != JobStatus.PENDING:
                job = await jobs.record_submitted(job.id, f"ext-{job.id}")
            if status == JobStatus.PROCESSING:
                job = await jobs.record_status(job.id, ProviderObservation.processing())
            elif status == JobStatus.COMPLETED:
                job = await jobs.record_status(
                    job.id,
                    ProviderObservation.completed(JobResult(audio_url=f"https://cdn/{job.id}.wav")),
                )
            elif status == JobStatus.FAILED:
                job = await jobs.record_status(job.id, ProviderObservation.failed("boom"))
            if album_id is not None:
                job = await jobs.update_metadata(job, album_id=album_id)
            return job

    return _make_job


class ScriptedProvider:
    """Provider double replaying a script of observations.

    Script items are ProviderObservation instances or exceptions to raise.
    The last item repeats once the script runs out.
    """

    def __init__(self, name="scripted", script=None, submit_error=None):
        self.name = name
        self.script = list(script or [ProviderObservation.processing()])
        self.submit_error = submit_error
        self.submitted: list = []
        self.status_calls: list[str] = []

    async def submit(self, kind, job_input):
        self.submitted.append((kind, job_input))
        if self.submit_error is not None:
            raise self.submit_error
        return f"{self.name}-req-{len(self.submitted)}"

    async def get_status(self, external_job_id):
        self.status_calls.append(external_job_id)
        item = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(item, Exception):
            raise item
        return item


@pytest.fixture
def make_provider():
    return ScriptedProvider
