"""Pytest configuration and shared fixtures."""

import os

# Settings are read at import time; point them at SQLite before any cropclaim import
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("AI_TASK_SCHEDULER", "inprocess")

from datetime import date, datetime, timedelta, timezone  # noqa: E402
from decimal import Decimal  # noqa: E402
from typing import Any, Dict, List, Optional, Tuple  # noqa: E402
from uuid import UUID, uuid4  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from cropclaim.core.auth import ActorContext, Role  # noqa: E402
from cropclaim.core.database import Base  # noqa: E402
from cropclaim.database import models  # noqa: E402,F401
from cropclaim.database.enums import (  # noqa: E402
    AiTaskStatus,
    AiTaskType,
    ClaimStatus,
    PolicyStatus,
    VerificationStatus,
)
from cropclaim.database.models import AiTask, Claim, Insurer, Policy, User  # noqa: E402
from cropclaim.main import app  # noqa: E402
from cropclaim.services.collaborators import AuditEntry, Notification  # noqa: E402

START = datetime(2026, 4, 20, 10, 0, tzinfo=timezone.utc)


class VirtualClock:
    """Clock whose sleep advances time instantly."""

    def __init__(self, start: datetime = START):
        self.current = start
        self.sleeps: List[float] = []

    def now(self) -> datetime:
        return self.current

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.advance(seconds)

    def advance(self, seconds: float = 0, **kwargs: float) -> None:
        self.current = self.current + timedelta(seconds=seconds, **kwargs)


class RecordingScheduler:
    """Records dispatches instead of running them; tests drive process_task."""

    def __init__(self, fail: bool = False):
        self.scheduled: List[Tuple[UUID, float]] = []
        self.processor = None
        self.fail = fail

    def bind(self, processor) -> None:
        self.processor = processor

    async def schedule(self, task_id: UUID, delay_seconds: float = 0.0) -> None:
        if self.fail:
            raise RuntimeError("scheduler unavailable")
        self.scheduled.append((task_id, delay_seconds))

    def delays_for(self, task_id: UUID) -> List[float]:
        return [delay for scheduled_id, delay in self.scheduled if scheduled_id == task_id]


class RecordingNotifier:
    def __init__(self):
        self.notifications: List[Notification] = []

    async def notify(self, user_id: UUID, title: str, message: str, severity: str = "info") -> None:
        self.notifications.append(Notification(user_id, title, message, severity))

    def for_user(self, user_id: UUID) -> List[Notification]:
        return [n for n in self.notifications if n.user_id == user_id]


class RecordingAudit:
    def __init__(self):
        self.entries: List[AuditEntry] = []

    async def record(
        self,
        actor_id: Optional[UUID],
        action: str,
        resource_type: str,
        resource_id: str,
        details: Optional[Dict[str, Any]] = None,
        before: Optional[Dict[str, Any]] = None,
        after: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.entries.append(
            AuditEntry(actor_id, action, resource_type, resource_id, details or {}, before, after)
        )

    def actions(self) -> List[str]:
        return [entry.action for entry in self.entries]


# ----------------------------------------------------------------------
# Database
# ----------------------------------------------------------------------


@pytest.fixture
async def engine():
    """In-memory SQLite engine shared by every session of one test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


# ----------------------------------------------------------------------
# Collaborators
# ----------------------------------------------------------------------


@pytest.fixture
def clock() -> VirtualClock:
    return VirtualClock()


@pytest.fixture
def scheduler() -> RecordingScheduler:
    return RecordingScheduler()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def audit() -> RecordingAudit:
    return RecordingAudit()

# ----------------------------------------------------------------------
# Seed data
# ----------------------------------------------------------------------


@pytest.fixture
def persist(session_factory):
    """Insert rows through a short-lived session.

    Seeded objects end up detached, so a rollback in the session under
    test never expires them.
    """

    async def _persist(*instances: Any) -> None:
        async with session_factory() as session:
            session.add_all(instances)
            await session.commit()

    return _persist


@pytest.fixture
async def farmer(persist) -> User:
    user = User(id=uuid4(), email="farmer@example.com", full_name="Asha Patil", role=Role.FARMER.value)
    await persist(user)
    return user


@pytest.fixture
async def other_farmer(persist) -> User:
    user = User(id=uuid4(), email="neighbour@example.com", full_name="Ravi Kumar", role=Role.FARMER.value)
    await persist(user)
    return user


@pytest.fixture
async def admin_user(persist) -> User:
    user = User(id=uuid4(), email="admin@example.com", full_name="Review Admin", role=Role.ADMIN.value)
    await persist(user)
    return user


@pytest.fixture
async def insurer_user(persist) -> User:
    user = User(
        id=uuid4(), email="claims@harvestmutual.example", full_name="Claims Desk", role=Role.INSURER.value
    )
    await persist(user)
    return user


@pytest.fixture
async def insurer(persist, insurer_user) -> Insurer:
    provider = Insurer(
        id=uuid4(), name="Harvest Mutual", email="claims@harvestmutual.example", user_id=insurer_user.id
    )
    await persist(provider)
    return provider


@pytest.fixture
async def other_insurer(persist) -> Insurer:
    provider = Insurer(id=uuid4(), name="Monsoon Cover", email="desk@monsooncover.example")
    await persist(provider)
    return provider


def build_policy(farmer_id: UUID, insurer_id: Optional[UUID], **overrides: Any) -> Policy:
    values: Dict[str, Any] = {
        "id": uuid4(),
        "policy_number": "POL-2026-0001",
        "farmer_id": farmer_id,
        "service_provider_id": insurer_id,
        "status": PolicyStatus.ACTIVE,
        "crop_type": "wheat",
        "start_date": date(2026, 1, 1),
        "end_date": date(2026, 12, 31),
        "sum_insured": Decimal("50000.00"),
        "policy_images": ["policies/pol-1/baseline.jpg"],
        "created_at": START,
    }
    values.update(overrides)
    return Policy(**values)


@pytest.fixture
def make_policy(persist, farmer, insurer):
    """Factory for extra policies; defaults to the farmer and the insurer."""

    async def _make(**overrides: Any) -> Policy:
        overrides.setdefault("farmer_id", farmer.id)
        overrides.setdefault("insurer_id", insurer.id)
        record = build_policy(overrides.pop("farmer_id"), overrides.pop("insurer_id"), **overrides)
        await persist(record)
        return record

    return _make


@pytest.fixture
async def policy(persist, farmer, insurer) -> Policy:
    record = build_policy(farmer.id, insurer.id)
    await persist(record)
    return record


@pytest.fixture
async def unassigned_policy(persist, farmer) -> Policy:
    record = build_policy(
        farmer.id,
        None,
        policy_number="POL-2026-0099",
        sum_insured=Decimal("10000.00"),
        policy_images=None,
    )
    await persist(record)
    return record


@pytest.fixture
def farmer_actor(farmer) -> ActorContext:
    return ActorContext(actor_id=farmer.id, role=Role.FARMER)


@pytest.fixture
def admin_actor(admin_user) -> ActorContext:
    return ActorContext(actor_id=admin_user.id, role=Role.ADMIN)


@pytest.fixture
def insurer_actor(insurer_user, insurer) -> ActorContext:
    return ActorContext(actor_id=insurer_user.id, role=Role.INSURER, insurer_id=insurer.id)


@pytest.fixture
def make_claim(persist, clock, farmer, insurer, policy):
    """Factory inserting a claim directly in a given state."""

    async def _make(**overrides: Any) -> Claim:
        values: Dict[str, Any] = {
            "id": uuid4(),
            "claim_id": f"CLM-2026-{uuid4().hex[:6]}-001",
            "farmer_id": farmer.id,
            "policy_id": policy.id,
            "chosen_policy_id": policy.id,
            "assigned_to_id": insurer.id,
            "description": "Hailstorm flattened the standing wheat",
            "location_of_incident": "Survey 112, Nashik",
            "date_of_incident": date(2026, 4, 15),
            "date_of_claim": clock.now(),
            "status": ClaimStatus.PENDING,
            "verification_status": VerificationStatus.PENDING,
            "created_at": clock.now(),
            "updated_at": clock.now(),
        }
        values.update(overrides)
        claim = Claim(**values)
        await persist(claim)
        return claim

    return _make


@pytest.fixture
def make_task(persist, clock):
    """Factory inserting an AI task row directly."""

    async def _make(claim_id: UUID, task_type: AiTaskType = AiTaskType.OCR, **overrides: Any) -> AiTask:
        values: Dict[str, Any] = {
            "id": uuid4(),
            "claim_id": claim_id,
            "task_type": task_type,
            "status": AiTaskStatus.PENDING,
            "input_data": {},
            "retry_count": 0,
            "max_retries": 3,
            "next_attempt_at": clock.now(),
            "created_at": clock.now(),
            "updated_at": clock.now(),
        }
        values.update(overrides)
        task = AiTask(**values)
        await persist(task)
        return task

    return _make


@pytest.fixture
def reload_claim(session_factory):
    """Read the committed claim row in a fresh session."""

    async def _reload(claim_id: UUID) -> Claim:
        async with session_factory() as session:
            return await session.get(Claim, claim_id)

    return _reload


@pytest.fixture
def reload_task(session_factory):
    """Read the committed task row in a fresh session."""

    async def _reload(task_id: UUID) -> AiTask:
        async with session_factory() as session:
            return await session.get(AiTask, task_id)

    return _reload


# ----------------------------------------------------------------------
# API
# ----------------------------------------------------------------------


@pytest.fixture
def test_client() -> TestClient:
    """Create FastAPI test client.

    The client is not used as a context manager, so the application
    lifespan (database and scheduler start-up) does not run.

    Returns:
        TestClient: FastAPI test client instance
    """
    return TestClient(app)


@pytest.fixture(autouse=True)
def clear_dependency_overrides():
    """Ensure FastAPI dependency overrides are reset between tests."""
    app.dependency_overrides = {}
    yield
    app.dependency_overrides = {}
