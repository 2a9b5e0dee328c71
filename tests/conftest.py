from pathlib import Path
import os
import sys

import httpx
import pytest
import pytest_asyncio

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.pop("REDIS_URL", None)

from src.core.database import Base, build_engine, build_sessionmaker  # noqa: E402
from src.core.rate_limit import MemoryAccessLimiter  # noqa: E402
from src.modules.bookings import models as booking_models  # noqa: E402,F401
from src.modules.clinics.directory import ClinicDirectory  # noqa: E402
from src.modules.reviews import models as review_models  # noqa: E402,F401
from src.modules.users.models import User  # noqa: E402
from src.shared.enums import UserRole  # noqa: E402
from src.shared.ulid import generate_ulid  # noqa: E402

KNOWN_CLINICS = {
    "clinic-gangnam": {"en": "Gangnam Beauty Clinic", "ja": "江南ビューティークリニック", "zh": "江南美容诊所"},
    "clinic-sinsa": {"en": "Sinsa Aesthetic", "ja": "", "zh": ""},
}


def clinic_service_handler(request: httpx.Request) -> httpx.Response:
    clinic_id = request.url.path.rsplit("/", 1)[-1]
    name = KNOWN_CLINICS.get(clinic_id)
    if name is None:
        return httpx.Response(404, json={"success": False, "error": "Clinic not found"})
    return httpx.Response(
        200,
        json={
            "success": True,
            "data": {"_id": clinic_id, "name": name, "phone": "+82-2-555-0100", "city": "seoul"},
        },
    )


@pytest_asyncio.fixture
async def db_session():
    engine = build_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    SessionLocal = build_sessionmaker(engine)
    async with SessionLocal() as session:
        yield session
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """File-backed database so that several sessions see each other's commits."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'bookings.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield build_sessionmaker(engine)
    await engine.dispose()


@pytest.fixture
def limiter():
    return MemoryAccessLimiter(max_attempts=5, lockout_seconds=60, lockout_max_seconds=3600)


@pytest_asyncio.fixture
async def clinic_directory():
    transport = httpx.MockTransport(clinic_service_handler)
    async with httpx.AsyncClient(transport=transport, base_url="http://clinics.test") as client:
        yield ClinicDirectory(client=client)


async def _create_user(session, role: UserRole = UserRole.CUSTOMER, email: str | None = None) -> User:
    user_id = generate_ulid()
    user = User(
        user_id=user_id,
        email=email or f"{user_id.lower()}@example.com",
        role=role,
        display_name=role.value.title(),
        is_active=True,
    )
    session.add(user)
    await session.commit()
    return user


@pytest.fixture
def make_user():
    return _create_user
