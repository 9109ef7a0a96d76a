import pytest
from datetime import datetime
from unittest.mock import MagicMock
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from random_push.core.config import settings
from random_push.db.models import Base, Push, PushShare


class FakeAsyncRedis:
    """redis.asyncio.Redis 대신 사용하는 테스트용 메모리 저장소"""

    def __init__(self):
        self.store = {}

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        self.store[key] = value

    async def delete(self, key):
        self.store.pop(key, None)

    async def aclose(self):
        pass


@pytest.fixture
async def db_engine(tmp_path):
    """테스트 DB 엔진 생성 (기본: 테스트마다 새 SQLite 파일)"""
    if settings.TEST_DATABASE_URL:
        if 'test' not in settings.TEST_DATABASE_URL.lower():
            raise ValueError(
                "TEST_DATABASE_URL must contain 'test' in the database name for safety"
            )
        url = settings.TEST_DATABASE_URL
    else:
        url = f"sqlite+aiosqlite:///{tmp_path / 'random_push_test.db'}"

    engine = create_async_engine(url)

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Cleanup
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_maker(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def fake_redis():
    return FakeAsyncRedis()


@pytest.fixture
def mock_token_service():
    """TokenService 모킹"""
    instance = MagicMock()
    instance.generate_token.return_value = "ABC"
    return instance


@pytest.fixture
def make_push(db_session: AsyncSession):
    """지정한 금액 목록으로 뿌리기 건을 직접 생성하는 팩토리"""
    from random_push.utils.token.token import TokenService

    async def _make_push(amounts, token="ABC", room_id="test_room", creator_id=1,
                         created_at=None, claimants=None):
        created_at = created_at or datetime.utcnow()
        claimants = claimants or {}
        push = Push(
            token=TokenService.get_hash_key(token),
            room_id=room_id,
            total_amount=sum(amounts),
            share_count=len(amounts),
            creator_id=creator_id,
            created_at=created_at,
            claimed_total=sum(amounts[i] for i in claimants)
        )
        db_session.add(push)
        await db_session.flush()

        for index, amount in enumerate(amounts):
            db_session.add(PushShare(
                push_id=push.id,
                amount=amount,
                creator_id=creator_id,
                created_at=created_at,
                claimed=index in claimants,
                claimant_id=claimants.get(index),
                claimed_at=created_at if index in claimants else None
            ))
        await db_session.commit()
        return push

    return _make_push
