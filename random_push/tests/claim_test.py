import asyncio
import pytest
from datetime import datetime, timedelta
from unittest.mock import patch, MagicMock
from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from random_push.db.models import Push, PushShare
from random_push.common.exceptions import IneligibleClaimError
from random_push.api.push.schema import ClaimAttempt
from random_push.api.push.service.push_service import PushService
from random_push.api.push.service.claim_service import ClaimService
from random_push.utils.cache.cache import PushCache

pytestmark = pytest.mark.asyncio


async def load_push(session: AsyncSession, push_id: int):
    push = (await session.execute(
        select(Push).where(Push.id == push_id).execution_options(populate_existing=True)
    )).scalar_one()
    shares = (await session.execute(
        select(PushShare)
        .where(PushShare.push_id == push_id)
        .order_by(PushShare.id)
        .execution_options(populate_existing=True)
    )).scalars().all()
    return push, shares


# -----------------------------------------------------------------
# validate_claim
# -----------------------------------------------------------------
async def test_validate_claim_success(db_session: AsyncSession, make_push):
    await make_push([100, 200, 300], claimants={0: 2})
    service = ClaimService(db_session)
    existing = await service.push_service.get_push("ABC", "test_room")

    assert service.validate_claim(existing, ClaimAttempt(user_id=3, room_id="test_room")) is True


async def test_validate_claim_creator_cannot_claim(db_session: AsyncSession, make_push):
    """뿌린 사람은 받을 수 없음"""
    await make_push([100, 200, 300], creator_id=1, claimants={0: 2})
    service = ClaimService(db_session)
    existing = await service.push_service.get_push("ABC", "test_room")

    assert service.validate_claim(existing, ClaimAttempt(user_id=1, room_id="test_room")) is False


async def test_validate_claim_rejects_when_nothing_claimed_yet(db_session: AsyncSession, make_push):
    """받은 내역이 하나도 없으면 첫 받기도 거절됨 (기존 동작 유지)"""
    await make_push([100, 200, 300])
    service = ClaimService(db_session)
    existing = await service.push_service.get_push("ABC", "test_room")

    assert service.validate_claim(existing, ClaimAttempt(user_id=2, room_id="test_room")) is False


async def test_validate_claim_duplicate_claimant(db_session: AsyncSession, make_push):
    """뿌리기당 사용자는 한번만 받을 수 있음"""
    await make_push([100, 200, 300], claimants={0: 2})
    service = ClaimService(db_session)
    existing = await service.push_service.get_push("ABC", "test_room")

    assert service.validate_claim(existing, ClaimAttempt(user_id=2, room_id="test_room")) is False


async def test_validate_claim_other_room(db_session: AsyncSession, make_push):
    """동일 대화방의 사용자만 받을 수 있음"""
    await make_push([100, 200, 300], claimants={0: 2})
    service = ClaimService(db_session)
    existing = await service.push_service.get_push("ABC", "test_room")

    assert service.validate_claim(existing, ClaimAttempt(user_id=3, room_id="other_room")) is False


# -----------------------------------------------------------------
# claim
# -----------------------------------------------------------------
async def test_claim_success(db_session: AsyncSession, make_push):
    push = await make_push([100, 200, 300])
    service = ClaimService(db_session)
    existing = await service.push_service.get_push("ABC", "test_room")

    amount = await service.claim(existing, ClaimAttempt(user_id=2, room_id="test_room"))

    # 저장 순서상 첫 번째 미수령 분배 내역
    assert amount in {100, 200, 300}
    assert amount == 100

    stored_push, shares = await load_push(db_session, push.id)
    claimed = [share for share in shares if share.claimed]
    assert len(claimed) == 1
    assert claimed[0].claimant_id == 2
    assert claimed[0].claimed_at is not None
    assert stored_push.claimed_total == amount

    # 전달된 스냅샷도 갱신됨
    assert existing.shares[0].claimed is True
    assert existing.shares[0].claimant_id == 2
    assert existing.claimed_total == 100


async def test_claim_skips_already_claimed(db_session: AsyncSession, make_push):
    push = await make_push([100, 200, 300], claimants={0: 2})
    service = ClaimService(db_session)
    existing = await service.push_service.get_push("ABC", "test_room")

    amount = await service.claim(existing, ClaimAttempt(user_id=3, room_id="test_room"))

    assert amount == 200
    stored_push, _ = await load_push(db_session, push.id)
    assert stored_push.claimed_total == 300


async def test_claim_with_stale_snapshot(db_session: AsyncSession, make_push):
    """캐시된 스냅샷이 오래되어도 이미 할당된 내역은 다시 할당되지 않음"""
    push = await make_push([100, 200, 300])
    service = ClaimService(db_session)
    stale_1 = await service.push_service.get_push("ABC", "test_room")
    stale_2 = await service.push_service.get_push("ABC", "test_room")

    first = await service.claim(stale_1, ClaimAttempt(user_id=2, room_id="test_room"))
    second = await service.claim(stale_2, ClaimAttempt(user_id=3, room_id="test_room"))

    assert (first, second) == (100, 200)
    stored_push, shares = await load_push(db_session, push.id)
    assert [share.claimant_id for share in shares] == [2, 3, None]
    assert stored_push.claimed_total == 300


async def test_claim_no_more_money(db_session: AsyncSession, make_push):
    """모든 금액이 소진된 후 받으려고 할 때 실패"""
    push = await make_push([100, 200], claimants={0: 2, 1: 3})
    push_id = push.id
    service = ClaimService(db_session)
    existing = await service.push_service.get_push("ABC", "test_room")

    with pytest.raises(IneligibleClaimError) as exc_info:
        await service.claim(existing, ClaimAttempt(user_id=4, room_id="test_room"))

    assert "받을 수 있는 금액이 없습니다" in str(exc_info.value)
    stored_push, _ = await load_push(db_session, push_id)
    assert stored_push.claimed_total == 300


async def test_claim_concurrent(session_maker, make_push):
    """동시에 여러 사용자가 받기를 시도할 때 동시성 제어 테스트"""
    push = await make_push([100, 200, 300])

    async def claim_attempt(user_id: int):
        # 각 시도마다 새로운 세션 생성
        async with session_maker() as session:
            service = ClaimService(session)
            existing = await service.push_service.get_push("ABC", "test_room", use_cache=False)
            return await service.claim(existing, ClaimAttempt(user_id=user_id, room_id="test_room"))

    results = await asyncio.gather(
        *(claim_attempt(user_id) for user_id in range(2, 8)),
        return_exceptions=True
    )

    amounts = [r for r in results if isinstance(r, int)]
    failures = [r for r in results if not isinstance(r, int)]
    assert sorted(amounts) == [100, 200, 300]
    assert all(isinstance(f, IneligibleClaimError) for f in failures)

    async with session_maker() as session:
        stored_push, shares = await load_push(session, push.id)

    assert all(share.claimed for share in shares)
    assert len({share.claimant_id for share in shares}) == 3
    assert stored_push.claimed_total == sum(amounts) == 600


# -----------------------------------------------------------------
# receive / process_claim_request
# -----------------------------------------------------------------
async def test_receive_evicts_cache(db_session: AsyncSession, make_push, fake_redis):
    await make_push([100, 200, 300])
    push_service = PushService(db_session, PushCache(fake_redis))
    service = ClaimService(db_session, push_service)

    await push_service.get_push("ABC", "test_room")
    assert fake_redis.store

    amount = await service.receive("ABC", 2, "test_room")

    assert amount == 100
    assert fake_redis.store == {}
    refreshed = await push_service.get_push("ABC", "test_room")
    assert refreshed.claimed_total == 100
    assert refreshed.shares[0].claimant_id == 2


async def test_receive_same_user_concurrent(session_maker, make_push):
    """같은 사용자의 받기 요청이 동시에 워커로 들어와도 한 건만 할당됨"""
    push = await make_push([100, 200, 300], claimants={0: 2})
    push_id = push.id

    async def receive_attempt():
        async with session_maker() as session:
            return await ClaimService(session).receive("ABC", 3, "test_room")

    results = await asyncio.gather(receive_attempt(), receive_attempt(), return_exceptions=True)

    amounts = [r for r in results if isinstance(r, int)]
    failures = [r for r in results if not isinstance(r, int)]
    assert amounts == [200]
    assert len(failures) == 1
    assert isinstance(failures[0], IneligibleClaimError)

    async with session_maker() as session:
        stored_push, shares = await load_push(session, push_id)

    assert [share.claimant_id for share in shares] == [2, 3, None]
    assert stored_push.claimed_total == 300


async def test_receive_same_user_twice(db_session: AsyncSession, make_push):
    """이미 받은 사용자의 요청이 다시 처리되면 거절"""
    push = await make_push([100, 200, 300], claimants={0: 2})
    push_id = push.id
    service = ClaimService(db_session)

    assert await service.receive("ABC", 3, "test_room") == 200
    with pytest.raises(IneligibleClaimError) as exc_info:
        await service.receive("ABC", 3, "test_room")

    assert "이미 받은 사용자입니다" in str(exc_info.value)
    stored_push, shares = await load_push(db_session, push_id)
    assert [share.claimant_id for share in shares] == [2, 3, None]
    assert stored_push.claimed_total == 300


async def test_receive_creator_rejected(db_session: AsyncSession, make_push):
    """뿌린 사람의 요청은 워커에서도 거절"""
    push = await make_push([100, 200, 300], creator_id=1, claimants={0: 2})
    push_id = push.id
    service = ClaimService(db_session)

    with pytest.raises(IneligibleClaimError) as exc_info:
        await service.receive("ABC", 1, "test_room")

    assert "자신이 뿌린 건은 받을 수 없습니다" in str(exc_info.value)
    stored_push, shares = await load_push(db_session, push_id)
    assert [share.claimant_id for share in shares] == [2, None, None]
    assert stored_push.claimed_total == 100


async def test_claim_same_user_blocked_by_constraint(db_session: AsyncSession, make_push):
    """검증 없이 claim을 호출해도 같은 사용자에게 두 번째 내역은 할당되지 않음"""
    push = await make_push([100, 200, 300], claimants={0: 2})
    push_id = push.id
    service = ClaimService(db_session)
    existing = await service.push_service.get_push("ABC", "test_room")

    with pytest.raises(IntegrityError):
        await service.claim(existing, ClaimAttempt(user_id=2, room_id="test_room"))

    stored_push, shares = await load_push(db_session, push_id)
    assert [share.claimant_id for share in shares] == [2, None, None]
    assert stored_push.claimed_total == 100


async def test_check_claim_request_expired(db_session: AsyncSession, make_push):
    """10분이 지난 뿌리기는 받을 수 없음"""
    await make_push([100, 200, 300], claimants={0: 2},
                    created_at=datetime.utcnow() - timedelta(minutes=11))
    service = ClaimService(db_session)

    with pytest.raises(IneligibleClaimError) as exc_info:
        await service.check_claim_request("ABC", 3, "test_room")

    assert "뿌린지 10분이 지나 받을 수 없습니다" in str(exc_info.value)


async def test_check_claim_request_ineligible(db_session: AsyncSession, make_push):
    await make_push([100, 200, 300])
    service = ClaimService(db_session)

    with pytest.raises(IneligibleClaimError):
        await service.check_claim_request("ABC", 2, "test_room")


async def test_process_claim_request_success(db_session: AsyncSession, make_push):
    await make_push([100, 200, 300], claimants={0: 2})

    with patch('random_push.worker.tasks.process_claim.apply_async') as mock_task:
        mock_async_result = MagicMock()
        mock_async_result.get.return_value = {"claimed_amount": 200}
        mock_task.return_value = mock_async_result

        service = ClaimService(db_session)
        response = await service.process_claim_request("ABC", 3, "test_room")

    assert response.claimed_amount == 200
    mock_task.assert_called_once_with(
        kwargs={"token": "ABC", "user_id": 3, "room_id": "test_room"},
        queue='claim_requests'
    )


async def test_process_claim_request_timeout(db_session: AsyncSession, make_push):
    """받기 요청 처리 시 타임아웃 발생 케이스 테스트"""
    await make_push([100, 200, 300], claimants={0: 2})

    with patch('random_push.worker.tasks.process_claim.apply_async') as mock_task:
        # 태스크가 타임아웃되도록 설정
        mock_async_result = MagicMock()
        mock_async_result.get.side_effect = TimeoutError()
        mock_task.return_value = mock_async_result

        service = ClaimService(db_session)

        with pytest.raises(HTTPException) as exc_info:
            await service.process_claim_request("ABC", 3, "test_room")

    assert exc_info.value.status_code == 408
    assert "요청 처리 시간이 초과되었습니다" in str(exc_info.value.detail)


async def test_process_claim_request_not_dispatched_when_invalid(db_session: AsyncSession, make_push):
    await make_push([100, 200, 300], creator_id=1, claimants={0: 2})

    with patch('random_push.worker.tasks.process_claim.apply_async') as mock_task:
        service = ClaimService(db_session)
        with pytest.raises(IneligibleClaimError):
            await service.process_claim_request("ABC", 1, "test_room")

    mock_task.assert_not_called()
