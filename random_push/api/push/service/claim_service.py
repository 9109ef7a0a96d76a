from datetime import datetime
from typing import Optional
from fastapi import HTTPException
from celery.exceptions import TimeoutError as CeleryTimeoutError
from sqlalchemy import select, update, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
import logging
from random_push.core.config import settings

from ....db.models import Push, PushShare
from ....common.exceptions import IneligibleClaimError
from ..schema import ClaimAttempt, ClaimResponse, PushShareSnapshot, PushSnapshot
from .push_service import PushService

logger = logging.getLogger(__name__)

class ClaimService:
    def __init__(self, db: AsyncSession, push_service: Optional[PushService] = None):
        self.db = db
        self.push_service = push_service or PushService(db)

    def validate_claim(self, existing_push: PushSnapshot, attempt: ClaimAttempt) -> bool:
        """
        받기 가능 여부를 검증합니다. 첫 번째 실패에서 바로 False를 반환합니다.

        받은 내역이 하나도 없는 뿌리기 건은 받을 수 없다는 규칙(2번)은 기존 동작을
        그대로 유지한 것으로, 첫 번째 받기 요청도 거절됩니다.
        """
        # 1. 자신이 뿌린 건은 받을 수 없음
        if existing_push.creator_id == attempt.user_id:
            return False

        claimed_shares = [share for share in existing_push.shares if share.claimed]

        # 2. 받은 내역이 없음
        if not claimed_shares:
            return False

        # 3. 뿌리기당 사용자는 한번만 받을 수 있음
        if any(share.claimant_id == attempt.user_id for share in claimed_shares):
            return False

        # 4. 동일 대화방의 사용자만 받을 수 있음
        if attempt.room_id != existing_push.room_id:
            return False

        return True

    async def claim(self, existing_push: PushSnapshot, attempt: ClaimAttempt) -> int:
        """
        아직 받지 않은 첫 번째 분배 내역을 할당합니다.

        validate_claim 통과 여부는 호출자가 확인해야 합니다. 분배 내역 할당과
        받기 완료 금액 증가는 하나의 트랜잭션으로 처리됩니다.

        Returns:
            받은 금액

        Raises:
            IneligibleClaimError: 받을 수 있는 분배 내역이 없는 경우
        """
        try:
            # 1. 뿌리기 건 잠금 (비관적 락)
            await self.db.execute(
                select(Push.id).where(Push.id == existing_push.id).with_for_update()
            )

            # 2. 저장 순서대로 할당되지 않은 분배 내역 선점
            now = datetime.utcnow()
            claimed_share = None
            for share in existing_push.shares:
                if share.claimed:
                    continue
                result = await self.db.execute(
                    update(PushShare)
                    .where(
                        and_(
                            PushShare.id == share.id,
                            PushShare.claimed.is_(False)
                        )
                    )
                    .values(claimed=True, claimant_id=attempt.user_id, claimed_at=now)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 1:
                    claimed_share = share
                    break
                logger.debug(f"Share {share.id} already claimed, trying next")

            if claimed_share is None:
                raise IneligibleClaimError("받을 수 있는 금액이 없습니다.")

            # 3. 받기 완료 금액 증가
            await self.db.execute(
                update(Push)
                .where(Push.id == existing_push.id)
                .values(claimed_total=Push.claimed_total + claimed_share.amount)
                .execution_options(synchronize_session=False)
            )

            await self.db.commit()

        except Exception as e:
            await self.db.rollback()
            logger.error(f"Error in claim: {str(e)}")
            raise

        claimed_share.claimed = True
        claimed_share.claimant_id = attempt.user_id
        claimed_share.claimed_at = now
        existing_push.claimed_total += claimed_share.amount

        logger.info(f"Share {claimed_share.id} claimed by user {attempt.user_id}: {claimed_share.amount}")
        return claimed_share.amount

    async def receive(self, token: str, user_id: int, room_id: str) -> int:
        """
        워커에서 실행되는 받기 처리 (잠금 → 재조회 → 재검증 → 할당 → 캐시 삭제)

        HTTP 단계의 검증은 캐시된 스냅샷 기준이므로, 같은 사용자의 요청이 연달아
        들어와도 한 건만 할당되도록 잠금 이후 최신 분배 내역으로 다시 검증합니다.
        """
        attempt = ClaimAttempt(user_id=user_id, room_id=room_id)
        existing_push = await self.push_service.get_push(token, room_id, use_cache=False)

        try:
            # 1. 뿌리기 건 잠금 후 분배 내역 재조회
            await self.db.execute(
                select(Push.id).where(Push.id == existing_push.id).with_for_update()
            )
            result = await self.db.execute(
                select(PushShare)
                .where(PushShare.push_id == existing_push.id)
                .order_by(PushShare.id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            existing_push.shares = [
                PushShareSnapshot.model_validate(share) for share in result.scalars().all()
            ]

            # 2. 자신이 뿌린 건 / 이미 받은 사용자 / 다른 대화방 재확인
            if existing_push.creator_id == user_id:
                raise IneligibleClaimError("자신이 뿌린 건은 받을 수 없습니다.")
            if any(share.claimant_id == user_id for share in existing_push.shares):
                raise IneligibleClaimError("이미 받은 사용자입니다.")
            if existing_push.room_id != room_id:
                raise IneligibleClaimError("동일 대화방의 사용자만 받을 수 있습니다.")

        except IneligibleClaimError as e:
            await self.db.rollback()
            logger.warning(f"Claim rejected for user {user_id}: {e.message}")
            raise

        try:
            amount = await self.claim(existing_push, attempt)
        except IntegrityError as e:
            # 동시 요청 중 다른 요청이 먼저 같은 사용자로 할당한 경우
            raise IneligibleClaimError("이미 받은 사용자입니다.") from e

        await self.push_service.invalidate_cache(existing_push)
        return amount

    async def check_claim_request(self, token: str, user_id: int, room_id: str) -> PushSnapshot:
        """돈 받기 요청에 대한 기본 검증을 수행합니다."""
        existing_push = await self.push_service.get_push(token, room_id)

        # 10분 제한 확인
        if self.push_service.is_expired(existing_push):
            raise IneligibleClaimError("뿌린지 10분이 지나 받을 수 없습니다.")

        if not self.validate_claim(existing_push, ClaimAttempt(user_id=user_id, room_id=room_id)):
            raise IneligibleClaimError("받기 조건을 만족하지 않습니다.")

        return existing_push

    async def process_claim_request(self, token: str, user_id: int, room_id: str) -> ClaimResponse:
        """
        돈 받기 요청을 처리하는 메서드

        1. 기본 유효성 검증 수행
        2. Celery 태스크로 실제 처리 위임
        3. 처리 결과 반환
        """
        # 순환 참조를 피하기 위해 함수 내부에서 import
        from ....worker.tasks import process_claim

        logger.info(f"Processing claim request - User: {user_id}, Room: {room_id}")

        await self.check_claim_request(token, user_id, room_id)
        logger.info("Request validation passed")

        # Celery 태스크로 실제 처리 위임
        logger.info("Delegating to Celery worker...")
        task = process_claim.apply_async(
            kwargs={
                "token": token,
                "user_id": user_id,
                "room_id": room_id
            },
            queue='claim_requests'
        )

        try:
            result = task.get(timeout=settings.CLAIM_TASK_TIMEOUT)
        except (TimeoutError, CeleryTimeoutError):
            logger.error("Task processing timed out")
            raise HTTPException(
                status_code=408,
                detail="요청 처리 시간이 초과되었습니다. 잠시 후 다시 시도해주세요."
            )

        logger.info(f"Task completed. Result: {result}")
        return ClaimResponse(**result)
