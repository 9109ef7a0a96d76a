from datetime import datetime, timedelta
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
import logging
from random_push.core.config import settings

from ....common.exceptions import ValidationFailedError
from ..schema import PushSnapshot, PushStatusResponse, PushClaimDetail
from .push_service import PushService

logger = logging.getLogger(__name__)

class StatusService:
    def __init__(self, db: AsyncSession, push_service: Optional[PushService] = None):
        self.push_service = push_service or PushService(db)

    async def get_push_status(self, user_id: int, token: str, room_id: str,
                              now: Optional[datetime] = None) -> PushStatusResponse:
        """
        뿌리기 건의 현재 상태를 조회합니다.
        - 뿌린 사람 자신만 조회 가능
        - 뿌린 시점으로부터 7일 동안 조회 가능
        """
        push = await self.push_service.get_push(token, room_id)

        if not self.validate_status(push, user_id, now):
            raise ValidationFailedError("validation fail")

        # 받기 완료된 정보 목록 생성 (저장 순서)
        claimed_list = [
            PushClaimDetail(
                amount=share.amount,
                user_id=share.claimant_id
            )
            for share in push.shares
            if share.claimed
        ]

        response = PushStatusResponse(
            push_time=push.created_at,
            total_amount=push.total_amount,
            claimed_total_amount=push.claimed_total,
            claimed_list=claimed_list
        )
        logger.debug(f"Final response: {response}")

        return response

    @staticmethod
    def validate_status(push: PushSnapshot, user_id: int, now: Optional[datetime] = None) -> bool:
        """상태 조회 검증"""
        # 뿌린 사람 자신만 조회
        if push.creator_id != user_id:
            return False

        # 뿌린 건에 대해 7일간 조회
        now = now or datetime.utcnow()
        if now - timedelta(days=settings.STATUS_WINDOW_DAYS) > push.created_at:
            return False

        return True
