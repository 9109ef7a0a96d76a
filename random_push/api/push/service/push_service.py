from datetime import datetime, timedelta
from typing import Optional
from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
import logging
from random_push.core.config import settings
from random_push.utils.token.token import TokenService
from random_push.utils.cache.cache import PushCache

from ....db.models import Push, PushShare
from ....common.exceptions import InvalidArgumentError, PushNotFoundError
from ..schema import PushSnapshot
from ..utils import partition

logger = logging.getLogger(__name__)

class PushService:
    def __init__(self, db: AsyncSession, cache: Optional[PushCache] = None,
                 token_service: Optional[TokenService] = None):
        self.db = db
        self._cache = cache
        self._token_service = token_service

    @property
    def token_service(self) -> TokenService:
        if self._token_service is None:
            self._token_service = TokenService()
        return self._token_service

    def publish_token(self) -> str:
        """토큰 발급"""
        return self.token_service.generate_token()

    def get_hash_key(self, token: str) -> str:
        return TokenService.get_hash_key(token)

    async def create_push(self, total_amount: int, share_count: int, creator_id: int,
                          room_id: str, token: str) -> Push:
        """
        뿌리기 건과 분배 내역을 하나의 트랜잭션으로 저장합니다.

        Args:
            total_amount: 뿌릴 총 금액
            share_count: 뿌릴 인원 수
            creator_id: 뿌린 사용자 ID
            room_id: 대화방 ID
            token: 발급된 원본 토큰 (해시 키로 변환하여 저장)

        Raises:
            InvalidArgumentError: 분배 결과에 0원 이하 금액이 포함된 경우
        """
        # 1. 금액 분배 (저장 전에 검증)
        amounts = partition(total_amount, share_count)
        if any(amount <= 0 for amount in amounts):
            raise InvalidArgumentError("뿌릴 금액이 인원수에 비해 너무 적습니다.")

        now = datetime.utcnow()
        try:
            # 2. 뿌리기 건 생성
            push = Push(
                token=self.get_hash_key(token),
                room_id=room_id,
                total_amount=total_amount,
                share_count=share_count,
                creator_id=creator_id,
                created_at=now,
                claimed_total=0
            )
            self.db.add(push)
            await self.db.flush()

            # 3. 분배 내역 일괄 생성
            self.db.add_all([
                PushShare(
                    push_id=push.id,
                    amount=amount,
                    creator_id=creator_id,
                    created_at=now,
                    claimed=False
                )
                for amount in amounts
            ])

            await self.db.commit()
            logger.info(f"Push created - room: {room_id}, creator: {creator_id}, shares: {amounts}")
            return push

        except Exception as e:
            await self.db.rollback()
            logger.error(f"Error in create_push: {e}")
            raise

    async def get_push(self, token: str, room_id: str, use_cache: bool = True) -> PushSnapshot:
        """토큰과 대화방으로 뿌리기 건을 조회합니다. (캐시 우선)"""
        token_key = self.get_hash_key(token)

        if use_cache and self._cache is not None:
            cached = await self._cache.get(token_key, room_id)
            if cached is not None:
                return cached

        query = select(Push).options(selectinload(Push.shares)).where(
            and_(
                Push.token == token_key,
                Push.room_id == room_id
            )
        ).execution_options(populate_existing=True)
        push = (await self.db.execute(query)).scalar_one_or_none()
        if not push:
            raise PushNotFoundError("해당 토큰의 뿌리기 건이 존재하지 않습니다.")

        snapshot = PushSnapshot.model_validate(push)
        logger.debug(f"Loaded push {snapshot.id} with {len(snapshot.shares)} shares")

        if self._cache is not None:
            await self._cache.set(snapshot)

        return snapshot

    async def invalidate_cache(self, push: PushSnapshot) -> None:
        """기존 캐시 삭제"""
        if self._cache is not None:
            await self._cache.evict(push.token, push.room_id)

    def is_expired(self, push: PushSnapshot, now: Optional[datetime] = None) -> bool:
        """뿌린 건 유효시간(10분) 만료 체크"""
        now = now or datetime.utcnow()
        return now - timedelta(minutes=settings.CLAIM_WINDOW_MINUTES) > push.created_at
