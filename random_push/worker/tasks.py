"""
Celery 태스크 정의

이 모듈은 비동기적으로 처리될 작업들을 정의합니다.
주요 태스크:
- process_claim: 뿌리기 받기 요청 처리
"""

import asyncio
import logging
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import NullPool
from .celery_app import celery_app
from ..core.config import settings

logger = logging.getLogger(__name__)

@celery_app.task(name="process_claim", bind=True)
def process_claim(self, *, token: str, user_id: int, room_id: str) -> dict:
    """
    받기 요청을 처리하는 Celery 태스크

    이 태스크는 다음과 같은 순서로 처리됩니다:
    1. 비동기 DB 세션 생성
    2. ClaimService를 통해 분배 내역 할당 (조건부 UPDATE + 비관적 락)
    3. 조회 캐시 삭제 후 처리 결과 반환

    Args:
        token: 뿌리기 토큰
        user_id: 받기 요청한 사용자 ID
        room_id: 대화방 ID

    Returns:
        dict: 처리 결과를 담은 딕셔너리 {"claimed_amount": int}
    """
    logger.info(f"[Task {self.request.id}] Starting claim processing")
    logger.info(f"Parameters - User: {user_id}, Room: {room_id}")
    return asyncio.run(_process(self.request.id, token, user_id, room_id))


async def _process(task_id, token: str, user_id: int, room_id: str) -> dict:
    # 순환 참조를 피하기 위해 함수 내부에서 import
    from ..api.push.service.push_service import PushService
    from ..api.push.service.claim_service import ClaimService
    from ..utils.cache.cache import PushCache

    # 태스크마다 새 이벤트 루프에서 실행되므로 커넥션 풀을 공유하지 않음
    engine = create_async_engine(settings.DATABASE_URL, poolclass=NullPool)
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    cache = PushCache()
    try:
        async with session_maker() as session:
            claim_service = ClaimService(session, PushService(session, cache))
            try:
                claimed_amount = await claim_service.receive(
                    token=token,
                    user_id=user_id,
                    room_id=room_id
                )
            except Exception as e:
                logger.error(f"[Task {task_id}] Processing failed: {str(e)}")
                raise

            logger.info(f"[Task {task_id}] Successfully processed. Amount: {claimed_amount}")
            return {"claimed_amount": claimed_amount}
    finally:
        await cache.close()
        await engine.dispose()
