"""
뿌리기 조회 캐시 (cache-aside)

조회 결과(뿌리기 건 + 분배 내역)를 (해시 토큰, 대화방) 키로 Redis에 저장합니다.
받기 처리로 분배 내역이 바뀐 뒤에는 호출자가 evict()로 직접 삭제해야 합니다.
"""

import logging
from typing import Optional
import redis.asyncio as aioredis
from random_push.core.config import settings
from random_push.common.enums import RedisPrefix
from random_push.api.push.schema import PushSnapshot

logger = logging.getLogger(__name__)

class PushCache:
    def __init__(self, client: Optional[aioredis.Redis] = None, ttl_seconds: Optional[int] = None):
        self._redis = client or aioredis.Redis(
            host=settings.REDIS_HOST,
            port=settings.REDIS_PORT,
            db=settings.REDIS_DB,
            decode_responses=True
        )
        self._ttl_seconds = ttl_seconds or settings.CACHE_TTL_SECONDS

    @staticmethod
    def make_key(token_key: str, room_id: str) -> str:
        return f"{RedisPrefix.RANDOM_PUSH.value}:{token_key}:{room_id}"

    async def get(self, token_key: str, room_id: str) -> Optional[PushSnapshot]:
        raw = await self._redis.get(self.make_key(token_key, room_id))
        if raw is None:
            return None
        logger.debug(f"Cache hit - room: {room_id}")
        return PushSnapshot.model_validate_json(raw)

    async def set(self, snapshot: PushSnapshot) -> None:
        await self._redis.set(
            self.make_key(snapshot.token, snapshot.room_id),
            snapshot.model_dump_json(),
            ex=self._ttl_seconds
        )

    async def evict(self, token_key: str, room_id: str) -> None:
        await self._redis.delete(self.make_key(token_key, room_id))
        logger.debug(f"Cache evicted - room: {room_id}")

    async def close(self) -> None:
        await self._redis.aclose()

# 의존성 주입을 위한 제너레이터 함수
async def get_push_cache():
    cache = PushCache()
    try:
        yield cache
    finally:
        await cache.close()
