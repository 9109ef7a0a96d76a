import hashlib
import random
import string
from datetime import datetime, timedelta
import logging
import redis
from random_push.core.config import settings
from random_push.common.enums import RedisPrefix

logger = logging.getLogger(__name__)

TOKEN_ALPHABET = string.ascii_uppercase + string.digits
TOKEN_LENGTH = 3


class TokenService:
    """
    뿌리기 토큰 발급기

    발급된 토큰은 used_tokens 집합과 token:{토큰} 해시로 Redis에 예약되며,
    만료 기간이 지나면 다시 발급될 수 있습니다.
    """

    def __init__(self):
        self._expiry_seconds = int(timedelta(days=settings.TOKEN_EXPIRY_DAYS).total_seconds())
        self._redis = redis.Redis(
            host=settings.REDIS_HOST,
            port=settings.REDIS_PORT,
            db=settings.REDIS_DB,
            decode_responses=True
        )
        self._token_prefix = f"{RedisPrefix.TOKEN.value}:"
        self._used_tokens_key = RedisPrefix.USED_TOKENS.value

    def generate_token(self) -> str:
        """중복되지 않는 3자리 랜덤 토큰 생성"""
        if not self._redis.ping():
            raise redis.ConnectionError("Redis connection failed")

        while True:
            token = ''.join(random.choices(TOKEN_ALPHABET, k=TOKEN_LENGTH))
            if self._reserve(token):
                return token
            logger.debug(f"Token {token} not reserved, drawing another")

    def _reserve(self, token: str) -> bool:
        """
        토큰을 사용 중으로 등록합니다.

        이미 사용 중이거나 다른 요청과 경합(WatchError)한 경우, 또는 만료 시간이
        걸리지 않은 경우 False를 반환합니다.
        """
        token_key = f"{self._token_prefix}{token}"

        with self._redis.pipeline() as pipe:
            try:
                pipe.watch(self._used_tokens_key, token_key)
                if pipe.sismember(self._used_tokens_key, token):
                    return False

                pipe.multi()
                pipe.sadd(self._used_tokens_key, token)
                pipe.hset(token_key, mapping={
                    "created_at": datetime.now().isoformat(),
                    "status": "active"
                })
                pipe.expire(token_key, self._expiry_seconds)
                pipe.expire(self._used_tokens_key, self._expiry_seconds + 60)
                pipe.execute()
            except redis.WatchError:
                return False

        # -1: 만료 시간 없음, -2: 키 없음
        if self._redis.ttl(token_key) < 0:
            logger.warning(f"Token {token} reserved without expiry, releasing")
            self.release_token(token)
            return False

        return True

    def release_token(self, token: str) -> None:
        """토큰 해제 (재사용 가능하도록)"""
        self._redis.srem(self._used_tokens_key, token)
        self._redis.delete(f"{self._token_prefix}{token}")

    @staticmethod
    def get_hash_key(token: str) -> str:
        """저장용 해시 키 변환"""
        return hashlib.sha256(token.encode("utf-8")).hexdigest()
