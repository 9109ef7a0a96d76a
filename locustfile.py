"""
뿌리기 API 부하 테스트

- ClaimRulesUser: HTTP만으로 만든 뿌리기 건에 대해 받기 규칙별 응답 코드를 확인
- SeededClaimUser: 한 건이 이미 받아진 뿌리기 건을 DB에 직접 만들어 실제 할당까지 확인

SeededClaimUser는 API 서버와 같은 DATABASE_URL 설정으로 실행해야 합니다.
"""
import asyncio
import itertools
import logging
import random
import string

from locust import HttpUser, task, between
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from random_push.core.config import settings
from random_push.api.push.schema import ClaimAttempt
from random_push.api.push.service.push_service import PushService
from random_push.api.push.service.claim_service import ClaimService

logger = logging.getLogger(__name__)

# 사용자 인스턴스끼리 겹치지 않는 사용자 ID
_user_ids = itertools.count(10_000)


def random_room_id():
    return ''.join(random.choices(string.ascii_letters + string.digits, k=10))


def random_token():
    return ''.join(random.choices(string.ascii_uppercase + string.digits, k=3))


def identity(user_id, room_id):
    return {"x-user-id": str(user_id), "x-room-id": room_id}


async def seed_push(token, room_id, creator_id, seed_claimant_id, total_amount, share_count):
    """첫 번째 분배 내역이 이미 받아진 뿌리기 건 생성"""
    engine = create_async_engine(settings.DATABASE_URL, poolclass=NullPool)
    session_maker = async_sessionmaker(engine, expire_on_commit=False)
    try:
        async with session_maker() as session:
            push_service = PushService(session)
            await push_service.create_push(total_amount, share_count, creator_id, room_id, token)
            existing = await push_service.get_push(token, room_id, use_cache=False)
            await ClaimService(session, push_service).claim(
                existing, ClaimAttempt(user_id=seed_claimant_id, room_id=room_id)
            )
    finally:
        await engine.dispose()


class ClaimRulesUser(HttpUser):
    """받은 내역이 없는 뿌리기 건은 누구도 받을 수 없고, 조회는 뿌린 사람만 가능"""
    wait_time = between(0.1, 0.5)
    weight = 2

    def on_start(self):
        self.room_id = random_room_id()
        self.creator_id = next(_user_ids)
        self.token = None

    @task(1)
    def create_push(self):
        share_count = random.randint(1, 5)
        data = {"total_amount": random.randint(1000, 100000), "share_count": share_count}
        with self.client.post("/api/v1/push", json=data,
                              headers=identity(self.creator_id, self.room_id),
                              catch_response=True) as response:
            if response.status_code == 200:
                self.token = response.json()["token"]
                response.success()
            else:
                response.failure(f"create: {response.status_code} {response.text}")

    @task(2)
    def creator_claim_rejected(self):
        if not self.token:
            return
        self._expect_claim(self.creator_id, self.room_id, 400, "/api/v1/claim [creator]")

    @task(2)
    def first_claim_rejected(self):
        if not self.token:
            return
        self._expect_claim(next(_user_ids), self.room_id, 400, "/api/v1/claim [first]")

    @task(1)
    def other_room_not_found(self):
        if not self.token:
            return
        self._expect_claim(next(_user_ids), random_room_id(), 404, "/api/v1/claim [other room]")

    @task(2)
    def status(self):
        if not self.token:
            return
        self._expect_status(self.creator_id, 200, "/api/v1/push/{token} [creator]")
        self._expect_status(next(_user_ids), 400, "/api/v1/push/{token} [other user]")

    def _expect_claim(self, user_id, room_id, expected, name):
        with self.client.post("/api/v1/claim", json={"token": self.token},
                              headers=identity(user_id, room_id),
                              name=name, catch_response=True) as response:
            if response.status_code == expected:
                response.success()
            else:
                response.failure(f"expected {expected}, got {response.status_code}")

    def _expect_status(self, user_id, expected, name):
        with self.client.get(f"/api/v1/push/{self.token}",
                             headers=identity(user_id, self.room_id),
                             name=name, catch_response=True) as response:
            if response.status_code == expected:
                response.success()
            else:
                response.failure(f"expected {expected}, got {response.status_code}")


class SeededClaimUser(HttpUser):
    """이미 한 건이 받아진 뿌리기 건에서 사용자마다 한 건씩만 받는지 확인"""
    wait_time = between(0.1, 0.5)
    weight = 1
    share_count = 5

    def on_start(self):
        self.room_id = random_room_id()
        self.token = random_token()
        self.creator_id = next(_user_ids)
        self.receivers = {}
        self.exhausted = False

        asyncio.run(seed_push(
            self.token, self.room_id, self.creator_id, next(_user_ids),
            total_amount=random.randint(10_000, 100_000), share_count=self.share_count
        ))

    @task(3)
    def new_claimant(self):
        user_id = next(_user_ids)
        with self.client.post("/api/v1/claim", json={"token": self.token},
                              headers=identity(user_id, self.room_id),
                              name="/api/v1/claim [new claimant]", catch_response=True) as response:
            if response.status_code == 200:
                if self.exhausted:
                    response.failure("claimed after every share was taken")
                    return
                self.receivers[user_id] = response.json()["claimed_amount"]
                response.success()
            elif response.status_code == 400 and len(self.receivers) >= self.share_count - 1:
                self.exhausted = True
                response.success()
            elif response.status_code in (400, 408):
                # 워커 타임아웃 또는 다른 요청과의 경합
                response.success()
            else:
                response.failure(f"claim: {response.status_code} {response.text}")

    @task(1)
    def repeat_claimant(self):
        if not self.receivers:
            return
        user_id = random.choice(list(self.receivers))
        with self.client.post("/api/v1/claim", json={"token": self.token},
                              headers=identity(user_id, self.room_id),
                              name="/api/v1/claim [repeat]", catch_response=True) as response:
            if response.status_code == 400:
                response.success()
            else:
                response.failure(f"user {user_id} claimed twice: {response.status_code}")

    @task(1)
    def status_matches_receivers(self):
        with self.client.get(f"/api/v1/push/{self.token}",
                             headers=identity(self.creator_id, self.room_id),
                             name="/api/v1/push/{token} [seeded]", catch_response=True) as response:
            if response.status_code != 200:
                response.failure(f"status: {response.status_code}")
                return
            claimed = {detail["user_id"]: detail["amount"] for detail in response.json()["claimed_list"]}
            missing = [uid for uid in self.receivers if claimed.get(uid) != self.receivers[uid]]
            if missing:
                response.failure(f"claims missing from status: {missing}")
            else:
                response.success()
