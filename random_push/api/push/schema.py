from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import datetime
from typing import List, Optional

class PushRequest(BaseModel):
    total_amount: int = Field(..., description="뿌릴 총 금액", gt=0)
    share_count: int = Field(..., description="뿌릴 인원 수", gt=0)

    @field_validator('share_count')
    def validate_share_count(cls, v, info):
        total_amount = info.data.get('total_amount', 0)
        if total_amount > 0 and v > 0:
            if total_amount < v:
                raise ValueError("뿌릴 금액은 인원수보다 커야 합니다")
        return v

class PushResponse(BaseModel):
    token: str = Field(..., description="생성된 뿌리기 토큰 (3자리)")

class ClaimRequest(BaseModel):
    token: str

class ClaimResponse(BaseModel):
    claimed_amount: int

class ClaimAttempt(BaseModel):
    """받기 요청자 정보"""
    user_id: int
    room_id: str

class PushShareSnapshot(BaseModel):
    """분배 내역 (캐시 저장 단위)"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    amount: int
    creator_id: int
    created_at: datetime
    claimed: bool = False
    claimant_id: Optional[int] = None
    claimed_at: Optional[datetime] = None

class PushSnapshot(BaseModel):
    """뿌리기 건과 분배 내역 (캐시 저장 단위)"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    token: str
    room_id: str
    total_amount: int
    share_count: int
    creator_id: int
    created_at: datetime
    claimed_total: int = 0
    shares: List[PushShareSnapshot] = Field(default_factory=list)

class PushClaimDetail(BaseModel):
    """받기 완료된 정보"""
    amount: int = Field(..., description="받은 금액")
    user_id: int = Field(..., description="받은 사용자 ID")

class PushStatusResponse(BaseModel):
    """뿌리기 조회 응답"""
    push_time: datetime = Field(..., description="뿌린 시각")
    total_amount: int = Field(..., description="뿌린 금액")
    claimed_total_amount: int = Field(..., description="받기 완료된 금액")
    claimed_list: List[PushClaimDetail] = Field(default_factory=list, description="받기 완료된 정보 목록")
