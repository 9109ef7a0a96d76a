from datetime import datetime
from sqlalchemy import (
    Boolean,
    Column,
    Integer,
    String,
    DateTime,
    ForeignKey,
    BigInteger,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from .database import Base


# -----------------------------------------------------------------
# random_push 테이블 (뿌리기 기록)
# -----------------------------------------------------------------
class Push(Base):
    __tablename__ = "random_push"

    id = Column(Integer, primary_key=True)
    # 원본 토큰이 아닌 해시 키를 저장
    token = Column(String(64), nullable=False, index=True)
    room_id = Column(String(36), nullable=False, index=True)
    total_amount = Column(BigInteger, nullable=False)
    share_count = Column(Integer, nullable=False)
    creator_id = Column(Integer, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    claimed_total = Column(BigInteger, nullable=False, default=0, server_default="0")

    __table_args__ = (UniqueConstraint("token", "room_id", name="uq_push_token_room"),)

    shares = relationship(
        "PushShare",
        back_populates="push",
        order_by="PushShare.id",
    )


# -----------------------------------------------------------------
# random_push_share 테이블 (뿌리기 분배 내역)
# -----------------------------------------------------------------
class PushShare(Base):
    __tablename__ = "random_push_share"

    id = Column(Integer, primary_key=True)
    push_id = Column(Integer, ForeignKey("random_push.id"), nullable=False, index=True)
    amount = Column(BigInteger, nullable=False)
    creator_id = Column(Integer, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    claimed = Column(Boolean, nullable=False, default=False, server_default="0")
    claimant_id = Column(Integer, nullable=True)
    claimed_at = Column(DateTime, nullable=True)

    # 뿌리기당 사용자는 한번만 받을 수 있음 (미수령 내역의 NULL은 중복 허용)
    __table_args__ = (UniqueConstraint("push_id", "claimant_id", name="uq_share_push_claimant"),)

    push = relationship("Push", back_populates="shares")

    def __repr__(self):
        return (
            f"<PushShare id={self.id} amount={self.amount} "
            f"claimed={self.claimed} claimant={self.claimant_id}>"
        )
