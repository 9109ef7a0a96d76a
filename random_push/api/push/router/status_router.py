from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from ....db.database import get_db
from ....utils.cache.cache import PushCache, get_push_cache
from ....common.exceptions import PushNotFoundError, ValidationFailedError
from ..schema import PushStatusResponse
from ..service.push_service import PushService
from ..service.status_service import StatusService
import logging

router = APIRouter()
logger = logging.getLogger(__name__)

@router.get("/push/{token}", response_model=PushStatusResponse)
async def get_push_status(
    token: str,
    x_user_id: int = Header(..., alias="X-USER-ID"),
    x_room_id: str = Header(..., alias="X-ROOM-ID"),
    db: AsyncSession = Depends(get_db),
    cache: PushCache = Depends(get_push_cache)
):
    """
    뿌리기 건의 현재 상태를 조회합니다.
    - 뿌린 사람 자신만 조회 가능
    - 뿌린 시점으로부터 7일 동안 조회 가능
    """
    service = StatusService(db, PushService(db, cache))
    try:
        return await service.get_push_status(
            user_id=x_user_id,
            token=token,
            room_id=x_room_id
        )
    except PushNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except ValidationFailedError as e:
        raise HTTPException(status_code=400, detail=e.message)
