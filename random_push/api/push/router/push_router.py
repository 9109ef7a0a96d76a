from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from ....db.database import get_db
from ....utils.cache.cache import PushCache, get_push_cache
from ....common.exceptions import InvalidArgumentError
from ..schema import PushRequest, PushResponse
from ..service.push_service import PushService
import logging

router = APIRouter()
logger = logging.getLogger(__name__)

@router.post("/push", response_model=PushResponse)
async def create_push(
    request: PushRequest,
    x_user_id: int = Header(...),
    x_room_id: str = Header(...),
    db: AsyncSession = Depends(get_db),
    cache: PushCache = Depends(get_push_cache)
):
    service = PushService(db, cache)
    token = service.publish_token()
    try:
        await service.create_push(
            total_amount=request.total_amount,
            share_count=request.share_count,
            creator_id=x_user_id,
            room_id=x_room_id,
            token=token
        )
    except InvalidArgumentError as e:
        service.token_service.release_token(token)
        raise HTTPException(status_code=400, detail=e.message)

    return PushResponse(token=token)
