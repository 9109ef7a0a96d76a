from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from ....db.database import get_db
from ....utils.cache.cache import PushCache, get_push_cache
from ....common.exceptions import PushNotFoundError
from ..schema import ClaimRequest, ClaimResponse
from ..service.push_service import PushService
from ..service.claim_service import ClaimService
import logging

router = APIRouter()
logger = logging.getLogger(__name__)

@router.post("/claim", response_model=ClaimResponse)
async def claim_push(
    request: ClaimRequest,
    x_user_id: int = Header(...),  # 필수 헤더
    x_room_id: str = Header(...),  # 필수 헤더
    db: AsyncSession = Depends(get_db),
    cache: PushCache = Depends(get_push_cache)
):
    """돈 받기 요청을 처리하는 엔드포인트"""
    service = ClaimService(db, PushService(db, cache))
    try:
        return await service.process_claim_request(
            token=request.token,
            user_id=x_user_id,
            room_id=x_room_id
        )
    except PushNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except ValueError as e:
        logger.error(f"Validation error: {str(e)}")
        raise HTTPException(status_code=400, detail=str(e))
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Unexpected error: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")
