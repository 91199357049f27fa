"""作者资料路由 -- GET /api/v1/profiles/{user_id}

供客户端 IdentityResolver 查询；Bot 作者 ID 与保留用户名返回固定 Bot 资料。
"""

from fastapi import APIRouter, Depends
from starlette.responses import JSONResponse

from ..deps import get_current_user_id, get_store_group

router = APIRouter()


@router.get("/profiles/{user_id}")
async def get_profile(
    user_id: str,
    _viewer: str = Depends(get_current_user_id),
    store_group=Depends(get_store_group),
):
    profile = await store_group.profile_store.get_profile(user_id)

    if profile is None:
        return JSONResponse(
            status_code=404,
            content={
                "error": {
                    "code": "PROFILE_NOT_FOUND",
                    "message": f"Profile {user_id} does not exist",
                }
            },
        )
    return profile.model_dump()
