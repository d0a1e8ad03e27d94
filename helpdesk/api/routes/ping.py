from fastapi import APIRouter

from helpdesk.dependencies.auth import CurrentUser

router = APIRouter(prefix="/ping", tags=["health"])


@router.get("", summary="Public health probe")
async def ping() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/whoami", summary="Authenticated probe")
async def whoami(user: CurrentUser) -> dict[str, str]:
    return {"status": "ok", "user": user.id}
