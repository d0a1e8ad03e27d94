from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from helpdesk.core.config import Settings, get_settings
from helpdesk.dependencies.tickets import DirectoryDep
from helpdesk.memberships.models import User

bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Security(bearer_scheme)],
    request: Request,
    directory: DirectoryDep,
    settings: Annotated[Settings, Depends(get_settings)],
) -> User:
    """Very small authentication stub.

    Bearer tokens are mapped to directory user ids through the ``api_tokens``
    setting. Real deployments would verify the token with an identity
    provider before looking the user up.
    """

    cached = getattr(request.state, "user", None)
    if isinstance(cached, User):
        return cached

    if credentials is None:
        raise HTTPException(status_code=401, detail="Not authenticated")

    user_id = settings.token_map().get(credentials.credentials)
    if user_id is None:
        raise HTTPException(status_code=401, detail="Invalid authentication credentials")

    user = await directory.get_user(user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="Unknown user for token")
    request.state.user = user
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]
