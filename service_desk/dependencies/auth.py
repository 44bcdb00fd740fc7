from typing import Annotated

from fastapi import Depends, HTTPException, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from service_desk.audit.models import ClientContext
from service_desk.core.config import get_settings
from service_desk.identity import Actor, ActorDirectory

bearer_scheme = HTTPBearer(auto_error=False)


def get_actor_directory(request: Request) -> ActorDirectory:
    directory = getattr(request.app.state, "actor_directory", None)
    if directory is None:
        raise HTTPException(status_code=503, detail="Authentication is not configured")
    return directory


def resolve_user_id(token: str | None) -> int:
    """Return the account id bound to the provided bearer token."""

    if token is None:
        raise HTTPException(status_code=401, detail="Not authenticated")

    user_id = get_settings().auth_tokens.get(token)
    if user_id is None:
        raise HTTPException(status_code=401, detail="Invalid authentication credentials")
    return user_id


async def get_current_actor(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Security(bearer_scheme)],
    request: Request,
    directory: Annotated[ActorDirectory, Depends(get_actor_directory)],
) -> Actor:
    """Very small authentication stub.

    Tokens are mapped to user ids through configuration; the account itself is
    read from the ``users`` table so role changes apply immediately. Token
    issuance belongs to the authentication service.
    """

    cached = getattr(request.state, "actor", None)
    if isinstance(cached, Actor):
        return cached

    token = credentials.credentials if credentials is not None else None
    actor = await directory.get_actor(resolve_user_id(token))
    if actor is None:
        raise HTTPException(status_code=401, detail="Invalid authentication credentials")
    request.state.actor = actor
    return actor


def get_client_context(request: Request) -> ClientContext:
    """Network origin of the call, recorded on audit rows."""

    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        ip_address = forwarded.split(",")[0].strip() or None
    else:
        ip_address = request.client.host if request.client is not None else None
    return ClientContext(ip_address=ip_address, user_agent=request.headers.get("user-agent"))


CurrentActor = Annotated[Actor, Depends(get_current_actor)]
Client = Annotated[ClientContext, Depends(get_client_context)]
