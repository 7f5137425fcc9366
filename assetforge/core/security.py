from dataclasses import dataclass

from fastapi import Header, HTTPException, Request, Security
from fastapi.security import APIKeyHeader
from starlette import status

from .config import get_settings
from .errors import AccessDenied


_api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def require_api_key(request: Request, api_key: str = Security(_api_key_header)) -> None:
    if request.method == "OPTIONS":
        return
    settings = get_settings()
    if settings.api_key and api_key != settings.api_key:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")


@dataclass(frozen=True)
class Actor:
    user_id: str
    organization_id: str | None = None


def get_actor(
    x_user_id: str | None = Header(default=None),
    x_organization_id: str | None = Header(default=None),
) -> Actor:
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    return Actor(user_id=x_user_id, organization_id=x_organization_id or None)


def ensure_access(actor: Actor, owner_id: str, organization_id: str | None) -> None:
    if organization_id:
        if actor.organization_id != organization_id:
            raise AccessDenied("Access denied")
    elif owner_id != actor.user_id:
        raise AccessDenied("Access denied")
