from __future__ import annotations

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer

from scrapcore.core.actor import Actor
from scrapcore.core.constants import CollectorTier, Role
from scrapcore.core.security import TokenError, decode_token
from scrapcore.integrations.notifications import NotificationDispatcher
from scrapcore.integrations.payment_gateway import PaymentGateway

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token", auto_error=False)


async def get_current_actor(token: str | None = Depends(oauth2_scheme)) -> Actor:
    if not token:
        raise HTTPException(status_code=401, detail="Missing bearer token")

    try:
        payload = decode_token(token)
    except TokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )

    subject = payload.get("sub")
    if not subject:
        raise HTTPException(status_code=401, detail="Token missing subject")

    role = payload.get("role")
    if role not in (Role.REQUESTER, Role.COLLECTOR, Role.ADMIN):
        raise HTTPException(status_code=401, detail="Token has unknown role")

    tier = None
    if role == Role.COLLECTOR:
        tier = payload.get("tier") or CollectorTier.SMALL
        if tier not in CollectorTier.ALL:
            raise HTTPException(status_code=401, detail="Token has unknown collector tier")

    return Actor(id=str(subject), role=role, tier=tier)


def require_collector(actor: Actor = Depends(get_current_actor)) -> Actor:
    if actor.role != Role.COLLECTOR:
        raise HTTPException(status_code=403, detail="Collector only")
    return actor


def require_requester(actor: Actor = Depends(get_current_actor)) -> Actor:
    if actor.role != Role.REQUESTER:
        raise HTTPException(status_code=403, detail="Requester only")
    return actor


def require_party(actor: Actor = Depends(get_current_actor)) -> Actor:
    if actor.role not in (Role.REQUESTER, Role.COLLECTOR):
        raise HTTPException(status_code=403, detail="Requester or collector only")
    return actor


def require_admin(actor: Actor = Depends(get_current_actor)) -> Actor:
    if actor.role != Role.ADMIN:
        raise HTTPException(status_code=403, detail="Admin only")
    return actor


def get_dispatcher(request: Request) -> NotificationDispatcher:
    return request.app.state.dispatcher


def get_gateway(request: Request) -> PaymentGateway:
    return request.app.state.gateway
