"""Common request dependencies: database session and the calling actor."""
from typing import Annotated, TypeAlias

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from smartretail.core.rbac import Actor
from smartretail.db.session import get_db

DbDep: TypeAlias = Annotated[Session, Depends(get_db)]


def get_current_actor(
    x_actor_id: Annotated[str | None, Header()] = None,
    x_actor_role: Annotated[str | None, Header()] = None,
    x_actor_permissions: Annotated[str | None, Header()] = None,
) -> Actor:
    """
    Build the verified actor forwarded by the API gateway.

    Authentication happens upstream; the gateway sets:
    - X-Actor-Id: numeric user id (required)
    - X-Actor-Role: e.g. staff, manager, owner
    - X-Actor-Permissions: comma separated permission keys
    """
    if not x_actor_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing actor")
    try:
        actor_id = int(x_actor_id)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid actor id")
    permissions = (x_actor_permissions or "").split(",")
    return Actor.from_values(actor_id, x_actor_role, permissions)


ActorDep: TypeAlias = Annotated[Actor, Depends(get_current_actor)]
