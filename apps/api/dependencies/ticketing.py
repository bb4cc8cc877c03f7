from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from apps.api.dependencies.auth import Role, User, role_required
from apps.api.services.ticketing import TicketingService

require_buyer = role_required(Role.BUYER)
require_door_staff = role_required(Role.DOOR_STAFF)
require_admin = role_required(Role.ADMIN)

BuyerUser = Annotated[User, Depends(require_buyer)]
DoorStaffUser = Annotated[User, Depends(require_door_staff)]
AdminUser = Annotated[User, Depends(require_admin)]


async def get_ticketing_service(request: Request) -> TicketingService:
    service = getattr(request.app.state, "ticketing_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Ticketing service is not available")
    return service


TicketingServiceDep = Annotated[TicketingService, Depends(get_ticketing_service)]
