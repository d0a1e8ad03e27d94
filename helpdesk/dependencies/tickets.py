from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from helpdesk.memberships.repository import DirectoryRepository
from helpdesk.tickets.service import TicketService


async def get_ticket_service(request: Request) -> TicketService:
    service = getattr(request.app.state, "ticket_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Ticket service is not configured")
    return service


async def get_directory(request: Request) -> DirectoryRepository:
    directory = getattr(request.app.state, "directory", None)
    if directory is None:
        raise HTTPException(status_code=503, detail="User directory is not configured")
    return directory


TicketServiceDep = Annotated[TicketService, Depends(get_ticket_service)]
DirectoryDep = Annotated[DirectoryRepository, Depends(get_directory)]
