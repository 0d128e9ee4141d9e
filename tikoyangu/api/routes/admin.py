from fastapi import APIRouter, Depends, status, Query
from typing import List, Optional
from datetime import datetime, timedelta
from tikoyangu.api.deps import get_ticket_admin, require_admin
from tikoyangu.core.config import settings
from tikoyangu.models.ticket import TicketStatus
from tikoyangu.schemas.CommonResponse import ApiResponse, PageMeta, PaginatedListResponse
from tikoyangu.schemas.ticket import (
    RefundRequest,
    RevenueReport,
    StatusUpdateRequest,
    TicketOut,
    TicketOverview,
    TicketTransitionOut,
)
from tikoyangu.services.admin import TicketAdmin



router = APIRouter(prefix='/admin/tickets', tags=['Admin'])




@router.get('', response_model=ApiResponse[PaginatedListResponse[TicketOut]])
def search_tickets(
    event_id: Optional[int] = None,
    buyer_email: Optional[str] = None,
    buyer_name: Optional[str] = None,
    ticket_status: Optional[TicketStatus] = Query(None, alias='status'),
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    current_user: dict = Depends(require_admin),
    admin: TicketAdmin = Depends(get_ticket_admin),
):
    tickets, total = admin.search(
        event_id=event_id,
        buyer_email=buyer_email,
        buyer_name=buyer_name,
        status=ticket_status,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
        offset=offset,
    )
    meta = PageMeta(
        limit=limit,
        offset=offset,
        total=total,
        has_next=offset + limit < total,
        has_previous=offset > 0,
    )
    return ApiResponse(
        success=True,
        statusCode=status.HTTP_200_OK,
        message="Tickets fetched" if total else "No tickets found",
        data=PaginatedListResponse(items=[TicketOut.model_validate(t) for t in tickets], pagination=meta)
    )




@router.get('/overview', response_model=ApiResponse[TicketOverview])
def ticket_overview(current_user: dict = Depends(require_admin), admin: TicketAdmin = Depends(get_ticket_admin)):
    return ApiResponse(
        success=True,
        statusCode=status.HTTP_200_OK,
        message="Ticket statistics",
        data=admin.overview()
    )




@router.get('/revenue', response_model=ApiResponse[RevenueReport])
def revenue_report(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    current_user: dict = Depends(require_admin),
    admin: TicketAdmin = Depends(get_ticket_admin),
):
    return ApiResponse(
        success=True,
        statusCode=status.HTTP_200_OK,
        message="Revenue report",
        data=admin.revenue_report(start_date, end_date)
    )




@router.get('/stale-pending', response_model=ApiResponse[List[TicketOut]])
def stale_pending_tickets(
    older_than_minutes: Optional[int] = Query(None, ge=1),
    current_user: dict = Depends(require_admin),
    admin: TicketAdmin = Depends(get_ticket_admin),
):
    minutes = older_than_minutes or settings.PENDING_STALE_AFTER_MINUTES
    tickets = admin.stale_pending(timedelta(minutes=minutes))
    return ApiResponse(
        success=True,
        statusCode=status.HTTP_200_OK,
        message=f"{len(tickets)} pending ticket(s) older than {minutes} minutes",
        data=[TicketOut.model_validate(t) for t in tickets]
    )




@router.get('/{ticket_id}/transitions', response_model=ApiResponse[List[TicketTransitionOut]])
def ticket_transitions(ticket_id: int, current_user: dict = Depends(require_admin), admin: TicketAdmin = Depends(get_ticket_admin)):
    transitions = admin.transitions(ticket_id, current_user)
    return ApiResponse(
        success=True,
        statusCode=status.HTTP_200_OK,
        message="Ticket history",
        data=[TicketTransitionOut.model_validate(t) for t in transitions]
    )




@router.post('/{ticket_id}/refund', response_model=ApiResponse[TicketOut])
def refund_ticket(
    ticket_id: int,
    refund_request: RefundRequest,
    current_user: dict = Depends(require_admin),
    admin: TicketAdmin = Depends(get_ticket_admin),
):
    ticket = admin.refund(ticket_id, refund_request.reason, current_user['id'])
    return ApiResponse(
        success=True,
        statusCode=status.HTTP_200_OK,
        message="Ticket refunded",
        data=TicketOut.model_validate(ticket)
    )




@router.patch('/{ticket_id}/status', response_model=ApiResponse[TicketOut])
def update_ticket_status(
    ticket_id: int,
    status_request: StatusUpdateRequest,
    current_user: dict = Depends(require_admin),
    admin: TicketAdmin = Depends(get_ticket_admin),
):
    ticket = admin.override_status(ticket_id, status_request.status, current_user)
    return ApiResponse(
        success=True,
        statusCode=status.HTTP_200_OK,
        message=f"Ticket status updated to {TicketStatus(ticket.status).value}",
        data=TicketOut.model_validate(ticket)
    )
