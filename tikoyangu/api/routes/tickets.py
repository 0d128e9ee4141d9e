from typing import List, Optional
from fastapi import APIRouter, Depends, status
from tikoyangu.api.deps import (
    get_current_user,
    get_optional_user,
    get_purchase_orchestrator,
    get_ticket_admin,
    require_organizer_or_admin,
)
from tikoyangu.schemas.CommonResponse import ApiResponse
from tikoyangu.schemas.ticket import PurchaseReceipt, ScanRequest, TicketOut, TicketPurchaseRequest
from tikoyangu.services.admin import TicketAdmin
from tikoyangu.services.purchase import PurchaseOrchestrator, normalize_phone
from tikoyangu.services.ticket_store import operator_actor


router = APIRouter(prefix="/tickets", tags=["Tickets"])


@router.post("/purchase", response_model=ApiResponse[PurchaseReceipt], status_code=status.HTTP_201_CREATED)
def purchase_ticket(
    purchase_request: TicketPurchaseRequest,
    current_user: Optional[dict] = Depends(get_optional_user),
    orchestrator: PurchaseOrchestrator = Depends(get_purchase_orchestrator),
):
    if current_user and current_user.get('id') is not None:
        actor = operator_actor(current_user['id'])
    else:
        actor = f"buyer:{normalize_phone(purchase_request.buyer_phone)}"

    receipt = orchestrator.request_purchase(
        event_id=purchase_request.event_id,
        buyer_name=purchase_request.buyer_name,
        buyer_email=purchase_request.buyer_email,
        buyer_phone=purchase_request.buyer_phone,
        ticket_type=purchase_request.ticket_type,
        price=purchase_request.price,
        actor=actor,
    )

    return ApiResponse(
        success=True,
        statusCode=status.HTTP_201_CREATED,
        message=receipt.customer_message or "Payment request sent, complete it on your phone",
        data=receipt
    )




@router.post("/scan", response_model=ApiResponse[TicketOut])
def scan_ticket(
    scan_request: ScanRequest,
    current_user: dict = Depends(require_organizer_or_admin),
    admin: TicketAdmin = Depends(get_ticket_admin),
):
    ticket = admin.scan(scan_request.credential, current_user)
    return ApiResponse(
        success=True,
        statusCode=status.HTTP_200_OK,
        message="Ticket admitted",
        data=TicketOut.model_validate(ticket)
    )




@router.get("/event/{event_id}", response_model=ApiResponse[List[TicketOut]])
def list_event_tickets(
    event_id: int,
    current_user: dict = Depends(require_organizer_or_admin),
    admin: TicketAdmin = Depends(get_ticket_admin),
):
    tickets = admin.list_for_event(event_id, current_user)
    return ApiResponse(
        success=True,
        statusCode=status.HTTP_200_OK,
        message="Tickets fetched",
        data=[TicketOut.model_validate(t) for t in tickets]
    )




@router.get("/organizer", response_model=ApiResponse[List[TicketOut]])
def list_organizer_tickets(
    organizer_id: Optional[int] = None,
    current_user: dict = Depends(require_organizer_or_admin),
    admin: TicketAdmin = Depends(get_ticket_admin),
):
    tickets = admin.list_for_organizer(current_user, organizer_id)
    return ApiResponse(
        success=True,
        statusCode=status.HTTP_200_OK,
        message="Tickets fetched",
        data=[TicketOut.model_validate(t) for t in tickets]
    )




@router.get("/{ticket_id}", response_model=ApiResponse[TicketOut])
def get_ticket(
    ticket_id: int,
    current_user: dict = Depends(get_current_user),
    admin: TicketAdmin = Depends(get_ticket_admin),
):
    ticket = admin.get_for_viewer(ticket_id, current_user)
    return ApiResponse(
        success=True,
        statusCode=status.HTTP_200_OK,
        message="Ticket fetched",
        data=TicketOut.model_validate(ticket)
    )




@router.post("/{ticket_id}/use", response_model=ApiResponse[TicketOut])
def use_ticket(
    ticket_id: int,
    current_user: dict = Depends(require_organizer_or_admin),
    admin: TicketAdmin = Depends(get_ticket_admin),
):
    ticket = admin.mark_used(ticket_id, current_user)
    return ApiResponse(
        success=True,
        statusCode=status.HTTP_200_OK,
        message="Ticket marked as used",
        data=TicketOut.model_validate(ticket)
    )




@router.post("/{ticket_id}/cancel", response_model=ApiResponse[TicketOut])
def cancel_ticket(
    ticket_id: int,
    current_user: dict = Depends(require_organizer_or_admin),
    admin: TicketAdmin = Depends(get_ticket_admin),
):
    ticket = admin.cancel(ticket_id, current_user)
    return ApiResponse(
        success=True,
        statusCode=status.HTTP_200_OK,
        message="Ticket canceled",
        data=TicketOut.model_validate(ticket)
    )
