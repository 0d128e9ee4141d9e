from typing import Optional
from fastapi import BackgroundTasks, Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from tikoyangu.core.mpesa import PaymentGateway
from tikoyangu.core.security import ADMIN_ROLE, ORGANIZER_ROLE, decode_access_token
from tikoyangu.database import get_db
from tikoyangu.services.admin import TicketAdmin
from tikoyangu.services.confirmation import ConfirmationPipeline
from tikoyangu.services.purchase import PurchaseOrchestrator

bearer_scheme = HTTPBearer()
optional_bearer_scheme = HTTPBearer(auto_error=False)


def _user_from_token(token: str) -> dict:
    payload = decode_access_token(token)
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail='Invalid or expired token',
            headers={'WWW-Authenticate': 'Bearer'}
            )

    email = payload.get('sub')
    role = payload.get('role')
    id = payload.get('user_id')

    if not email:
        raise HTTPException(status_code=401, detail='Token payload invalid')

    return {'email': email, 'role': role, 'id': id}


def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme)):
    return _user_from_token(credentials.credentials)


def get_optional_user(credentials: Optional[HTTPAuthorizationCredentials] = Depends(optional_bearer_scheme)):
    if credentials is None:
        return None
    return _user_from_token(credentials.credentials)




def require_admin(current_user: dict = Depends(get_current_user)):
    if current_user.get('role') != ADMIN_ROLE:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail='Admin access required')
    return current_user




def require_organizer_or_admin(current_user: dict = Depends(get_current_user)):
    if current_user.get('role') not in (ADMIN_ROLE, ORGANIZER_ROLE):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail='Organizer access required')
    return current_user




def get_gateway(request: Request) -> PaymentGateway:
    return request.app.state.gateway


def get_confirmation_pipeline(request: Request) -> ConfirmationPipeline:
    return request.app.state.pipeline


def get_purchase_orchestrator(
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_gateway),
):
    return PurchaseOrchestrator(db, gateway)


def get_ticket_admin(
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    pipeline: ConfirmationPipeline = Depends(get_confirmation_pipeline),
):
    return TicketAdmin(db, pipeline, background_tasks.add_task)
