import json
from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi.concurrency import run_in_threadpool
import structlog
from tikoyangu.api.deps import get_confirmation_pipeline
from tikoyangu.database import SessionLocal
from tikoyangu.schemas.mpesa import InvalidCallback, parse_stk_callback
from tikoyangu.services.confirmation import ConfirmationPipeline
from tikoyangu.services.reconciler import ReconcileResult, WebhookReconciler


logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/mpesa", tags=["M-Pesa"])

# Daraja retries anything that is not this
CALLBACK_ACK = {"ResultCode": 0, "ResultDesc": "Accepted"}


def reconcile_callback(payload: dict, pipeline: ConfirmationPipeline, schedule) -> ReconcileResult:
    callback = parse_stk_callback(payload)
    db = SessionLocal()
    try:
        reconciler = WebhookReconciler(db, on_confirmed=pipeline.confirm, schedule=schedule)
        return reconciler.reconcile(callback.checkout_request_id, callback.result_code, raw_payload=payload)
    finally:
        db.close()


@router.post("/callback")
async def mpesa_callback(
    request: Request,
    background_tasks: BackgroundTasks,
    pipeline: ConfirmationPipeline = Depends(get_confirmation_pipeline),
):
    raw = await request.body()

    try:
        payload = json.loads(raw)
    except ValueError:
        logger.warning("mpesa_callback_malformed", body_size=len(raw))
        return CALLBACK_ACK

    try:
        result = await run_in_threadpool(reconcile_callback, payload, pipeline, background_tasks.add_task)
        logger.info("mpesa_callback_processed", outcome=result.outcome.value)
    except InvalidCallback as e:
        logger.warning("mpesa_callback_unrecognised", error=str(e))
    except Exception:
        logger.exception("mpesa_callback_failed")

    return CALLBACK_ACK
