import json
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool
import structlog

from fulfillment.api.deps import (
    get_db, get_mailer, get_controller, get_finalizer, get_whatsapp_transport, require_internal,
)
from fulfillment.api.schemas import (
    FinalizeDigitalOrder, CreateAccountFromOrder, OrderWhatsAppNotification, WhatsAppMessage,
)
from fulfillment.services.accounts import ensure_account
from fulfillment.services.finalizer import DigitalOrderFinalizer
from fulfillment.services.ingestion import WebhookController
from fulfillment.services.notifications import WhatsAppClient, load_whatsapp_config
from fulfillment.services.whatsapp import send_order_notification

log = structlog.get_logger(__name__)

router = APIRouter()  # main.py mounts at /functions/v1

def _decode(body: bytes):
    if not body:
        return None
    try:
        return json.loads(body)
    except ValueError:
        # keep the raw text so the audit log still has it
        return {"raw": body.decode("utf-8", errors="replace")}

@router.post("/process-payment-webhook")
async def process_payment_webhook(request: Request, controller: WebhookController = Depends(get_controller)):
    payload = _decode(await request.body())
    await run_in_threadpool(controller.handle, payload)
    return {"success": True}

@router.post("/finalize-digital-order", dependencies=[Depends(require_internal)])
def finalize_digital_order(payload: FinalizeDigitalOrder,
                           finalizer: DigitalOrderFinalizer = Depends(get_finalizer)):
    result = finalizer.finalize(payload.order_id, payload.provider_transaction_id, payload.payment_provider)
    return {
        "success": True,
        "message": "Digital order finalized successfully",
        "orderId": result.order_id,
    }

@router.post("/create-user-account-from-order", dependencies=[Depends(require_internal)])
def create_user_account_from_order(payload: CreateAccountFromOrder,
                                   db: Session = Depends(get_db), mailer=Depends(get_mailer)):
    res = ensure_account(db, payload.customer_email or "", payload.customer_name or "",
                         payload.order_id or "", mailer)
    if not res.created:
        return {"message": "User already exists", "userId": res.account_id}
    return {
        "message": "User account created successfully",
        "userId": res.account_id,
        "temporaryPassword": res.temporary_password,
    }

@router.post("/send-order-confirmation-whatsapp", dependencies=[Depends(require_internal)])
def send_order_confirmation_whatsapp(payload: OrderWhatsAppNotification, db: Session = Depends(get_db),
                                     transport=Depends(get_whatsapp_transport)):
    sent = send_order_notification(db, payload.order_id, payload.recipient_type, transport=transport)
    if sent is None:
        return {"message": "No recipient number configured"}
    return {"success": True, "message": "WhatsApp notification sent"}

@router.post("/send-whatsapp-message", dependencies=[Depends(require_internal)])
def send_whatsapp_message(payload: WhatsAppMessage, db: Session = Depends(get_db),
                          transport=Depends(get_whatsapp_transport)):
    client = WhatsAppClient.from_config(load_whatsapp_config(db), transport=transport)
    if payload.template_name:
        # template messages are not supported by the text endpoint; sent as plain text
        log.info("whatsapp_template_ignored", template_name=payload.template_name)
    message_id = client.send_message(payload.to, payload.message)
    return {"success": True, "messageId": message_id, "message": "WhatsApp message sent successfully"}
