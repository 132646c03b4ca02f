from typing import Optional
from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session
import jwt

from fulfillment.core.config import settings
from fulfillment.db.session import SessionLocal
from fulfillment.kafka import producer
from fulfillment.services.finalizer import DigitalOrderFinalizer
from fulfillment.services.ingestion import WebhookController
from fulfillment.services.notifications import SmtpMailer

def get_db():
    db = SessionLocal()
    try: yield db
    finally: db.close()

def get_mailer() -> SmtpMailer:
    return SmtpMailer.from_settings()

def get_publisher():
    return producer.send

def get_whatsapp_transport():
    # real network; tests swap in an httpx.MockTransport
    return None

def get_finalizer(db: Session = Depends(get_db), mailer=Depends(get_mailer),
                  publish=Depends(get_publisher)) -> DigitalOrderFinalizer:
    return DigitalOrderFinalizer(db, mailer, publish=publish)

def get_controller(db: Session = Depends(get_db),
                   finalizer: DigitalOrderFinalizer = Depends(get_finalizer),
                   publish=Depends(get_publisher)) -> WebhookController:
    return WebhookController(db, finalizer, publish=publish)

def require_internal(
    x_internal_key: Optional[str] = Header(default=None, alias="X-Internal-Key"),
    auth: Optional[str] = Header(default=None, alias="Authorization"),
):
    # 1) trusted service-to-service calls
    if x_internal_key and x_internal_key == (settings.SVC_INTERNAL_KEY or ""):
        return True

    # 2) otherwise an admin JWT
    if not auth or not auth.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Unauthorized")
    token = auth.split(" ", 1)[1]
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.PyJWTError:
        raise HTTPException(status_code=401, detail="Invalid token")
    if payload.get("type") != "access" or payload.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Admin required")
    return True
