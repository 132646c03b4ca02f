from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from fulfillment.services.whatsapp import RecipientType

class FinalizeDigitalOrder(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    order_id: str = Field(alias="orderId", min_length=1)
    provider_transaction_id: str = Field(alias="providerTransactionId", min_length=1)
    payment_provider: str = Field(alias="paymentProvider", min_length=1)

class CreateAccountFromOrder(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    customer_email: Optional[str] = Field(default=None, alias="customerEmail")
    customer_name: Optional[str] = Field(default=None, alias="customerName")
    order_id: Optional[str] = Field(default=None, alias="orderId")

class OrderWhatsAppNotification(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    order_id: str = Field(alias="orderId", min_length=1)
    recipient_type: RecipientType = Field(alias="recipientType")

class WhatsAppMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    to: str = Field(min_length=1)
    message: str = Field(min_length=1)
    template_name: Optional[str] = Field(default=None, alias="templateName")
