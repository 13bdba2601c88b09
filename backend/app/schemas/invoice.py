from datetime import date, datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field


class InvoiceItemCreate(BaseModel):
    description: str = Field(min_length=1, max_length=255)
    quantity: Decimal = Field(gt=0, max_digits=10, decimal_places=2)
    unit_price: Decimal = Field(ge=0, max_digits=12, decimal_places=2)


class InvoiceCreate(BaseModel):
    patient_user_id: int
    appointment_id: int | None = None
    payment_method: Literal["cash", "card", "bank_transfer", "medical_aid"]
    invoice_type: Literal["service", "consultation", "procedure", "other"]
    due_date: date | None = None
    items: list[InvoiceItemCreate]


class InvoiceItemResponse(BaseModel):
    id: int
    description: str
    quantity: Decimal
    unit_price: Decimal
    total_price: Decimal

    model_config = {"from_attributes": True}


class InvoiceResponse(BaseModel):
    id: int
    invoice_number: str
    appointment_id: int | None
    patient_user_id: int
    prepared_by_user_id: int | None
    total_amount: Decimal
    payment_method: str
    status: str
    invoice_type: str
    due_date: date | None
    created_at: datetime
    items: list[InvoiceItemResponse]

    model_config = {"from_attributes": True}
