"""
Invoice creation.

The invoice number is allocated inside the same transaction that inserts the
invoice and its items.  If anything after the allocation fails, the rollback
undoes the counter advance together with the partial invoice, so committed
invoice numbers stay contiguous.
"""
import logging
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.exceptions import InvoiceValidationError
from app.models.invoice import Invoice, InvoiceItem
from app.models.user import User
from app.schemas.invoice import InvoiceCreate
from app.services.invoice_number import allocate_invoice_number, parse_invoice_number

logger = logging.getLogger(__name__)

_CENT = Decimal("0.01")


def current_invoice_year(now: datetime | None = None) -> int:
    """Calendar year in the clinic's timezone; naive *now* is taken as UTC."""
    tz = get_settings().clinic_tz
    if now is None:
        return datetime.now(tz).year
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(tz).year


def _line_total(quantity: Decimal, unit_price: Decimal) -> Decimal:
    return (quantity * unit_price).quantize(_CENT, rounding=ROUND_HALF_UP)


async def _get_patient(db: AsyncSession, patient_user_id: int) -> User:
    patient = await db.get(User, patient_user_id)
    if patient is None:
        raise InvoiceValidationError("Patient not found", status_code=404)
    if patient.role != "PATIENT":
        raise InvoiceValidationError("User is not a patient")
    if not patient.is_active:
        raise InvoiceValidationError("Patient account is inactive")
    return patient


async def create_invoice(
    db: AsyncSession,
    payload: InvoiceCreate,
    prepared_by: int | None = None,
    year: int | None = None,
) -> Invoice:
    """
    Validate, number and persist an invoice with its items, then commit.

    *year* overrides the numbering year (defaults to the current clinic year).
    Any failure rolls the transaction back and re-raises.
    """
    if not payload.items:
        raise InvoiceValidationError("Invoice must have at least one item")

    try:
        await _get_patient(db, payload.patient_user_id)

        items = [
            InvoiceItem(
                description=item.description,
                quantity=item.quantity,
                unit_price=item.unit_price,
                total_price=_line_total(item.quantity, item.unit_price),
            )
            for item in payload.items
        ]
        total = sum((item.total_price for item in items), Decimal("0.00"))

        invoice_number = await allocate_invoice_number(
            db, year if year is not None else current_invoice_year()
        )

        invoice = Invoice(
            invoice_number=invoice_number,
            appointment_id=payload.appointment_id,
            patient_user_id=payload.patient_user_id,
            prepared_by_user_id=prepared_by,
            total_amount=total,
            payment_method=payload.payment_method,
            status="pending",
            invoice_type=payload.invoice_type,
            due_date=payload.due_date,
            items=items,
        )
        db.add(invoice)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await db.refresh(invoice, attribute_names=["created_at"])
    logger.info(
        "Created invoice %s (patient=%s, total=%s)",
        invoice.invoice_number,
        invoice.patient_user_id,
        invoice.total_amount,
    )
    return invoice


async def get_invoice_by_number(db: AsyncSession, invoice_number: str) -> Invoice | None:
    """Look an invoice up by number; malformed numbers raise InvoiceNumberFormatError."""
    parse_invoice_number(invoice_number)
    result = await db.execute(select(Invoice).where(Invoice.invoice_number == invoice_number))
    return result.scalars().first()
