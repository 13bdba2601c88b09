"""
Invoice number allocation — WC-YYYY-NNNN.

Numbers come from the ``invoice_sequences`` table, one row per calendar year.
The caller owns the transaction: pass the same ``AsyncSession`` that will
insert the invoice, so the counter advance commits or rolls back together with
the invoice row.

    async with session.begin():
        number = await allocate_invoice_number(session, 2025)
        session.add(Invoice(invoice_number=number, ...))

Concurrency is handled entirely by the database: the counter row is read with
SELECT ... FOR UPDATE and stays locked until the caller's transaction ends, so
competing requests for the same year queue behind it and each sees the value
left by the previous commit.  Different years lock different rows and never
wait on each other.

The sequence part is fixed at four digits.  Past 9999 in a single year the
allocator refuses (InvoiceNumberInvariantError) instead of widening the field
or wrapping; both would break consumers that parse invoice numbers.
"""
import logging
import re
from typing import NamedTuple

from sqlalchemy import func, insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    AllocatorConfigurationError,
    InvoiceNumberFormatError,
    InvoiceNumberInvariantError,
    SequenceStorageError,
)
from app.models.sequence import InvoiceSequence

logger = logging.getLogger(__name__)

INVOICE_PREFIX = "WC"
MAX_SEQUENCE = 9999

_INVOICE_NUMBER_RE = re.compile(r"(WC)-(\d{4})-(\d{4})", re.ASCII)


class ParsedInvoiceNumber(NamedTuple):
    prefix: str
    year: int
    sequence: int


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

def validate_invoice_number(value: object) -> bool:
    """True if *value* is a string of the exact form WC-YYYY-NNNN."""
    return isinstance(value, str) and _INVOICE_NUMBER_RE.fullmatch(value) is not None


def parse_invoice_number(value: str) -> ParsedInvoiceNumber:
    """Split an invoice number into prefix, year and sequence."""
    match = _INVOICE_NUMBER_RE.fullmatch(value) if isinstance(value, str) else None
    if match is None:
        raise InvoiceNumberFormatError(f"Invalid invoice number format: {value!r}")
    prefix, year, sequence = match.groups()
    return ParsedInvoiceNumber(prefix=prefix, year=int(year), sequence=int(sequence))


def _check_year(year: object) -> int:
    if isinstance(year, bool) or not isinstance(year, int) or not 1000 <= year <= 9999:
        raise InvoiceNumberInvariantError(
            f"Invoice year must be a 4-digit integer, got {year!r}"
        )
    return year


def format_invoice_number(year: int, sequence: int) -> str:
    """
    Render WC-YYYY-NNNN and check the result against the published pattern.

    Raises InvoiceNumberInvariantError if the inputs cannot produce a valid
    number (year not 4 digits, sequence outside 1..9999).
    """
    _check_year(year)
    if isinstance(sequence, bool) or not isinstance(sequence, int) or sequence < 1:
        raise InvoiceNumberInvariantError(f"Invoice sequence must be >= 1, got {sequence!r}")
    if sequence > MAX_SEQUENCE:
        raise InvoiceNumberInvariantError(
            f"Invoice sequence for {year} exhausted: {sequence} exceeds {MAX_SEQUENCE}"
        )

    number = f"{INVOICE_PREFIX}-{year:04d}-{sequence:04d}"
    if not validate_invoice_number(number):
        raise InvoiceNumberInvariantError(f"Generated invoice number is invalid: {number!r}")
    return number


# ---------------------------------------------------------------------------
# Allocation
# ---------------------------------------------------------------------------

async def _lock_counter(session: AsyncSession, year: int) -> int | None:
    result = await session.execute(
        select(InvoiceSequence.last_sequence)
        .where(InvoiceSequence.year == year)
        .with_for_update()
    )
    return result.scalar_one_or_none()


async def _create_counter(session: AsyncSession, year: int) -> bool:
    """
    Insert the year's row with last_sequence=1.

    Returns False when another transaction inserted it first; the savepoint
    keeps that failure from poisoning the caller's transaction.
    """
    try:
        async with session.begin_nested():
            await session.execute(
                insert(InvoiceSequence).values(
                    year=year, last_sequence=1, updated_at=func.now()
                )
            )
    except IntegrityError:
        logger.debug("invoice_sequences row for %s created concurrently; relocking", year)
        return False
    return True


async def _advance_counter(session: AsyncSession, year: int, last_sequence: int) -> int:
    next_sequence = last_sequence + 1
    if next_sequence > MAX_SEQUENCE:
        raise InvoiceNumberInvariantError(
            f"Invoice sequence for {year} exhausted: {next_sequence} exceeds {MAX_SEQUENCE}"
        )
    await session.execute(
        update(InvoiceSequence)
        .where(InvoiceSequence.year == year)
        .values(last_sequence=next_sequence, updated_at=func.now())
        .execution_options(synchronize_session=False)
    )
    return next_sequence


async def allocate_invoice_number(session: AsyncSession, year: int) -> str:
    """
    Claim the next invoice number for *year* inside the caller's transaction.

    The counter row stays locked until the caller commits or rolls back.  A
    rollback discards the advance, so the next committed allocation receives
    the value after the last committed one.

    Raises:
        AllocatorConfigurationError: no session supplied.
        SequenceStorageError: the locked read, insert or update failed.
        InvoiceNumberInvariantError: year not 4 digits or sequence past 9999.
    """
    if session is None:
        raise AllocatorConfigurationError(
            "A database session is required to allocate an invoice number"
        )
    _check_year(year)

    try:
        last_sequence = await _lock_counter(session, year)
        if last_sequence is None:
            if await _create_counter(session, year):
                sequence = 1
            else:
                last_sequence = await _lock_counter(session, year)
                if last_sequence is None:
                    raise SequenceStorageError(
                        year, "counter row missing after concurrent insert"
                    )
                sequence = await _advance_counter(session, year, last_sequence)
        else:
            sequence = await _advance_counter(session, year, last_sequence)
    except SQLAlchemyError as exc:
        logger.error("Error generating invoice number for %s: %s", year, exc)
        raise SequenceStorageError(year, str(exc)) from exc

    number = format_invoice_number(year, sequence)
    logger.debug("Allocated invoice number %s", number)
    return number


async def peek_last_sequence(session: AsyncSession, year: int) -> int | None:
    """Last sequence visible to *session* for *year*, without locking; None if unused."""
    result = await session.execute(
        select(InvoiceSequence.last_sequence).where(InvoiceSequence.year == year)
    )
    return result.scalar_one_or_none()
