"""
Tests for invoice number formatting, parsing and single-session allocation.

Concurrent allocation is covered in test_invoice_number_concurrency.py.
"""
import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    AllocatorConfigurationError,
    InvoiceNumberError,
    InvoiceNumberFormatError,
    InvoiceNumberInvariantError,
    SequenceStorageError,
)
from app.models.sequence import InvoiceSequence
from app.services.invoice_number import (
    _create_counter,
    allocate_invoice_number,
    format_invoice_number,
    parse_invoice_number,
    peek_last_sequence,
    validate_invoice_number,
)

MALFORMED = [
    "WC-2025-007",        # 3-digit sequence
    "WC-2025-00007",      # 5-digit sequence
    "WC-25-0007",         # 2-digit year
    "WC2025-0007",        # missing dash
    "WC-2025_0007",       # wrong separator
    "XX-2025-0007",       # wrong prefix
    "wc-2025-0007",       # lowercase prefix
    "WC-2025-00a7",       # non-numeric sequence
    "WC-20x5-0007",       # non-numeric year
    "WC-2025-0007\n",     # trailing newline
    " WC-2025-0007",      # leading space
    "WC-٢٠٢٥-0007",       # non-ASCII digits
    "",
]


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------

def test_format_pads_sequence_to_four_digits():
    assert format_invoice_number(2025, 7) == "WC-2025-0007"
    assert format_invoice_number(2025, 42) == "WC-2025-0042"
    assert format_invoice_number(2025, 1234) == "WC-2025-1234"
    assert format_invoice_number(2025, 9999) == "WC-2025-9999"


def test_format_rejects_sequence_past_9999():
    with pytest.raises(InvoiceNumberInvariantError, match="exhausted"):
        format_invoice_number(2025, 10000)


@pytest.mark.parametrize("sequence", [0, -1, True, "7"])
def test_format_rejects_bad_sequence(sequence):
    with pytest.raises(InvoiceNumberInvariantError):
        format_invoice_number(2025, sequence)


@pytest.mark.parametrize("year", [999, 10000, -2025, "2025", True, None])
def test_format_rejects_year_not_four_digits(year):
    with pytest.raises(InvoiceNumberInvariantError):
        format_invoice_number(year, 1)


# ---------------------------------------------------------------------------
# Validation and parsing
# ---------------------------------------------------------------------------

def test_validate_accepts_well_formed_number():
    assert validate_invoice_number("WC-2025-0007") is True
    assert validate_invoice_number("WC-1999-9999") is True


@pytest.mark.parametrize("value", MALFORMED + [None, 20250007])
def test_validate_rejects_malformed(value):
    assert validate_invoice_number(value) is False


@pytest.mark.parametrize("year,sequence", [(2025, 1), (2025, 7), (2031, 950), (1999, 9999)])
def test_parse_inverts_format(year, sequence):
    parsed = parse_invoice_number(format_invoice_number(year, sequence))
    assert parsed.prefix == "WC"
    assert parsed.year == year
    assert parsed.sequence == sequence


@pytest.mark.parametrize("value", MALFORMED + [None])
def test_parse_rejects_malformed(value):
    with pytest.raises(InvoiceNumberFormatError):
        parse_invoice_number(value)


def test_format_error_is_a_value_error():
    with pytest.raises(ValueError):
        parse_invoice_number("INV-0001")


# ---------------------------------------------------------------------------
# Allocation (single session)
# ---------------------------------------------------------------------------

async def _row_count(session: AsyncSession, year: int) -> int:
    result = await session.execute(
        select(func.count()).select_from(InvoiceSequence).where(InvoiceSequence.year == year)
    )
    return result.scalar_one()


@pytest.mark.asyncio
async def test_allocate_without_session_is_configuration_error():
    with pytest.raises(AllocatorConfigurationError):
        await allocate_invoice_number(None, 2025)


@pytest.mark.asyncio
async def test_allocate_rejects_bad_year_before_touching_storage(db_session):
    with pytest.raises(InvoiceNumberInvariantError):
        await allocate_invoice_number(db_session, 25)
    assert await _row_count(db_session, 25) == 0


@pytest.mark.asyncio
async def test_first_allocation_creates_counter_row(db_session):
    number = await allocate_invoice_number(db_session, 2025)
    await db_session.commit()

    assert number == "WC-2025-0001"
    assert await _row_count(db_session, 2025) == 1
    assert await peek_last_sequence(db_session, 2025) == 1


@pytest.mark.asyncio
async def test_sequential_allocations_are_strictly_increasing(db_session):
    numbers = []
    for _ in range(5):
        numbers.append(await allocate_invoice_number(db_session, 2025))
        await db_session.commit()

    assert numbers == [f"WC-2025-{n:04d}" for n in range(1, 6)]
    sequences = [parse_invoice_number(n).sequence for n in numbers]
    assert sequences == sorted(set(sequences))
    assert await peek_last_sequence(db_session, 2025) == 5


@pytest.mark.asyncio
async def test_years_are_numbered_independently(db_session):
    assert await allocate_invoice_number(db_session, 2025) == "WC-2025-0001"
    assert await allocate_invoice_number(db_session, 2025) == "WC-2025-0002"
    assert await allocate_invoice_number(db_session, 2026) == "WC-2026-0001"
    assert await allocate_invoice_number(db_session, 2025) == "WC-2025-0003"
    await db_session.commit()

    assert await peek_last_sequence(db_session, 2025) == 3
    assert await peek_last_sequence(db_session, 2026) == 1


@pytest.mark.asyncio
async def test_peek_unused_year_is_none(db_session):
    assert await peek_last_sequence(db_session, 2030) is None


@pytest.mark.asyncio
async def test_rolled_back_allocation_is_not_committed(session_factory):
    async with session_factory() as session:
        assert await allocate_invoice_number(session, 2025) == "WC-2025-0001"
        await session.commit()

    async with session_factory() as session:
        assert await allocate_invoice_number(session, 2025) == "WC-2025-0002"
        await session.rollback()

    async with session_factory() as session:
        assert await peek_last_sequence(session, 2025) == 1
        # Next committed allocation follows the last committed value
        assert await allocate_invoice_number(session, 2025) == "WC-2025-0002"
        await session.commit()

    async with session_factory() as session:
        assert await peek_last_sequence(session, 2025) == 2


@pytest.mark.asyncio
async def test_rolled_back_first_allocation_leaves_no_row(session_factory):
    async with session_factory() as session:
        await allocate_invoice_number(session, 2027)
        await session.rollback()

    async with session_factory() as session:
        assert await peek_last_sequence(session, 2027) is None
        assert await allocate_invoice_number(session, 2027) == "WC-2027-0001"
        await session.commit()


@pytest.mark.asyncio
async def test_sequence_exhaustion_raises_and_leaves_counter(db_session):
    db_session.add(InvoiceSequence(year=2025, last_sequence=9999))
    await db_session.commit()

    with pytest.raises(InvoiceNumberInvariantError, match="exhausted"):
        await allocate_invoice_number(db_session, 2025)
    await db_session.rollback()

    assert await peek_last_sequence(db_session, 2025) == 9999


@pytest.mark.asyncio
async def test_counter_created_by_another_transaction_is_advanced(db_session):
    """Losing the insert race falls back to locking and advancing the existing row."""
    db_session.add(InvoiceSequence(year=2025, last_sequence=3))
    await db_session.commit()

    assert await _create_counter(db_session, 2025) is False
    # The failed insert was confined to its savepoint; the transaction is still usable
    assert await allocate_invoice_number(db_session, 2025) == "WC-2025-0004"
    await db_session.commit()

    assert await peek_last_sequence(db_session, 2025) == 4


@pytest.mark.asyncio
async def test_storage_failure_is_wrapped(engine, db_session):
    async with engine.begin() as conn:
        await conn.run_sync(InvoiceSequence.__table__.drop)

    with pytest.raises(SequenceStorageError) as exc_info:
        await allocate_invoice_number(db_session, 2025)

    assert exc_info.value.year == 2025
    assert "2025" in str(exc_info.value)
    assert isinstance(exc_info.value.__cause__, SQLAlchemyError)
    assert isinstance(exc_info.value, InvoiceNumberError)
    assert not isinstance(exc_info.value, InvoiceNumberInvariantError)
