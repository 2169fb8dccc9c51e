import pytest

from stockflow.errors import InvalidInput
from stockflow.models import DocumentSequence
from stockflow.services import sequence_service
from stockflow.services.concurrency import write_transaction
from stockflow.time_utils import utcnow


def test_first_number_is_one_and_then_increments(db_session):
    with write_transaction():
        first = sequence_service.next_number("TEST:2026")
        second = sequence_service.next_number("TEST:2026")
    assert (first, second) == (1, 2)

    row = db_session.query(DocumentSequence).filter_by(sequence_key="TEST:2026").one()
    assert row.next_number == 3


def test_keys_are_independent(db_session):
    with write_transaction():
        assert sequence_service.next_number("A") == 1
        assert sequence_service.next_number("B") == 1
        assert sequence_service.next_number("A") == 2


def test_rolled_back_number_is_released(db_session):
    with pytest.raises(RuntimeError):
        with write_transaction():
            assert sequence_service.next_number("R") == 1
            raise RuntimeError("abort")

    with write_transaction():
        assert sequence_service.next_number("R") == 1


def test_format_document_number():
    assert sequence_service.format_document_number("PO", 7, period=2026) == "PO-2026-0007"
    assert sequence_service.format_document_number("TRX", 42, period=2026, pad=6) == "TRX-2026-000042"
    assert sequence_service.format_document_number("X", 3) == "X-0003"
    with pytest.raises(InvalidInput):
        sequence_service.format_document_number("PO", 0)


def test_po_and_transaction_numbers_are_per_year(db_session):
    year = utcnow().year
    with write_transaction():
        po1 = sequence_service.next_po_number()
        po2 = sequence_service.next_po_number()
        trx = sequence_service.next_transaction_number()

    assert po1 == f"PO-{year}-0001"
    assert po2 == f"PO-{year}-0002"
    assert trx == f"TRX-{year}-000001"
    assert sequence_service.sequence_key_for("PO", year) == f"PO:{year}"


def test_empty_key_rejected(db_session):
    with pytest.raises(InvalidInput):
        with write_transaction():
            sequence_service.next_number("")
