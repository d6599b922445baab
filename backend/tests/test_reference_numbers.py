# Overview: Pytest coverage for daily reference number allocation.

import re
from datetime import date

import pytest

from salesops.errors import ValidationError
from salesops.services.document_service import (
    PREFIX_STOCK_MOVEMENT,
    PREFIX_TRANSACTION,
    PREFIX_VISIT,
    format_reference_number,
    is_reference_number,
    next_reference_number,
)


class TestReferenceNumbers:

    def test_format(self, db_session):
        number = next_reference_number(PREFIX_TRANSACTION, date(2025, 1, 31))
        assert number == "TRX-20250131-0001"
        assert re.match(r"^TRX-\d{8}-\d{4}$", number)

    def test_sequence_increments_within_a_day(self, db_session):
        on = date(2025, 2, 3)
        numbers = [next_reference_number(PREFIX_VISIT, on) for _ in range(3)]
        assert numbers == ["VST-20250203-0001", "VST-20250203-0002", "VST-20250203-0003"]

    def test_sequence_restarts_each_day(self, db_session):
        next_reference_number(PREFIX_TRANSACTION, date(2025, 2, 3))
        assert next_reference_number(PREFIX_TRANSACTION, date(2025, 2, 4)) == "TRX-20250204-0001"

    def test_prefixes_are_independent(self, db_session):
        on = date(2025, 2, 3)
        next_reference_number(PREFIX_TRANSACTION, on)
        next_reference_number(PREFIX_TRANSACTION, on)
        assert next_reference_number(PREFIX_STOCK_MOVEMENT, on) == "STK-20250203-0001"

    def test_counter_grows_past_padding(self, db_session):
        assert format_reference_number("TRX", date(2025, 1, 1), 12345) == "TRX-20250101-12345"
        assert is_reference_number("TRX-20250101-12345")

    @pytest.mark.parametrize("value", ["", "TRX-2025-0001", "trx-20250101-0001", "TRX20250101-0001"])
    def test_rejects_malformed(self, value):
        assert not is_reference_number(value)

    def test_prefix_required(self, db_session):
        with pytest.raises(ValidationError):
            next_reference_number("")
