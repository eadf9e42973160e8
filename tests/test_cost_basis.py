"""Tests for weighted-average cost basis and ledger totals."""

from folio.models.transaction import TransactionType
from folio.services.portfolio.cost_basis import calculate_new_average_price, transaction_total


class TestAveragePrice:
    def test_first_lot_sets_price(self):
        assert calculate_new_average_price(0, 0, 100, 1000) == 1000

    def test_equal_lots_average(self):
        # (100*1000 + 100*2000) / 200
        assert calculate_new_average_price(100, 1000, 100, 2000) == 1500

    def test_weighted_by_quantity(self):
        # (300*1000 + 100*2000) / 400 = 1250
        assert calculate_new_average_price(300, 1000, 100, 2000) == 1250

    def test_rounds_half_up(self):
        # (1*1 + 1*2) / 2 = 1.5 -> 2
        assert calculate_new_average_price(1, 1, 1, 2) == 2

    def test_rounds_down_below_half(self):
        # (2*1 + 1*2) / 3 = 1.333 -> 1
        assert calculate_new_average_price(2, 1, 1, 2) == 1

    def test_rounds_up_above_half(self):
        # (1*1 + 2*2) / 3 = 1.667 -> 2
        assert calculate_new_average_price(1, 1, 2, 2) == 2

    def test_zero_total_quantity_returns_zero(self):
        assert calculate_new_average_price(0, 0, 0, 1500) == 0

    def test_large_values_stay_exact(self):
        # 10^8 units at ~10^6 cents would lose precision as floats
        result = calculate_new_average_price(100_000_000, 1_000_001, 100_000_000, 1_000_002)
        assert result == 1_000_002  # 1_000_001.5 rounds half up


class TestTransactionTotal:
    def test_buy_adds_fee(self):
        assert transaction_total(TransactionType.BUY, 100, 1000, 10) == 100_010

    def test_sell_subtracts_fee(self):
        assert transaction_total(TransactionType.SELL, 150, 1800, 10) == 269_990

    def test_dividend_subtracts_fee(self):
        assert transaction_total(TransactionType.DIVIDEND, 100, 50, 5) == 4_995

    def test_interest_without_fee(self):
        assert transaction_total(TransactionType.INTEREST, 1, 2500) == 2500
