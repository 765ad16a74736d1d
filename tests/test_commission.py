import pytest

from scrapcore.services.commission import commission


class TestCommission:
    """Platform fee: max(minimum, round-half-up(amount * rate))"""

    def test_one_percent_of_order_amount(self):
        assert commission(500, 0.01) == 5
        assert commission(10_000, 0.01) == 100

    def test_minimum_fee_applies_to_small_and_zero_amounts(self):
        assert commission(0, 0.01) == 1
        assert commission(20, 0.01) == 1

    def test_halves_round_up(self):
        assert commission(50, 0.01) == 1
        assert commission(150, 0.01) == 2
        assert commission(250, 0.01) == 3

    def test_custom_minimum(self):
        assert commission(100, 0.01, minimum_fee=10) == 10
        assert commission(5_000, 0.01, minimum_fee=10) == 50

    def test_negative_amount_rejected(self):
        with pytest.raises(ValueError):
            commission(-1, 0.01)
