"""Tests for leveraged-position fee estimation.

All test cases use Decimal values to verify precision.
"""

from decimal import Decimal

from funding_evaluator.pnl.fee_model import calc_entry_fee_percent, estimate_fee_percentage


class TestEstimateFeePercentage:
    """Trading + borrow + funding cost as a fraction of deposit."""

    def test_unlevered_instant_position_pays_notional_fee_only(self) -> None:
        fee = estimate_fee_percentage(
            leverage=Decimal("1"),
            fee_rate_notional=Decimal("0.0005"),
            fee_rate_counter=Decimal("0.001"),
            borrow_rate_annualized=Decimal("0.03"),
            funding_rate_annualized=Decimal("0.2"),
            holding_hours=Decimal("0"),
        )
        assert fee == Decimal("0.0005")

    def test_all_four_terms(self) -> None:
        """2x leverage held 48h (2 days):

        notional:  0.0005
        counter:   (2 - 1) * 0.001                = 0.001
        borrow:    (1 - 1/2) * 0.03 / 365 * 2     = 0.03 / 365
        funding:   0.2 / 365 * 2                  = 0.4 / 365
        total:     0.0015 + 0.43 / 365            = 0.002678082191780821917808...
        """
        fee = estimate_fee_percentage(
            leverage=Decimal("2"),
            fee_rate_notional=Decimal("0.0005"),
            fee_rate_counter=Decimal("0.001"),
            borrow_rate_annualized=Decimal("0.03"),
            funding_rate_annualized=Decimal("0.2"),
            holding_hours=Decimal("48"),
        )
        assert abs(fee - Decimal("0.002678082191780821917808")) < Decimal("1e-20")

    def test_negative_funding_can_make_fee_negative(self) -> None:
        """Funding received: -0.365 / 365 * 1 day = -0.001."""
        fee = estimate_fee_percentage(
            leverage=Decimal("1"),
            fee_rate_notional=Decimal("0.0005"),
            fee_rate_counter=Decimal("0"),
            borrow_rate_annualized=Decimal("0"),
            funding_rate_annualized=Decimal("-0.365"),
            holding_hours=Decimal("24"),
        )
        assert fee == Decimal("-0.0005")

    def test_higher_leverage_costs_more(self) -> None:
        args = dict(
            fee_rate_notional=Decimal("0.0005"),
            fee_rate_counter=Decimal("0.001"),
            borrow_rate_annualized=Decimal("0.03"),
            funding_rate_annualized=Decimal("0"),
            holding_hours=Decimal("48"),
        )
        low = estimate_fee_percentage(leverage=Decimal("2"), **args)
        high = estimate_fee_percentage(leverage=Decimal("5"), **args)
        assert high > low


class TestEntryFee:
    """Entry-only trading fee."""

    def test_counter_fee_charged_on_half_the_borrowed_share(self) -> None:
        """0.0005 + (1 - 1/2) / 2 * 0.001 = 0.00075"""
        fee = calc_entry_fee_percent(Decimal("2"), Decimal("0.0005"), Decimal("0.001"))
        assert fee == Decimal("0.00075")

    def test_unlevered_has_no_counter_fee(self) -> None:
        fee = calc_entry_fee_percent(Decimal("1"), Decimal("0.0005"), Decimal("0.001"))
        assert fee == Decimal("0.0005")
