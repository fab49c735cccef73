# tests/test_reconcile.py
from decimal import Decimal

from rigdzen_app.services.payments import PendingCharge, Settled, Tracking, reconcile, split_amounts

D = Decimal


def _pending(*amounts):
    return [PendingCharge(meal_order_id=i + 1, expected=D(a)) for i, a in enumerate(amounts)]


def test_matching_total_keeps_expected_amounts():
    out = reconcile(Tracking("REF", D("50.00")), D("50.00"), _pending("20.00", "30.00"))
    assert [s.amount for s in out] == [D("20.00"), D("30.00")]

def test_within_one_cent_counts_as_matching():
    assert split_amounts([D("20.00"), D("30.00")], D("50.005")) == [D("20.00"), D("30.00")]

def test_proportional_split_when_amounts_diverge():
    out = reconcile(Tracking("REF", D("50.00")), D("49.50"), _pending("20.00", "30.00"))
    assert [s.amount for s in out] == [D("19.80"), D("29.70")]
    assert sum(s.amount for s in out) == D("49.50")

def test_rounding_leftover_goes_to_first_orders():
    amounts = split_amounts([D("10.00")] * 3, D("10.00"))
    assert amounts == [D("3.34"), D("3.33"), D("3.33")]
    assert sum(amounts) == D("10.00")

def test_equal_split_when_nothing_is_priced():
    amounts = split_amounts([D("0"), D("0")], D("15.01"))
    assert amounts == [D("7.51"), D("7.50")]

def test_first_order_owns_reference_without_link():
    out = reconcile(Tracking("REF", D("50.00")), D("50.00"), _pending("20.00", "30.00"))
    assert [s.owns_reference for s in out] == [True, False]

def test_linked_pending_order_owns_reference():
    out = reconcile(Tracking("REF", D("50.00"), meal_order_id=2), D("50.00"), _pending("20.00", "30.00"))
    assert out == [
        Settled(meal_order_id=1, amount=D("20.00"), owns_reference=False),
        Settled(meal_order_id=2, amount=D("30.00"), owns_reference=True),
    ]

def test_link_to_order_no_longer_pending_falls_back_to_first():
    out = reconcile(Tracking("REF", D("50.00"), meal_order_id=99), D("50.00"), _pending("20.00", "30.00"))
    assert sum(1 for s in out if s.owns_reference) == 1
    assert out[0].owns_reference

def test_nothing_pending_settles_nothing():
    assert reconcile(Tracking("REF", D("0")), D("12.00"), []) == []
