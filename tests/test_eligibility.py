"""Tests for institution and billing eligibility."""

from datetime import date, timedelta

from market.pipelines.eligibility import filter_eligible, is_billing_suspended
from market.pipelines.sellers import SellerProfile

TODAY = date(2026, 3, 10)


def seller(seller_id, institution="UNILAG", **attrs):
    return SellerProfile(seller_id=seller_id, institution=institution, categories=["Laptops"], **attrs)


class TestBillingSuspension:

    def test_due_today_is_suspended(self):
        assert is_billing_suspended(seller(1, billing_active=True, billing_due_date=TODAY), TODAY)

    def test_overdue_is_suspended(self):
        overdue = seller(1, billing_active=True, billing_due_date=TODAY - timedelta(days=3))
        assert is_billing_suspended(overdue, TODAY)

    def test_due_tomorrow_is_fine(self):
        upcoming = seller(1, billing_active=True, billing_due_date=TODAY + timedelta(days=1))
        assert not is_billing_suspended(upcoming, TODAY)

    def test_inactive_billing_is_fine(self):
        assert not is_billing_suspended(seller(1, billing_active=False, billing_due_date=TODAY), TODAY)

    def test_no_due_date_is_fine(self):
        assert not is_billing_suspended(seller(1, billing_active=True), TODAY)


class TestFilterEligible:

    def test_other_institution_excluded(self):
        sellers = [seller(1), seller(2, institution="UI"), seller(3, institution="unilag")]
        assert [s.seller_id for s in filter_eligible(sellers, "UNILAG", TODAY)] == [1]

    def test_billing_due_excluded(self):
        sellers = [
            seller(1, billing_active=True, billing_due_date=TODAY),
            seller(2, billing_active=True, billing_due_date=TODAY + timedelta(days=1)),
            seller(3),
        ]
        assert [s.seller_id for s in filter_eligible(sellers, "UNILAG", TODAY)] == [2, 3]

    def test_empty(self):
        assert filter_eligible([], "UNILAG", TODAY) == []
