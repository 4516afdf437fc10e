"""Plan/price mapping and gateway status mapping tests"""
import pytest

from app.models.enums import BillingCycle, PlanCode, SubscriptionStatus, UserSubscriptionStatus
from app.services.plan_mapper import (
    coerce_plan_code, get_price_id, lookup_plan_code, map_gateway_status,
    map_gateway_status_for_user, map_price_to_plan_code
)


@pytest.mark.high
class TestPriceMapping:
    """Test price id <-> plan code translation"""

    def test_configured_prices_map_to_plan_codes(self):
        assert lookup_plan_code("price_personal_monthly") == PlanCode.PERSONAL
        assert lookup_plan_code("price_team_yearly") == PlanCode.TEAM
        assert lookup_plan_code("price_enterprise_monthly") == PlanCode.ENTERPRISE

    def test_unknown_price_uses_fallback(self):
        assert map_price_to_plan_code("price_unknown", fallback="team") == PlanCode.TEAM

    def test_unknown_price_without_fallback(self):
        assert map_price_to_plan_code("price_unknown") is None
        assert map_price_to_plan_code(None, fallback="not-a-plan") is None

    def test_table_wins_over_fallback(self):
        assert map_price_to_plan_code("price_team_monthly", fallback="ENTERPRISE") == PlanCode.TEAM

    def test_reverse_lookup_by_cycle(self):
        assert get_price_id(PlanCode.TEAM, BillingCycle.MONTHLY) == "price_team_monthly"
        assert get_price_id("ENTERPRISE", "yearly") == "price_enterprise_yearly"

    def test_reverse_lookup_unknown_plan(self):
        assert get_price_id("GOLD", "monthly") is None

    def test_coerce_plan_code_is_case_insensitive(self):
        assert coerce_plan_code(" personal ") == PlanCode.PERSONAL
        assert coerce_plan_code(PlanCode.TEAM) == PlanCode.TEAM
        assert coerce_plan_code(None) is None


@pytest.mark.critical
class TestStatusMapping:
    """Test the single gateway status table and its legacy projection"""

    @pytest.mark.parametrize("gateway_status,expected", [
        ("active", SubscriptionStatus.ACTIVE),
        ("trialing", SubscriptionStatus.TRIALING),
        ("past_due", SubscriptionStatus.PAST_DUE),
        ("unpaid", SubscriptionStatus.EXPIRED),
        ("canceled", SubscriptionStatus.CANCELLED),
        ("incomplete", SubscriptionStatus.INCOMPLETE),
        ("incomplete_expired", SubscriptionStatus.EXPIRED),
        ("paused", SubscriptionStatus.PAUSED),
    ])
    def test_org_mapping(self, gateway_status, expected):
        assert map_gateway_status(gateway_status) == expected

    def test_unknown_status_is_incomplete(self):
        assert map_gateway_status("something_new") == SubscriptionStatus.INCOMPLETE
        assert map_gateway_status(None) == SubscriptionStatus.INCOMPLETE

    @pytest.mark.parametrize("gateway_status,expected", [
        ("active", UserSubscriptionStatus.ACTIVE),
        ("trialing", UserSubscriptionStatus.TRIAL),
        ("past_due", UserSubscriptionStatus.PAST_DUE),
        ("unpaid", UserSubscriptionStatus.EXPIRED),
        ("canceled", UserSubscriptionStatus.CANCELLED),
        ("incomplete", UserSubscriptionStatus.PAST_DUE),
        ("paused", UserSubscriptionStatus.PAST_DUE),
    ])
    def test_legacy_projection(self, gateway_status, expected):
        assert map_gateway_status_for_user(gateway_status) == expected

    def test_legacy_unknown_status_does_not_grant_access(self):
        assert map_gateway_status_for_user("something_new") == UserSubscriptionStatus.PAST_DUE
