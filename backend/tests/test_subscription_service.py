"""Subscription action tests (checkout, cancel, resume, change plan)"""
from datetime import datetime, timezone

import pytest
from stripe import StripeError

from app.models.enums import (
    BillingCycle, PaymentStatus, PlanCode, SubscriptionAction, UserSubscriptionStatus
)
from app.models.invoice import Invoice
from app.models.organization import Organization
from app.models.subscription_history import SubscriptionHistory
from app.models.user_subscription import UserSubscription
from app.services.subscription_service import (
    cancel_subscription, change_subscription_plan, create_org_subscription_checkout,
    create_subscription_checkout, get_current_subscription, get_user_invoices, resume_subscription
)


@pytest.fixture
def active_subscription(db_session, test_user, basic_plan):
    sub = UserSubscription(
        user_id=test_user.id,
        plan_id=basic_plan.id,
        status=UserSubscriptionStatus.ACTIVE,
        billing_cycle=BillingCycle.MONTHLY,
        start_date=datetime.now(timezone.utc),
        stripe_subscription_id="sub_test123",
        stripe_customer_id="cus_test123",
    )
    db_session.add(sub)
    db_session.commit()
    return sub


@pytest.mark.high
class TestSubscriptionCheckout:
    """Test per-user subscription checkout creation"""

    def test_creates_subscription_checkout(self, db_session, test_user, basic_plan, auto_mock_stripe):
        result = create_subscription_checkout(test_user.id, basic_plan.id, "yearly", db_session)

        assert result.ok
        assert result.checkout_url == "https://checkout.stripe.com/test"

        kwargs = auto_mock_stripe.checkout.Session.create.call_args.kwargs
        assert kwargs["mode"] == "subscription"
        assert kwargs["line_items"] == [{"price": "price_basic_yearly", "quantity": 1}]
        expected_metadata = {"userId": test_user.id, "planId": basic_plan.id, "billingCycle": "yearly"}
        assert kwargs["metadata"] == expected_metadata
        assert kwargs["subscription_data"] == {"metadata": expected_metadata}

        # Local rows are created by the webhook, not here
        assert db_session.query(UserSubscription).count() == 0

    def test_rejects_same_plan(self, db_session, test_user, basic_plan, active_subscription):
        result = create_subscription_checkout(test_user.id, basic_plan.id, "monthly", db_session)

        assert not result.ok
        assert result.message == "You already have an active subscription to this plan"

    def test_allows_switching_plan(self, db_session, test_user, pro_plan, active_subscription):
        assert create_subscription_checkout(test_user.id, pro_plan.id, "monthly", db_session).ok

    def test_inactive_plan(self, db_session, test_user, basic_plan):
        basic_plan.is_active = False
        db_session.commit()

        result = create_subscription_checkout(test_user.id, basic_plan.id, "monthly", db_session)

        assert result.message == "Subscription plan not found"

    def test_missing_price(self, db_session, test_user, basic_plan, auto_mock_stripe):
        basic_plan.stripe_price_id_yearly = None
        db_session.commit()

        result = create_subscription_checkout(test_user.id, basic_plan.id, "yearly", db_session)

        assert not result.ok
        assert "price not configured" in result.message
        auto_mock_stripe.checkout.Session.create.assert_not_called()

    def test_gateway_error(self, db_session, test_user, basic_plan, auto_mock_stripe):
        auto_mock_stripe.Customer.create.side_effect = StripeError("unavailable")

        result = create_subscription_checkout(test_user.id, basic_plan.id, "monthly", db_session)

        assert result.message == "Payment system error. Please try again later."


@pytest.mark.high
class TestOrgCheckout:
    """Test organization subscription checkout creation"""

    def test_creates_org_and_checkout(self, db_session, test_user, auto_mock_stripe):
        result = create_org_subscription_checkout(test_user.id, PlanCode.TEAM, "monthly", db_session)

        assert result.ok
        org = db_session.query(Organization).filter(Organization.owner_user_id == test_user.id).one()

        kwargs = auto_mock_stripe.checkout.Session.create.call_args.kwargs
        assert kwargs["line_items"] == [{"price": "price_team_monthly", "quantity": 1}]
        assert kwargs["metadata"] == {"orgId": org.id, "planCode": "TEAM", "billingCycle": "monthly"}

    def test_reuses_existing_org(self, db_session, test_user):
        create_org_subscription_checkout(test_user.id, PlanCode.TEAM, "monthly", db_session)
        create_org_subscription_checkout(test_user.id, PlanCode.ENTERPRISE, "yearly", db_session)

        assert db_session.query(Organization).count() == 1


@pytest.mark.high
class TestCancelAndResume:
    """Test user-initiated cancel and resume"""

    def test_cancel(self, db_session, test_user, active_subscription, auto_mock_stripe):
        result = cancel_subscription(test_user.id, db_session)

        assert result.ok
        auto_mock_stripe.Subscription.cancel.assert_called_once_with("sub_test123")
        db_session.refresh(active_subscription)
        assert active_subscription.status == UserSubscriptionStatus.CANCELLED
        assert active_subscription.auto_renew is False
        assert active_subscription.cancelled_at is not None

        history = db_session.query(SubscriptionHistory).one()
        assert history.action == SubscriptionAction.CANCELLED
        assert history.event_metadata["cancelled_by"] == "user"

    def test_cancel_proceeds_when_gateway_fails(self, db_session, test_user, active_subscription, auto_mock_stripe):
        auto_mock_stripe.Subscription.cancel.side_effect = StripeError("timeout")

        result = cancel_subscription(test_user.id, db_session)

        assert result.ok
        db_session.refresh(active_subscription)
        assert active_subscription.status == UserSubscriptionStatus.CANCELLED

    def test_cancel_without_subscription(self, db_session, test_user):
        result = cancel_subscription(test_user.id, db_session)

        assert result.message == "No active subscription found"

    def test_resume(self, db_session, test_user, active_subscription, auto_mock_stripe):
        cancel_subscription(test_user.id, db_session)

        result = resume_subscription(test_user.id, db_session)

        assert result.ok
        auto_mock_stripe.Subscription.modify.assert_called_once_with("sub_test123", cancel_at_period_end=False)
        db_session.refresh(active_subscription)
        assert active_subscription.status == UserSubscriptionStatus.ACTIVE
        assert active_subscription.auto_renew is True
        assert active_subscription.cancelled_at is None

        actions = [h.action for h in db_session.query(SubscriptionHistory).order_by(SubscriptionHistory.created_at)]
        assert actions == [SubscriptionAction.CANCELLED, SubscriptionAction.REACTIVATED]

    def test_resume_requires_cancelled_subscription(self, db_session, test_user, active_subscription):
        result = resume_subscription(test_user.id, db_session)

        assert result.message == "No cancelled subscription found"

    def test_resume_gateway_failure_keeps_cancelled(self, db_session, test_user, active_subscription, auto_mock_stripe):
        cancel_subscription(test_user.id, db_session)
        auto_mock_stripe.Subscription.modify.side_effect = StripeError("timeout")

        result = resume_subscription(test_user.id, db_session)

        assert not result.ok
        db_session.refresh(active_subscription)
        assert active_subscription.status == UserSubscriptionStatus.CANCELLED


@pytest.mark.high
class TestChangePlan:
    """Test upgrades and downgrades of the active subscription"""

    def test_upgrade_invoices_proration(self, db_session, test_user, pro_plan, active_subscription, auto_mock_stripe):
        result = change_subscription_plan(test_user.id, pro_plan.id, db_session)

        assert result.ok
        assert result.message == "Plan upgraded successfully"
        auto_mock_stripe.Subscription.modify.assert_called_once_with(
            "sub_test123",
            items=[{"id": "si_test123", "price": "price_pro_monthly"}],
            proration_behavior="always_invoice",
        )
        db_session.refresh(active_subscription)
        assert active_subscription.plan_id == pro_plan.id

        history = db_session.query(SubscriptionHistory).one()
        assert history.action == SubscriptionAction.UPGRADED
        assert history.new_plan_id == pro_plan.id
        assert history.event_metadata == {"kind": "plan_changed", "proration": "always_invoice"}

    def test_downgrade_without_proration(self, db_session, test_user, basic_plan, pro_plan, active_subscription, auto_mock_stripe):
        active_subscription.plan_id = pro_plan.id
        db_session.commit()

        result = change_subscription_plan(test_user.id, basic_plan.id, db_session)

        assert result.message == "Plan downgraded successfully"
        assert auto_mock_stripe.Subscription.modify.call_args.kwargs["proration_behavior"] == "none"
        assert db_session.query(SubscriptionHistory).one().action == SubscriptionAction.DOWNGRADED

    def test_same_plan(self, db_session, test_user, basic_plan, active_subscription):
        result = change_subscription_plan(test_user.id, basic_plan.id, db_session)

        assert result.message == "You are already on this plan"

    def test_gateway_failure_changes_nothing(self, db_session, test_user, basic_plan, pro_plan, active_subscription, auto_mock_stripe):
        auto_mock_stripe.Subscription.modify.side_effect = StripeError("card_declined")

        result = change_subscription_plan(test_user.id, pro_plan.id, db_session)

        assert result.message == "Payment system error. Please try again later."
        db_session.refresh(active_subscription)
        assert active_subscription.plan_id == basic_plan.id
        assert db_session.query(SubscriptionHistory).count() == 0


@pytest.mark.medium
class TestReadModels:
    """Test current subscription and invoice listing"""

    def test_current_subscription(self, db_session, test_user, active_subscription):
        data = get_current_subscription(test_user.id, db_session)

        assert data["subscription"]["id"] == active_subscription.id
        assert data["subscription"]["status"] == "Active"
        assert data["subscription"]["planName"] == "Basic"
        assert data["organizationSubscription"] is None

    def test_no_subscription(self, db_session, test_user):
        assert get_current_subscription(test_user.id, db_session) == {
            "subscription": None,
            "organizationSubscription": None,
        }

    def test_invoices(self, db_session, test_user, active_subscription):
        db_session.add(Invoice(
            invoice_number="INV-20260101-0000ABCD",
            user_id=test_user.id,
            subscription_id=active_subscription.id,
            plan_name="Basic",
            amount=999,
            total_amount=999,
            payment_status=PaymentStatus.PAID,
        ))
        db_session.commit()

        invoices = get_user_invoices(test_user.id, db_session)

        assert len(invoices) == 1
        assert invoices[0]["invoiceNumber"] == "INV-20260101-0000ABCD"
        assert invoices[0]["paymentStatus"] == "Paid"
