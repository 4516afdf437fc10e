"""Enrollment gate tests"""
from unittest.mock import patch

import pytest
from sqlalchemy.exc import IntegrityError
from stripe import StripeError

from app.core.config import settings
from app.models.enrollment import Enrollment
from app.models.enums import EnrollmentStatus
from app.services.enrollment_service import enroll_in_course


@pytest.mark.critical
class TestEnrollInCourse:
    """Test starting a paid course enrollment"""

    def test_creates_pending_enrollment_and_checkout(self, db_session, test_user, test_course, auto_mock_stripe):
        result = enroll_in_course(test_user.id, test_course.id, db_session)

        assert result.ok
        assert result.checkout_url == "https://checkout.stripe.com/test"

        enrollment = db_session.query(Enrollment).one()
        assert enrollment.status == EnrollmentStatus.PENDING
        assert enrollment.amount == test_course.price

        kwargs = auto_mock_stripe.checkout.Session.create.call_args.kwargs
        assert kwargs["mode"] == "payment"
        assert kwargs["customer"] == "cus_test123"
        assert kwargs["line_items"] == [{"price": "price_course_123", "quantity": 1}]
        assert kwargs["metadata"] == {
            "userId": test_user.id,
            "courseId": test_course.id,
            "enrollmentId": enrollment.id,
        }
        assert kwargs["success_url"].startswith("https://coursehub.test/payment/success")

    def test_creates_and_persists_customer_once(self, db_session, test_user, test_course, auto_mock_stripe):
        enroll_in_course(test_user.id, test_course.id, db_session)
        enroll_in_course(test_user.id, test_course.id, db_session)

        db_session.refresh(test_user)
        assert test_user.stripe_customer_id == "cus_test123"
        assert auto_mock_stripe.Customer.create.call_count == 1

    def test_retry_reuses_pending_enrollment(self, db_session, test_user, test_course):
        enroll_in_course(test_user.id, test_course.id, db_session)
        enroll_in_course(test_user.id, test_course.id, db_session)

        assert db_session.query(Enrollment).count() == 1

    def test_already_enrolled(self, db_session, test_user, test_course, auto_mock_stripe):
        db_session.add(Enrollment(
            user_id=test_user.id,
            course_id=test_course.id,
            amount=test_course.price,
            status=EnrollmentStatus.ACTIVE
        ))
        db_session.commit()

        result = enroll_in_course(test_user.id, test_course.id, db_session)

        assert result.ok
        assert result.message == "You are already enrolled in this course"
        assert result.checkout_url is None
        auto_mock_stripe.checkout.Session.create.assert_not_called()

    def test_unknown_course(self, db_session, test_user):
        result = enroll_in_course(test_user.id, "missing-course", db_session)

        assert not result.ok
        assert result.message == "Course not found"

    def test_course_without_price(self, db_session, test_user, test_course):
        test_course.stripe_price_id = None
        db_session.commit()

        result = enroll_in_course(test_user.id, test_course.id, db_session)

        assert not result.ok
        assert db_session.query(Enrollment).count() == 0

    def test_gateway_error_leaves_no_enrollment(self, db_session, test_user, test_course, auto_mock_stripe):
        auto_mock_stripe.checkout.Session.create.side_effect = StripeError("card network down")

        result = enroll_in_course(test_user.id, test_course.id, db_session)

        assert not result.ok
        assert result.message == "Payment system error. Please try again later."
        assert db_session.query(Enrollment).count() == 0

    def test_concurrent_insert_is_retried(self, db_session, test_user, test_course, auto_mock_stripe):
        test_user.stripe_customer_id = "cus_existing"
        db_session.commit()

        real_flush = db_session.flush
        collided = []

        def flush_losing_first_insert(*args, **kwargs):
            if not collided:
                collided.append(True)
                raise IntegrityError("INSERT INTO enrollments", {}, Exception("UNIQUE constraint failed"))
            return real_flush(*args, **kwargs)

        with patch.object(db_session, "flush", side_effect=flush_losing_first_insert):
            result = enroll_in_course(test_user.id, test_course.id, db_session)

        assert result.ok
        assert result.checkout_url == "https://checkout.stripe.com/test"
        assert collided
        assert db_session.query(Enrollment).count() == 1
        assert auto_mock_stripe.checkout.Session.create.call_count == 1


@pytest.mark.high
class TestEnrollmentRateLimit:
    """Test the per-user fixed window applied before checkout"""

    def test_blocked_after_limit(self, db_session, test_user, test_course, auto_mock_stripe):
        for _ in range(settings.CHECKOUT_RATE_LIMIT_MAX):
            assert enroll_in_course(test_user.id, test_course.id, db_session).ok

        result = enroll_in_course(test_user.id, test_course.id, db_session)

        assert not result.ok
        assert result.blocked
        assert result.message == "You have been blocked"
        assert auto_mock_stripe.checkout.Session.create.call_count == settings.CHECKOUT_RATE_LIMIT_MAX

    def test_window_is_per_user(self, db_session, mock_redis, test_user, test_course):
        mock_redis.set("ratelimit:enroll:user:someone-else", 100)

        assert enroll_in_course(test_user.id, test_course.id, db_session).ok

    def test_window_expires(self, db_session, mock_redis, test_user, test_course):
        enroll_in_course(test_user.id, test_course.id, db_session)

        ttl = mock_redis.ttl(f"ratelimit:enroll:user:{test_user.id}")
        assert 0 < ttl <= settings.CHECKOUT_RATE_LIMIT_WINDOW
