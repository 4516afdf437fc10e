"""Enrollment gate - paid course enrollment through Stripe Checkout.

A user enrolls by paying; the enrollment row sits in Pending until the
checkout.session.completed webhook activates it.
"""
import logging
from typing import Any
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from stripe import StripeError

from app.core.config import PAYMENT_CANCEL_PATH, PAYMENT_SUCCESS_PATH
from app.core.exceptions import WebhookNotFoundError, WebhookValidationError
from app.core.logging import log_webhook_event
from app.core.metrics import checkout_sessions_counter
from app.core.security import check_checkout_rate_limit
from app.db.session import atomic
from app.models.course import Course
from app.models.enrollment import Enrollment
from app.models.enums import EnrollmentStatus
from app.models.user import User
from app.schemas.billing import ActionResult
from app.services import stripe_service
from app.services.stripe_service import get_stripe_id, get_stripe_value

logger = logging.getLogger(__name__)

PAYMENT_SYSTEM_ERROR = "Payment system error. Please try again later."
BLOCKED_MESSAGE = "You have been blocked"


def enroll_in_course(user_id: str, course_id: str, db: Session) -> ActionResult:
    """Start a paid enrollment.

    Returns a success result carrying the hosted checkout URL, or a success
    without URL when the user is already enrolled. Gateway failures are
    reported as an error result, never raised.
    """
    if not check_checkout_rate_limit(user_id, action="enroll"):
        return ActionResult.error(BLOCKED_MESSAGE, blocked=True)

    course = db.query(Course).filter(Course.id == course_id).first()
    if not course:
        return ActionResult.error("Course not found")

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        return ActionResult.error("User not found")

    if not course.stripe_price_id:
        logger.error(f"Course {course_id} has no Stripe price configured")
        return ActionResult.error("Course is not available for purchase")

    try:
        customer_id = stripe_service.get_or_create_customer_id(user, db)
        try:
            result = _open_course_checkout(user_id, course, customer_id, db)
        except IntegrityError:
            # A concurrent request inserted the enrollment first; it is visible now
            logger.info(f"Enrollment for user {user_id}, course {course_id} created concurrently, retrying")
            result = _open_course_checkout(user_id, course, customer_id, db)
    except StripeError as e:
        logger.error(f"Stripe error creating course checkout for user {user_id}: {e}", exc_info=True)
        checkout_sessions_counter.labels(kind="course", status="error").inc()
        return ActionResult.error(PAYMENT_SYSTEM_ERROR)

    return result


def _open_course_checkout(user_id: str, course: Course, customer_id: str, db: Session) -> ActionResult:
    # The pending row and the checkout session succeed or fail together
    with atomic(db):
        enrollment = db.query(Enrollment).filter(
            Enrollment.user_id == user_id,
            Enrollment.course_id == course.id
        ).first()

        if enrollment and enrollment.status == EnrollmentStatus.ACTIVE:
            return ActionResult.success("You are already enrolled in this course")

        if not enrollment:
            enrollment = Enrollment(user_id=user_id, course_id=course.id)
            db.add(enrollment)
        enrollment.status = EnrollmentStatus.PENDING
        enrollment.amount = course.price
        db.flush()

        session = stripe_service.create_checkout_session(
            customer_id=customer_id,
            price_id=course.stripe_price_id,
            mode="payment",
            metadata={
                "userId": user_id,
                "courseId": course.id,
                "enrollmentId": enrollment.id,
            },
            success_url=stripe_service.build_redirect_url(
                PAYMENT_SUCCESS_PATH, session_id="{CHECKOUT_SESSION_ID}"
            ),
            cancel_url=stripe_service.build_redirect_url(PAYMENT_CANCEL_PATH, courseId=course.id),
        )

    checkout_sessions_counter.labels(kind="course", status="created").inc()
    logger.info(f"Created course checkout {session['id']} for user {user_id}, course {course.id}")
    return ActionResult.success("Checkout session created", checkout_url=session["url"])


def activate_enrollment_from_checkout(checkout_session: Any, db: Session) -> str:
    """Activate the enrollment referenced by a completed payment-mode checkout.

    Returns 'activated', or 'noop' when the enrollment is already active.

    Raises:
        WebhookValidationError: Missing linkage metadata or a user/course mismatch
        WebhookNotFoundError: Unknown customer or enrollment
    """
    session_id = get_stripe_value(checkout_session, "id")
    metadata = get_stripe_value(checkout_session, "metadata") or {}
    course_id = get_stripe_value(metadata, "courseId")
    enrollment_id = get_stripe_value(metadata, "enrollmentId")
    metadata_user_id = get_stripe_value(metadata, "userId")
    customer_id = get_stripe_id(get_stripe_value(checkout_session, "customer"))

    if not course_id:
        raise WebhookValidationError("Course id not found")
    if not enrollment_id:
        raise WebhookValidationError("Enrollment id not found")
    if not customer_id:
        raise WebhookValidationError("Customer id not found")

    user = db.query(User).filter(User.stripe_customer_id == customer_id).first()
    if not user:
        raise WebhookNotFoundError("User not found")

    enrollment = db.query(Enrollment).filter(Enrollment.id == enrollment_id).first()
    if not enrollment:
        raise WebhookNotFoundError("Enrollment not found")

    if enrollment.user_id != user.id or (metadata_user_id and metadata_user_id != user.id):
        log_webhook_event(
            "enrollment_user_mismatch", logging.WARNING,
            session_id=session_id, enrollment_id=enrollment_id,
            enrollment_user_id=enrollment.user_id, customer_user_id=user.id,
        )
        raise WebhookValidationError("Enrollment user mismatch")

    if enrollment.course_id != course_id:
        log_webhook_event(
            "enrollment_course_mismatch", logging.WARNING,
            session_id=session_id, enrollment_id=enrollment_id,
            enrollment_course_id=enrollment.course_id, metadata_course_id=course_id,
        )
        raise WebhookValidationError("Enrollment course mismatch")

    if enrollment.status == EnrollmentStatus.ACTIVE:
        log_webhook_event("enrollment_already_active", session_id=session_id, enrollment_id=enrollment_id)
        return "noop"

    amount_total = get_stripe_value(checkout_session, "amount_total")
    with atomic(db):
        enrollment.status = EnrollmentStatus.ACTIVE
        if amount_total is not None:
            enrollment.amount = int(amount_total)

    log_webhook_event(
        "enrollment_activated",
        session_id=session_id, enrollment_id=enrollment_id,
        user_id=user.id, course_id=course_id, amount=enrollment.amount,
    )
    return "activated"
