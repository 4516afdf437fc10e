"""Course enrollment routes"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.responses import action_response
from app.core.security import require_auth
from app.db.session import get_db
from app.services.enrollment_service import enroll_in_course

router = APIRouter(prefix="/api/courses", tags=["enrollments"])


@router.post("/{course_id}/enroll")
def enroll(course_id: str, user_id: str = Depends(require_auth), db: Session = Depends(get_db)):
    """Start a paid enrollment; returns the Stripe Checkout URL"""
    return action_response(enroll_in_course(user_id, course_id, db))
