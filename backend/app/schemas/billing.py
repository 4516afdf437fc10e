"""Pydantic schemas for checkout, subscription actions and audit metadata"""
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from app.models.enums import BillingCycle, PlanCode


class SubscriptionCheckoutRequest(BaseModel):
    plan_id: str = Field(alias="planId")
    billing_cycle: Literal["monthly", "yearly"] = Field(default="monthly", alias="billingCycle")

    model_config = ConfigDict(populate_by_name=True)


class OrgCheckoutRequest(BaseModel):
    plan_code: PlanCode = Field(alias="planCode")
    billing_cycle: Literal["monthly", "yearly"] = Field(default="monthly", alias="billingCycle")

    model_config = ConfigDict(populate_by_name=True)


class ChangePlanRequest(BaseModel):
    plan_id: str = Field(alias="planId")

    model_config = ConfigDict(populate_by_name=True)


class ActionResult(BaseModel):
    """Outcome of a user-initiated billing action"""
    status: Literal["success", "error"]
    message: str
    checkout_url: Optional[str] = Field(default=None, serialization_alias="checkoutUrl")
    blocked: bool = Field(default=False, exclude=True)

    @classmethod
    def success(cls, message: str, checkout_url: Optional[str] = None) -> "ActionResult":
        return cls(status="success", message=message, checkout_url=checkout_url)

    @classmethod
    def error(cls, message: str, blocked: bool = False) -> "ActionResult":
        return cls(status="error", message=message, blocked=blocked)

    @property
    def ok(self) -> bool:
        return self.status == "success"


# ============================================================================
# SUBSCRIPTION HISTORY METADATA
# ============================================================================

class CreatedMetadata(BaseModel):
    kind: Literal["created"] = "created"
    stripe_event_id: Optional[str] = None
    checkout_session_id: Optional[str] = None
    billing_cycle: Optional[BillingCycle] = None


class RenewedMetadata(BaseModel):
    kind: Literal["renewed"] = "renewed"
    stripe_invoice_id: str
    amount: int


class CancelledMetadata(BaseModel):
    kind: Literal["cancelled"] = "cancelled"
    reason: str
    cancelled_by: Literal["user", "gateway"]


class ExpiredMetadata(BaseModel):
    kind: Literal["expired"] = "expired"
    source: str


class PlanChangedMetadata(BaseModel):
    kind: Literal["plan_changed"] = "plan_changed"
    proration: Literal["always_invoice", "none"]


class ReactivatedMetadata(BaseModel):
    kind: Literal["reactivated"] = "reactivated"


HistoryMetadata = Annotated[
    Union[
        CreatedMetadata,
        RenewedMetadata,
        CancelledMetadata,
        ExpiredMetadata,
        PlanChangedMetadata,
        ReactivatedMetadata,
    ],
    Field(discriminator="kind"),
]

history_metadata_adapter = TypeAdapter(HistoryMetadata)
