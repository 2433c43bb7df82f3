"""
Standardized response models for API documentation.

Wire format is camelCase; models also accept snake_case field names.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class HealthResponse(CamelModel):
    """Health check response."""
    status: str = Field(..., examples=["ok"], description="Service health status")
    service: str = Field(..., examples=["coachbill-backend"], description="Service name")
    version: str = Field(..., description="Application version")
    uptime_s: float = Field(..., description="Seconds since process start")


class ErrorBody(BaseModel):
    code: str = Field(..., examples=["CBL-SES-001"])
    title: str
    message: str
    retryable: bool
    user_action_required: bool
    remediation: List[str] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    """Envelope returned for every registry-coded error."""
    error: ErrorBody


class SessionResponse(CamelModel):
    """A coaching session as seen by API clients."""
    id: str
    company_id: str
    coach_id: str
    coach_name: str
    client_id: str
    client_name: str
    client_email: str
    session_date: datetime
    session_type: str
    notes: str
    summary: Optional[str] = None
    video_link: Optional[str] = None
    status: str
    archived: bool
    created_at: datetime
    updated_at: datetime
    billed_at: Optional[datetime] = None
    payment_intent_id: Optional[str] = None
    amount_charged: Optional[int] = None
    currency: Optional[str] = None


class BillingRecordResponse(CamelModel):
    id: int
    session_id: str
    payment_intent_id: Optional[str] = None
    company_id: str
    client_id: str
    client_name: str
    client_email: str
    coach_id: str
    coach_name: str
    session_type: str
    amount: int
    currency: str
    environment: str
    stripe_account_id: str
    outcome: str
    failure_reason: Optional[str] = None
    product_id: Optional[str] = None
    price_id: Optional[str] = None
    created_at: datetime
