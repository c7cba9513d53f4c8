from enum import Enum
from datetime import datetime
from typing import Optional
from pydantic import Field

from jobboard.models.base import CamelModel, utcnow
from jobboard.models.profile import PaymentMethod


class PaymentType(str, Enum):
    JOB_POSTING = "job_posting"
    PREMIUM_UPGRADE = "premium_upgrade"
    FEATURE_BOOST = "feature_boost"
    OTHER = "other"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class PaymentCreate(CamelModel):
    """
    Mock payment request. Amount is checked by the store so that a bad
    value comes back as a field-level validation failure.
    """
    amount: Optional[float] = None
    description: str = ""
    recipient: str = ""
    type: PaymentType = PaymentType.JOB_POSTING
    currency: Optional[str] = None
    # Id of one of the profile's payment methods; the default method when omitted
    payment_method_id: Optional[str] = None
    due_date: Optional[str] = None


class Payment(CamelModel):
    id: str
    amount: float = Field(..., gt=0, frozen=True)
    description: str
    recipient: str
    type: PaymentType = PaymentType.JOB_POSTING
    currency: str = "USD"
    payment_method: Optional[PaymentMethod] = None
    due_date: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)
    status: PaymentStatus = PaymentStatus.PENDING


class PaymentSummary(CamelModel):
    total_paid: float = 0.0
    total_pending: float = 0.0
    total_processing: float = 0.0
    this_month: float = 0.0
