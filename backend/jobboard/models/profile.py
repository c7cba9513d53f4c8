from enum import Enum
from typing import Any, Optional
from pydantic import Field

from jobboard.models.base import CamelModel


class NotificationPreferences(CamelModel):
    email: bool = True
    push: bool = True
    sms: bool = False


class Preferences(CamelModel):
    currency: str = "USD"
    language: str = "en"
    timezone: str = "UTC"


class PaymentMethodType(str, Enum):
    CARD = "card"
    BANK = "bank"
    PAYPAL = "paypal"


class PaymentMethodCreate(CamelModel):
    """
    Raw form input. Only masked values end up in the stored PaymentMethod;
    the full card number and the CVV are dropped.
    """
    type: PaymentMethodType = PaymentMethodType.CARD
    card_number: str = ""
    expiry_date: str = ""
    cvv: str = ""
    cardholder_name: str = ""
    bank_account: str = ""
    routing_number: str = ""
    paypal_email: str = ""


class PaymentMethod(CamelModel):
    id: str
    type: PaymentMethodType
    last4: Optional[str] = None
    brand: Optional[str] = None
    cardholder_name: Optional[str] = None
    expiry_date: Optional[str] = None
    routing_number: Optional[str] = None
    email: Optional[str] = None
    is_default: bool = False


class JobMessage(CamelModel):
    """An entry in profile.messages, left from a job's detail page."""
    job_id: str
    sender: str = Field(default="User", alias="from")
    text: str
    time: str = ""


class Profile(CamelModel):
    name: str = ""
    email: str = ""
    phone: str = ""
    description: str = ""
    logo: str = ""
    location: str = ""
    website: str = ""
    is_premium: bool = False
    notifications: NotificationPreferences = Field(default_factory=NotificationPreferences)
    preferences: Preferences = Field(default_factory=Preferences)
    comments: list[str] = Field(default_factory=list)
    messages: list[Any] = Field(default_factory=list)
    payments: list[Any] = Field(default_factory=list)
    payment_methods: list[PaymentMethod] = Field(default_factory=list)


class ProfileUpdate(CamelModel):
    """Partial profile edit; unset fields are left alone."""
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    description: Optional[str] = None
    logo: Optional[str] = None
    location: Optional[str] = None
    website: Optional[str] = None
    is_premium: Optional[bool] = None
    notifications: Optional[NotificationPreferences] = None
    preferences: Optional[Preferences] = None
