from enum import Enum
from pydantic import Field, field_validator
from typing import Any, Optional
from datetime import datetime

from jobboard.models.base import CamelModel, utcnow


class JobCategory(str, Enum):
    CHEF = "Chef"
    SERVER = "Server"
    DELIVERY = "Delivery"


class JobBase(CamelModel):
    """
    What a restaurant posts.
    """
    title: str = Field(..., description="The job title, e.g. 'Line Cook'")
    description: str = Field(..., description="What the job involves")
    pay: str = Field(..., description="Free-form pay, e.g. '$18/h'")
    category: JobCategory = Field(default=JobCategory.CHEF)
    company: Optional[str] = Field(default=None, description="Posting restaurant")
    location: str = Field(default="", description="City or coordinates")


class JobCreate(JobBase):
    """
    Used when a job is submitted. Blank text fields are rejected by the store.
    """

    @field_validator("title", "description", "pay", mode="before")
    @classmethod
    def _strip(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value


class Job(JobBase):
    """
    The full object held by the store and mirrored to storage.
    """
    id: str
    company: str = ""
    created_at: datetime = Field(default_factory=utcnow)
    is_active: bool = True
    # Cleared once the "new job posted" announcement has been shown
    is_new: bool = True
    applicants: list[Any] = Field(default_factory=list)
    views: int = 0
    posted_by: str = "Anonymous"
    # Kept for display; nothing in the app fills a job yet.
    filled: bool = False
