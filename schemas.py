"""
Database Schemas for the civic reporting service

Each Pydantic model represents a MongoDB collection.
Collection name = lowercase of class name (User -> "user", Report -> "report",
Notification -> "notification").
"""

from datetime import datetime
from typing import Annotated, Optional, Literal, List

from pydantic import AfterValidator, BaseModel, EmailStr, Field

CANONICAL_STATUSES = ("submitted", "in_review", "assigned", "in_progress", "resolved", "closed")

# Values clients may send; synonyms are folded before anything is stored.
WireStatus = Literal[
    "submitted", "in_review", "assigned",
    "in_progress", "in-progress", "inprogress",
    "resolved", "completed", "complete",
    "closed", "cancelled", "canceled",
    "pending",
]

STATUS_SYNONYMS = {
    "in-progress": "in_progress",
    "inprogress": "in_progress",
    "complete": "resolved",
    "completed": "resolved",
    "canceled": "closed",
    "cancelled": "closed",
}


def normalize_status(status: str) -> str:
    return STATUS_SYNONYMS.get(status, status)


Status = Annotated[WireStatus, AfterValidator(normalize_status)]

Category = Literal["road_issue", "water_issue", "electricity_issue", "waste_management", "public_safety", "other"]
Priority = Literal["low", "medium", "high", "critical"]
Role = Literal["citizen", "employee", "admin"]
NotificationType = Literal["system", "report_status", "assignment", "feedback", "message", "comment"]
NotificationPriority = Literal["low", "normal", "high"]


class User(BaseModel):
    first_name: str = Field(..., description="Given name")
    last_name: str = Field("", description="Family name")
    email: EmailStr = Field(..., description="Email address")
    role: Role = Field("citizen", description="Role of the account")
    is_active: bool = Field(True, description="Whether user is active")


class Address(BaseModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None


class Location(BaseModel):
    type: Literal["Point"] = "Point"
    coordinates: List[float] = Field(..., min_length=2, max_length=2, description="[longitude, latitude]")
    address: Address = Field(default_factory=Address)


class ReportImage(BaseModel):
    url: str
    caption: Optional[str] = None
    uploaded_at: Optional[datetime] = None


class TimelineEntry(BaseModel):
    """One status transition (or comment) in a report's history."""
    id: str = Field(..., description="Entry id")
    status: Status
    comment: Optional[str] = None
    updated_by: Optional[str] = Field(None, description="User id of the actor")
    timestamp: datetime


class Feedback(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = None
    submitted_at: Optional[datetime] = None


class Report(BaseModel):
    title: str = Field(..., min_length=1, description="Short summary")
    description: str = Field(..., min_length=1, description="Issue description")
    category: Category = Field(..., description="Issue category")
    priority: Priority = Field("medium")
    status: Status = Field("submitted")
    location: Location
    images: List[ReportImage] = Field(default_factory=list)
    submitted_by: str = Field(..., description="Submitter user id")
    assigned_to: Optional[str] = Field(None, description="Assignee user id")
    timeline: List[TimelineEntry] = Field(default_factory=list)
    feedback: Optional[Feedback] = None
    resolved_at: Optional[datetime] = None
    version: int = Field(0, description="Incremented on every write")


class RelatedTo(BaseModel):
    model: Literal["Report", "User"]
    id: str


class Notification(BaseModel):
    recipient: str = Field(..., description="Recipient user id")
    sender: Optional[str] = None
    type: NotificationType = "system"
    title: str
    message: str
    related_to: Optional[RelatedTo] = None
    priority: NotificationPriority = "normal"
    is_read: bool = False
    read_at: Optional[datetime] = None


# ---------- Request bodies ----------

class LocationUpdate(BaseModel):
    coordinates: Optional[List[float]] = None
    address: Optional[Address] = None


class ReportCreate(BaseModel):
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    category: Category
    priority: Priority = "medium"
    location: Location
    images: List[ReportImage] = Field(default_factory=list)


class ReportUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[Category] = None
    priority: Optional[Priority] = None
    status: Optional[Status] = None
    location: Optional[LocationUpdate] = None


class StatusChange(BaseModel):
    status: Status
    comment: Optional[str] = None


class Assignment(BaseModel):
    assignee_id: str
    comment: Optional[str] = None


class DeleteRequest(BaseModel):
    reason: Optional[str] = None


class CommentCreate(BaseModel):
    text: Optional[str] = None


class BulkStatusUpdate(BaseModel):
    report_ids: List[str] = Field(..., min_length=1)
    status: Status
    comment: Optional[str] = None


class BulkAssign(BaseModel):
    report_ids: List[str] = Field(..., min_length=1)
    assignee_id: str


class BulkDelete(BaseModel):
    report_ids: List[str] = Field(..., min_length=1)
    reason: Optional[str] = None


class MessageCreate(BaseModel):
    recipient_id: str
    subject: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)
    notification_type: NotificationType = "message"


class AdminMessage(BaseModel):
    user_id: str
    subject: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)
    type: NotificationType = "message"
    priority: NotificationPriority = "normal"
