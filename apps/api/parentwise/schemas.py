"""Pydantic schemas shared across the API."""
from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """Base for every model crossing the HTTP boundary (camelCase on the wire)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UserRole(str, Enum):
    CHILD = "CHILD"
    PARENT = "PARENT"
    ADMIN = "ADMIN"


class SubscriptionTier(str, Enum):
    FREE = "FREE"
    PREMIUM = "PREMIUM"
    PREMIUM_PLUS = "PREMIUM_PLUS"


class Gender(str, Enum):
    MALE = "MALE"
    FEMALE = "FEMALE"
    OTHER = "OTHER"
    PREFER_NOT_TO_SAY = "PREFER_NOT_TO_SAY"


class MilestoneCategory(str, Enum):
    PHYSICAL = "PHYSICAL"
    COGNITIVE = "COGNITIVE"
    LANGUAGE = "LANGUAGE"
    SOCIAL_EMOTIONAL = "SOCIAL_EMOTIONAL"
    ADAPTIVE = "ADAPTIVE"


class ActivityType(str, Enum):
    EDUCATIONAL = "EDUCATIONAL"
    PHYSICAL = "PHYSICAL"
    CREATIVE = "CREATIVE"
    SOCIAL = "SOCIAL"
    EMOTIONAL = "EMOTIONAL"
    COGNITIVE = "COGNITIVE"
    ROUTINE = "ROUTINE"


class ActivityDifficulty(str, Enum):
    EASY = "EASY"
    MEDIUM = "MEDIUM"
    HARD = "HARD"


class PlanStatus(str, Enum):
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"


class NotificationType(str, Enum):
    SYSTEM_NOTIFICATION = "SYSTEM_NOTIFICATION"
    MILESTONE_REMINDER = "MILESTONE_REMINDER"
    ACTIVITY_SUGGESTION = "ACTIVITY_SUGGESTION"
    PLAN_UPDATE = "PLAN_UPDATE"
    FAMILY_INVITE = "FAMILY_INVITE"


class User(ApiModel):
    id: str
    email: str
    name: Optional[str] = None
    image: Optional[str] = None
    role: UserRole = UserRole.PARENT
    subscription_tier: SubscriptionTier = SubscriptionTier.FREE
    timezone: str = "UTC"
    language: str = "en"
    preferences: Dict[str, Any] = Field(default_factory=dict)
    email_verified_at: Optional[datetime] = None
    last_login_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @property
    def onboarding_completed(self) -> bool:
        return bool(self.preferences.get("onboardingCompleted"))


class Family(ApiModel):
    id: str
    name: str
    description: Optional[str] = None
    family_code: str
    settings: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime


class FamilyMember(ApiModel):
    id: str
    family_id: str
    user_id: str
    role: str
    is_owner: bool = False
    joined_at: datetime


class Child(ApiModel):
    id: str
    parent_id: str
    family_id: Optional[str] = None
    name: str
    gender: Gender = Gender.PREFER_NOT_TO_SAY
    date_of_birth: date
    interests: List[str] = Field(default_factory=list)
    allergies: List[str] = Field(default_factory=list)
    medications: List[str] = Field(default_factory=list)
    challenges: List[str] = Field(default_factory=list)
    notes: Optional[str] = None
    health_notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class Milestone(ApiModel):
    id: str
    child_id: str
    title: str
    description: str
    category: MilestoneCategory
    age_range_min: int
    age_range_max: int
    is_completed: bool = False
    completed_at: Optional[datetime] = None
    notes: Optional[str] = None
    evidence: List[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class Activity(ApiModel):
    id: str
    title: str
    description: str
    instructions: str
    age_range_min: int
    age_range_max: int
    duration: int
    difficulty: ActivityDifficulty
    type: ActivityType
    materials: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    is_premium: bool = False
    created_at: datetime
    updated_at: datetime


class ActivityLog(ApiModel):
    id: str
    activity_id: str
    child_id: str
    user_id: str
    completed_at: datetime
    duration: Optional[int] = None
    enjoyment: Optional[int] = None
    difficulty: Optional[int] = None
    notes: Optional[str] = None
    observations: Optional[str] = None
    skills: List[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class ParentingPlan(ApiModel):
    id: str
    parent_id: str
    child_id: Optional[str] = None
    family_id: Optional[str] = None
    title: str
    description: Optional[str] = None
    goals: Dict[str, Any] = Field(default_factory=dict)
    strategies: Dict[str, Any] = Field(default_factory=dict)
    timeline: Dict[str, Any] = Field(default_factory=dict)
    status: PlanStatus = PlanStatus.DRAFT
    progress: int = 0
    tags: List[str] = Field(default_factory=list)
    ai_prompts: Optional[Dict[str, Any]] = None
    personalizations: Dict[str, Any] = Field(default_factory=dict)
    completed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class ChildAssessment(ApiModel):
    id: str
    child_id: str
    user_id: str
    title: str
    assessment_type: str
    questions: Dict[str, Any] = Field(default_factory=dict)
    scores: Dict[str, Any] = Field(default_factory=dict)
    insights: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime


class Notification(ApiModel):
    id: str
    user_id: str
    type: NotificationType
    title: str
    message: str
    data: Dict[str, Any] = Field(default_factory=dict)
    is_read: bool = False
    read_at: Optional[datetime] = None
    created_at: datetime


class ContentItem(ApiModel):
    id: str
    title: str
    content_type: str
    body: str
    age_range_min: Optional[int] = None
    age_range_max: Optional[int] = None
    tags: List[str] = Field(default_factory=list)
    is_premium: bool = False
    author_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class AuditLog(ApiModel):
    id: str
    user_id: Optional[str] = None
    action: str
    resource: str
    resource_id: Optional[str] = None
    old_values: Optional[Dict[str, Any]] = None
    new_values: Optional[Dict[str, Any]] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    session_id: Optional[str] = None
    created_at: datetime


def envelope(data: Any = None, *, message: Optional[str] = None) -> Dict[str, Any]:
    """Wrap a payload in the success envelope used by every JSON route."""

    body: Dict[str, Any] = {"success": True}
    if message:
        body["message"] = message
    body["data"] = data
    return body
