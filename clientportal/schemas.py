from pydantic import BaseModel, EmailStr, Field, ConfigDict, field_validator
from typing import Optional, List, Dict, Any, Literal
from datetime import datetime, timezone
from uuid import UUID
from clientportal.models import Role, ServiceStatus, TaskStatus, RequestStatus, RequestPriority
from clientportal.forms.schema import FormDocument


def naive_utc(v: Optional[datetime]) -> Optional[datetime]:
    """Stored timestamps are naive UTC; convert aware input (e.g. a trailing Z) to match."""
    if v is not None and v.tzinfo is not None:
        return v.astimezone(timezone.utc).replace(tzinfo=None)
    return v


# ============= Profile Schemas =============
class SocialMediaProfileIn(BaseModel):
    platform: str = Field(..., min_length=1, max_length=100)
    url: str = Field(..., min_length=1, max_length=1000)


class SocialMediaProfileResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    platform: str
    url: str


class ClientProfileFields(BaseModel):
    business_name: Optional[str] = Field(None, max_length=255)
    phone_number: Optional[str] = Field(None, max_length=50)
    work_hours: Optional[str] = Field(None, max_length=255)
    logo_url: Optional[str] = Field(None, max_length=1000)
    custom_font: Optional[str] = Field(None, max_length=255)
    brand_color1: Optional[str] = Field(None, max_length=32)
    brand_color2: Optional[str] = Field(None, max_length=32)
    brand_color3: Optional[str] = Field(None, max_length=32)
    brand_color4: Optional[str] = Field(None, max_length=32)


class ClientProfileUpdate(ClientProfileFields):
    social_media_profiles: Optional[List[SocialMediaProfileIn]] = None


class ClientProfileResponse(ClientProfileFields):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    social_media_profiles: List[SocialMediaProfileResponse] = []
    created_at: datetime
    updated_at: datetime


# ============= User Schemas =============
class UserSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    name: Optional[str] = None
    display_name: str
    role: Role


class UserServiceBrief(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    description: Optional[str] = None
    status: ServiceStatus
    template_id: UUID
    created_at: datetime


class UserResponse(UserSummary):
    external_id: str
    created_at: datetime
    updated_at: datetime
    client_profile: Optional[ClientProfileResponse] = None
    active_service_count: Optional[int] = None
    services: Optional[List[UserServiceBrief]] = None


class UserRoleUpdate(BaseModel):
    role: Role


class PermissionsResponse(BaseModel):
    role: Optional[Role] = None
    permissions: Dict[str, bool]


# ============= Admin Schemas =============
class ClientAction(BaseModel):
    action: Literal["invite", "create"]
    email: EmailStr
    first_name: Optional[str] = Field(None, max_length=255)
    last_name: Optional[str] = Field(None, max_length=255)
    profile: Optional[ClientProfileUpdate] = None


class ClientActionResponse(BaseModel):
    message: str
    user: Optional[UserSummary] = None


class ActivityItem(BaseModel):
    kind: str
    id: UUID
    title: str
    timestamp: datetime


class AdminStatsResponse(BaseModel):
    total_users: int
    new_users_this_month: int
    users_by_role: Dict[str, int]
    services_by_status: Dict[str, int]
    open_requests: int
    recent_activity: List[ActivityItem]


# ============= Template Schemas =============
class StepIn(BaseModel):
    title: str = Field(..., min_length=1, max_length=500)
    description: Optional[str] = None

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Title cannot be empty or whitespace")
        return v.strip()


class StepResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    description: Optional[str] = None
    order: int


class NamedRef(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    description: Optional[str] = None


class ServiceTemplateCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    is_active: bool = True
    tasks: List[StepIn] = []
    milestones: List[StepIn] = []
    required_form_ids: List[UUID] = []


class ServiceTemplateUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    is_active: Optional[bool] = None
    tasks: Optional[List[StepIn]] = None
    milestones: Optional[List[StepIn]] = None
    required_form_ids: Optional[List[UUID]] = None


class TemplateCounts(BaseModel):
    services: int
    tasks: int
    milestones: int


class ServiceTemplateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    description: Optional[str] = None
    is_active: bool
    tasks: List[StepResponse] = []
    milestones: List[StepResponse] = []
    required_forms: List[NamedRef] = []
    counts: TemplateCounts
    created_at: datetime
    updated_at: datetime


# ============= Service Schemas =============
class ServiceCreate(BaseModel):
    template_id: UUID
    client_id: UUID
    name: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    utc_dates = field_validator("start_date", "end_date")(naive_utc)


class ServiceUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    status: Optional[ServiceStatus] = None
    end_date: Optional[datetime] = None

    utc_dates = field_validator("end_date")(naive_utc)


class ServiceTaskResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    service_id: UUID
    template_task_id: Optional[UUID] = None
    title: str
    description: Optional[str] = None
    order: int
    status: TaskStatus
    completed_at: Optional[datetime] = None


class ServiceMilestoneResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    service_id: UUID
    template_milestone_id: Optional[UUID] = None
    title: str
    description: Optional[str] = None
    order: int
    achieved: bool
    achieved_at: Optional[datetime] = None


class AssignedFormResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    service_id: UUID
    form_id: UUID
    required: bool
    form: NamedRef
    submitted: Optional[bool] = None


class ServiceRequestSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    status: RequestStatus
    priority: RequestPriority
    created_at: datetime


class ServiceCounts(BaseModel):
    tasks: int
    completed_tasks: int
    milestones: int
    achieved_milestones: int
    assigned_forms: int
    open_requests: int


class ServiceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    description: Optional[str] = None
    status: ServiceStatus
    start_date: datetime
    end_date: Optional[datetime] = None
    template_id: UUID
    client_id: UUID
    client: UserSummary
    template: NamedRef
    tasks: List[ServiceTaskResponse] = []
    milestones: List[ServiceMilestoneResponse] = []
    assigned_forms: List[AssignedFormResponse] = []
    requests: List[ServiceRequestSummary] = []
    counts: ServiceCounts
    created_at: datetime
    updated_at: datetime


# ============= Progress Schemas =============
class TaskStatusUpdate(BaseModel):
    status: TaskStatus
    completed_at: Optional[datetime] = None

    utc_dates = field_validator("completed_at")(naive_utc)


class BatchTaskUpdate(TaskStatusUpdate):
    id: UUID


class MilestoneUpdate(BaseModel):
    achieved: bool
    achieved_at: Optional[datetime] = None

    utc_dates = field_validator("achieved_at")(naive_utc)


class BatchMilestoneUpdate(MilestoneUpdate):
    id: UUID


class BatchUpdateRequest(BaseModel):
    tasks: List[BatchTaskUpdate] = []
    milestones: List[BatchMilestoneUpdate] = []


class BatchUpdateResponse(BaseModel):
    tasks: List[ServiceTaskResponse]
    milestones: List[ServiceMilestoneResponse]
    service: ServiceResponse


# ============= Service Request Schemas =============
class ServiceRequestCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=500)
    description: Optional[str] = None
    priority: RequestPriority = RequestPriority.MEDIUM
    service_id: Optional[str] = None

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Title cannot be empty or whitespace")
        return v.strip()


class ServiceRequestUpdate(BaseModel):
    status: RequestStatus


class ServiceRequestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    description: Optional[str] = None
    status: RequestStatus
    priority: RequestPriority
    client_id: UUID
    service_id: Optional[UUID] = None
    client: UserSummary
    service: Optional[NamedRef] = None
    resolved_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


# ============= Form Schemas =============
class FormTemplateCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    fields: FormDocument
    is_template: bool = True


class FormTemplateUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    fields: Optional[FormDocument] = None
    is_template: Optional[bool] = None


class FormTemplateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    description: Optional[str] = None
    fields: Dict[str, Any]
    is_template: bool
    submission_count: Optional[int] = None
    assignment_count: Optional[int] = None
    created_at: datetime
    updated_at: datetime


class AssignedFormDetail(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    required: bool
    form: FormTemplateResponse
    service: NamedRef
    submitted: bool = False


class FormSubmissionCreate(BaseModel):
    form_id: UUID
    data: Dict[str, Any]


class FormSubmissionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    form_id: UUID
    user_id: UUID
    data: Dict[str, Any]
    submitted_at: datetime
    form: NamedRef
    user: UserSummary


# ============= Dashboard Schemas =============
class DashboardCounts(BaseModel):
    total: int
    active: Optional[int] = None
    open: Optional[int] = None
    urgent: Optional[int] = None
    pending: Optional[int] = None
    upcoming: Optional[int] = None
    achieved: Optional[int] = None


class DashboardResponse(BaseModel):
    services: DashboardCounts
    requests: DashboardCounts
    forms: DashboardCounts
    milestones: DashboardCounts
    recent_activity: List[ActivityItem]
