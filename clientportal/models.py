import enum
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Enum, Text, Integer, JSON, Table, UniqueConstraint, Index
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid
from clientportal.db import Base

# JSONB on Postgres, plain JSON elsewhere (SQLite in tests)
JSONDocument = JSON().with_variant(JSONB(), "postgresql")


class Role(str, enum.Enum):
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    CLIENT = "CLIENT"


class ServiceStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class TaskStatus(str, enum.Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class RequestStatus(str, enum.Enum):
    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"


class RequestPriority(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


service_template_forms = Table(
    "service_template_forms",
    Base.metadata,
    Column("template_id", UUID(as_uuid=True), ForeignKey("service_templates.id", ondelete="CASCADE"), primary_key=True),
    Column("form_id", UUID(as_uuid=True), ForeignKey("form_templates.id", ondelete="CASCADE"), primary_key=True),
)


class User(Base):
    __tablename__ = "users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    external_id = Column(String(255), unique=True, nullable=False, index=True)
    email = Column(String(255), nullable=False, index=True)
    first_name = Column(String(255), nullable=True)
    last_name = Column(String(255), nullable=True)
    name = Column(String(255), nullable=True)
    role = Column(Enum(Role), default=Role.CLIENT, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    client_profile = relationship("ClientProfile", back_populates="user", uselist=False, cascade="all, delete-orphan")
    services = relationship("Service", back_populates="client", foreign_keys="Service.client_id")
    service_requests = relationship("ServiceRequest", back_populates="client", foreign_keys="ServiceRequest.client_id")
    form_submissions = relationship("FormSubmission", back_populates="user")

    @property
    def display_name(self) -> str:
        full = " ".join(part for part in (self.first_name, self.last_name) if part).strip()
        return full or self.name or self.email


class ClientProfile(Base):
    __tablename__ = "client_profiles"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    business_name = Column(String(255), nullable=True)
    phone_number = Column(String(50), nullable=True)
    work_hours = Column(String(255), nullable=True)
    logo_url = Column(String(1000), nullable=True)
    custom_font = Column(String(255), nullable=True)
    brand_color1 = Column(String(32), nullable=True)
    brand_color2 = Column(String(32), nullable=True)
    brand_color3 = Column(String(32), nullable=True)
    brand_color4 = Column(String(32), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    user = relationship("User", back_populates="client_profile")
    social_media_profiles = relationship(
        "SocialMediaProfile", back_populates="profile", cascade="all, delete-orphan", order_by="SocialMediaProfile.platform"
    )


class SocialMediaProfile(Base):
    __tablename__ = "social_media_profiles"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    profile_id = Column(UUID(as_uuid=True), ForeignKey("client_profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    platform = Column(String(100), nullable=False)
    url = Column(String(1000), nullable=False)

    profile = relationship("ClientProfile", back_populates="social_media_profiles")


class ServiceTemplate(Base):
    __tablename__ = "service_templates"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    tasks = relationship("TemplateTask", back_populates="template", cascade="all, delete-orphan", order_by="TemplateTask.order")
    milestones = relationship(
        "TemplateMilestone", back_populates="template", cascade="all, delete-orphan", order_by="TemplateMilestone.order"
    )
    required_forms = relationship("FormTemplate", secondary=service_template_forms, back_populates="templates")
    services = relationship("Service", back_populates="template")


class TemplateTask(Base):
    __tablename__ = "template_tasks"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    template_id = Column(UUID(as_uuid=True), ForeignKey("service_templates.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    order = Column(Integer, default=0, nullable=False)

    template = relationship("ServiceTemplate", back_populates="tasks")


class TemplateMilestone(Base):
    __tablename__ = "template_milestones"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    template_id = Column(UUID(as_uuid=True), ForeignKey("service_templates.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    order = Column(Integer, default=0, nullable=False)

    template = relationship("ServiceTemplate", back_populates="milestones")


class Service(Base):
    __tablename__ = "services"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    template_id = Column(UUID(as_uuid=True), ForeignKey("service_templates.id"), nullable=False, index=True)
    client_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    status = Column(Enum(ServiceStatus), default=ServiceStatus.ACTIVE, nullable=False)
    start_date = Column(DateTime, default=datetime.utcnow, nullable=False)
    end_date = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    template = relationship("ServiceTemplate", back_populates="services")
    client = relationship("User", back_populates="services", foreign_keys=[client_id])
    tasks = relationship("ServiceTask", back_populates="service", order_by="ServiceTask.order")
    milestones = relationship("ServiceMilestone", back_populates="service", order_by="ServiceMilestone.order")
    assigned_forms = relationship("AssignedForm", back_populates="service")
    requests = relationship("ServiceRequest", back_populates="service")


class ServiceTask(Base):
    __tablename__ = "service_tasks"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    service_id = Column(UUID(as_uuid=True), ForeignKey("services.id"), nullable=False, index=True)
    # Snapshot source; nulled when the template row is replaced
    template_task_id = Column(UUID(as_uuid=True), ForeignKey("template_tasks.id", ondelete="SET NULL"), nullable=True)
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    order = Column(Integer, default=0, nullable=False)
    status = Column(Enum(TaskStatus), default=TaskStatus.PENDING, nullable=False)
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    service = relationship("Service", back_populates="tasks")


class ServiceMilestone(Base):
    __tablename__ = "service_milestones"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    service_id = Column(UUID(as_uuid=True), ForeignKey("services.id"), nullable=False, index=True)
    template_milestone_id = Column(UUID(as_uuid=True), ForeignKey("template_milestones.id", ondelete="SET NULL"), nullable=True)
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    order = Column(Integer, default=0, nullable=False)
    achieved = Column(Boolean, default=False, nullable=False)
    achieved_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    service = relationship("Service", back_populates="milestones")


class FormTemplate(Base):
    __tablename__ = "form_templates"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    fields = Column(JSONDocument, nullable=False, default=dict)
    is_template = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    templates = relationship("ServiceTemplate", secondary=service_template_forms, back_populates="required_forms")
    assignments = relationship("AssignedForm", back_populates="form")
    submissions = relationship("FormSubmission", back_populates="form")


class AssignedForm(Base):
    __tablename__ = "assigned_forms"
    __table_args__ = (UniqueConstraint("service_id", "form_id", name="uq_assigned_form_service_form"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    service_id = Column(UUID(as_uuid=True), ForeignKey("services.id"), nullable=False, index=True)
    form_id = Column(UUID(as_uuid=True), ForeignKey("form_templates.id"), nullable=False, index=True)
    required = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    service = relationship("Service", back_populates="assigned_forms")
    form = relationship("FormTemplate", back_populates="assignments")


class FormSubmission(Base):
    __tablename__ = "form_submissions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    form_id = Column(UUID(as_uuid=True), ForeignKey("form_templates.id"), nullable=False, index=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    data = Column(JSONDocument, nullable=False, default=dict)
    submitted_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    form = relationship("FormTemplate", back_populates="submissions")
    user = relationship("User", back_populates="form_submissions")


class ServiceRequest(Base):
    __tablename__ = "service_requests"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(Enum(RequestStatus), default=RequestStatus.OPEN, nullable=False)
    priority = Column(Enum(RequestPriority), default=RequestPriority.MEDIUM, nullable=False)
    client_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    service_id = Column(UUID(as_uuid=True), ForeignKey("services.id"), nullable=True, index=True)
    resolved_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    client = relationship("User", back_populates="service_requests", foreign_keys=[client_id])
    service = relationship("Service", back_populates="requests")


Index("ix_service_requests_status_priority", ServiceRequest.status, ServiceRequest.priority)
