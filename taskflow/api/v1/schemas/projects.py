# taskflow/api/v1/schemas/projects.py
from pydantic import BaseModel, Field, UUID4, EmailStr, model_validator
from typing import Optional
from datetime import datetime

from taskflow.db.models.enums import ProjectStatus, MemberRole, InvitationStatus


class ProjectBase(BaseModel):
    """Base schema for project"""
    name: str = Field(..., min_length=1, max_length=255, description="Project name")
    description: Optional[str] = Field(None, description="Project description")
    start_date: Optional[datetime] = Field(None, description="Planned start")
    end_date: Optional[datetime] = Field(None, description="Planned end")

    @model_validator(mode="after")
    def check_dates(self):
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class ProjectCreate(ProjectBase):
    """Schema for creating a project"""
    pass


class ProjectUpdate(BaseModel):
    """Schema for updating a project"""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    status: Optional[ProjectStatus] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class ProjectResponse(ProjectBase):
    """Schema for project response with UUID"""
    id: UUID4 = Field(..., description="Project UUID")
    status: ProjectStatus
    creator_id: str
    role: Optional[MemberRole] = Field(None, description="Current user's role in the project")
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, project, role: Optional[MemberRole] = None):
        """Convert Project model to API response using UUID"""
        return cls(
            id=project.uuid,
            name=project.name,
            description=project.description,
            status=project.status,
            start_date=project.start_date,
            end_date=project.end_date,
            creator_id=project.creator_id,
            role=role,
            created_at=project.created_at,
            updated_at=project.updated_at
        )


class ProjectMemberResponse(BaseModel):
    """Member of a project with profile data"""
    user_id: str
    name: Optional[str] = None
    email: str
    image: Optional[str] = None
    role: MemberRole
    joined_at: datetime

    @classmethod
    def from_model(cls, member):
        return cls(
            user_id=member.user.id,
            name=member.user.name,
            email=member.user.email,
            image=member.user.image,
            role=member.role,
            joined_at=member.joined_at
        )


class InvitationCreate(BaseModel):
    """Schema for inviting a user by email"""
    email: EmailStr = Field(..., description="Email of the person to invite")
    role: MemberRole = Field(MemberRole.MEMBER, description="Role granted on acceptance")


class InvitationResponse(BaseModel):
    """Invitation with its redeem token"""
    id: UUID4
    project_id: UUID4
    email: str
    role: MemberRole
    token: str
    status: InvitationStatus
    expires_at: datetime

    @classmethod
    def from_model(cls, invitation, project_uuid):
        return cls(
            id=invitation.uuid,
            project_id=project_uuid,
            email=invitation.email,
            role=invitation.role,
            token=invitation.token,
            status=invitation.status,
            expires_at=invitation.expires_at
        )
