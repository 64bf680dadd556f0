# taskflow/db/models/project.py
"""Projects, their members and pending invitations"""
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Index, func
from sqlalchemy.orm import relationship

from taskflow.db.models.base import Base, TimestampMixin, UUIDMixin, StringEnum
from taskflow.db.models.enums import ProjectStatus, MemberRole, InvitationStatus


class Project(Base, UUIDMixin, TimestampMixin):
    """A board of tasks shared by its members"""
    __tablename__ = "projects"

    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(StringEnum(ProjectStatus), nullable=False, default=ProjectStatus.PLANNING)
    start_date = Column(DateTime(timezone=True), nullable=True)
    end_date = Column(DateTime(timezone=True), nullable=True)

    creator_id = Column(String(64), ForeignKey("users.id"), nullable=False)

    # Relationships
    creator = relationship("User", foreign_keys=[creator_id])
    members = relationship("ProjectMember", back_populates="project", cascade="all, delete-orphan", passive_deletes=True)
    tasks = relationship("Task", back_populates="project", cascade="all, delete-orphan", passive_deletes=True)
    invitations = relationship("Invitation", back_populates="project", cascade="all, delete-orphan", passive_deletes=True)

    __table_args__ = (
        Index('idx_project_creator', 'creator_id'),
    )

    def __repr__(self):
        return f"<Project name={self.name} status={self.status}>"


class ProjectMember(Base):
    """Membership of a user in a project with a role"""
    __tablename__ = "project_members"

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    role = Column(StringEnum(MemberRole), nullable=False, default=MemberRole.MEMBER)
    joined_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Relationships
    project = relationship("Project", back_populates="members")
    user = relationship("User", back_populates="memberships")

    __table_args__ = (
        Index('idx_project_member_composite', 'project_id', 'user_id', unique=True),
        Index('idx_project_member_user', 'user_id'),
    )

    def __repr__(self):
        return f"<ProjectMember project_id={self.project_id} user_id={self.user_id} role={self.role}>"


class Invitation(Base, UUIDMixin):
    """Email invitation to join a project, redeemed with its token"""
    __tablename__ = "invitations"

    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    email = Column(String(255), nullable=False, index=True)
    role = Column(StringEnum(MemberRole), nullable=False, default=MemberRole.MEMBER)
    token = Column(String(64), unique=True, nullable=False, index=True)
    status = Column(StringEnum(InvitationStatus), nullable=False, default=InvitationStatus.PENDING)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Relationships
    project = relationship("Project", back_populates="invitations")

    def __repr__(self):
        return f"<Invitation email={self.email} status={self.status}>"
