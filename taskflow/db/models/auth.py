# taskflow/db/models/auth.py
"""Users as known to the external auth provider"""
from sqlalchemy import Column, String, Index
from sqlalchemy.orm import relationship

from taskflow.db.models.base import Base, TimestampMixin


class User(Base, TimestampMixin):
    """Mirror of the auth provider's user row; the id is the provider's subject"""
    __tablename__ = "users"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    image = Column(String(1024), nullable=True)

    # Relationships
    memberships = relationship("ProjectMember", back_populates="user", cascade="all, delete-orphan")

    __table_args__ = (
        Index('idx_user_created_at', 'created_at'),
    )

    def __repr__(self):
        return f"<User email={self.email}>"
