import uuid
from sqlalchemy import Column, Integer, DateTime, Enum, Uuid, func
from taskflow.db.database import Base


def StringEnum(enum_cls, length: int = 32):
    """Store an enum by its value ("In Progress"), not its member name"""
    return Enum(
        enum_cls,
        values_callable=lambda members: [member.value for member in members],
        native_enum=False,
        validate_strings=True,
        length=length,
    )


class TimestampMixin:
    """Mixin for created_at and updated_at timestamps"""
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), default=func.now(), nullable=False)


class UUIDMixin:
    """Mixin for public UUID fields with internal ID"""
    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(Uuid(as_uuid=True), unique=True, default=uuid.uuid4, index=True, nullable=False)
