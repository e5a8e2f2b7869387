import enum

from sqlalchemy import Column, DateTime, Enum, Integer, String, Text
from sqlalchemy.sql import func

from app.core.database import Base


class UserRole(str, enum.Enum):
    USER = "user"
    ADMIN = "admin"


class User(Base):
    __tablename__ = "users"

    # Primary key
    id = Column(Integer, primary_key=True, index=True)

    # Identity provider subject
    external_id = Column(String(255), unique=True, nullable=False, index=True)

    # Profile information
    email = Column(String(255), nullable=True)
    full_name = Column(String(255), nullable=True)  # NULL until profile completed
    avatar_url = Column(Text, nullable=True)

    role = Column(
        Enum(
            UserRole,
            name="user_role",
            values_callable=lambda roles: [r.value for r in roles],
        ),
        default=UserRole.USER,
        nullable=False,
    )

    # Timestamps
    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def has_completed_profile(self) -> bool:
        return bool(self.full_name and self.full_name.strip())

    @property
    def display_name(self) -> str:
        return self.full_name or self.email or f"User {self.id}"

    def __repr__(self):
        return f"<User(id={self.id}, external_id='{self.external_id}', role={self.role})>"
