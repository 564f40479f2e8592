from sqlalchemy import Column, String, DateTime, Integer, CheckConstraint
from sqlalchemy.sql import func
from library_backend.database import Base
from library_backend.models.enums import UserRole

class User(Base):
    __tablename__ = "users"
    
    user_id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(50), unique=True, nullable=False, index=True)
    password_hash = Column("password", String(255), nullable=False)
    full_name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    role = Column(String(20), default=UserRole.STUDENT.value, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    
    __table_args__ = (
        CheckConstraint("role IN ('ADMIN', 'STUDENT')", name="chk_user_role"),
    )
    
    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value
    
    def to_dict(self):
        return {
            "userId": self.user_id,
            "username": self.username,
            "fullName": self.full_name,
            "email": self.email,
            "role": self.role,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
