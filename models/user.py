from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Enum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from utils.database import Base
import enum

class UserRole(str, enum.Enum):
    SUPERADMIN = "superadmin"   # Operator of the platform
    OWNER = "owner"             # Owner of a restaurant
    MANAGER = "manager"         # Staff: counter payments, closing sessions
    WAITER = "waiter"           # Staff: table service
    KITCHEN = "kitchen"         # Staff: order preparation

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    username = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    role = Column(Enum(UserRole, name="userrole"), nullable=False)
    is_active = Column(Boolean, default=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    restaurant = relationship("Restaurant", back_populates="users")

    @property
    def requires_restaurant(self) -> bool:
        """Staff roles must be attached to a restaurant."""
        return self.role in [UserRole.MANAGER, UserRole.WAITER, UserRole.KITCHEN]
