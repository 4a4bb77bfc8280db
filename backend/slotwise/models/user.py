# backend/slotwise/models/user.py
"""
Directory models: users, businesses and services.

These tables belong to the account/business directory. The booking core
only reads them to resolve a worker's business, a service's duration and
price, and an actor's role.
"""

import logging
from typing import Any

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    ForeignKey,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..core.enums import RoleName
from ..database import Base
from .types import UTCDateTime

logger = logging.getLogger(__name__)


class User(Base):
    """
    Platform user.

    Workers are users with role WORKER and a ``business_id``; clients,
    owners and admins are not tied to a business through this column.
    """

    __tablename__ = "users"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=True)
    role = Column(String(20), nullable=False, default=RoleName.CLIENT.value)
    business_id = Column(String(26), ForeignKey("businesses.id"), nullable=True, index=True)
    created_at = Column(UTCDateTime(), server_default=func.now())

    business = relationship("Business", foreign_keys=[business_id], back_populates="workers")

    __table_args__ = (
        CheckConstraint(
            "role IN ('ADMIN', 'BUSINESS_OWNER', 'WORKER', 'CLIENT')",
            name="ck_users_role",
        ),
    )

    def __repr__(self) -> str:
        return f"<User {self.id}: {self.email} role={self.role}>"


class Business(Base):
    """A tenant: owns services, workers and bookings."""

    __tablename__ = "businesses"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    name = Column(String(255), nullable=False)
    # Plain column: users.business_id already references businesses.
    owner_id = Column(String(26), nullable=False, unique=True, index=True)
    timezone = Column(String(64), nullable=False, default="UTC")
    requires_prepayment = Column(Boolean, nullable=False, default=True)
    created_at = Column(UTCDateTime(), server_default=func.now())

    workers = relationship(
        "User", foreign_keys="User.business_id", back_populates="business"
    )
    services = relationship("Service", back_populates="business")

    def __repr__(self) -> str:
        return f"<Business {self.id}: {self.name} owner={self.owner_id}>"


class Service(Base):
    """A bookable service with a fixed duration and price."""

    __tablename__ = "services"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    business_id = Column(String(26), ForeignKey("businesses.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    business = relationship("Business", back_populates="services")

    __table_args__ = (
        CheckConstraint("duration_minutes >= 5", name="check_service_duration_min"),
        CheckConstraint("price >= 0", name="check_service_price_non_negative"),
    )

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        if self.is_active is None:
            self.is_active = True

    def __repr__(self) -> str:
        return f"<Service {self.id}: {self.name} {self.duration_minutes}min price={self.price}>"
