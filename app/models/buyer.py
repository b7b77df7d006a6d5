from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Column,
    DateTime,
    Index,
    JSON,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.models.base import Base

from app.core.constants import (
    BHK_REQUIRED_PROPERTY_TYPES,
    BHK_VALUES,
    BUYER_STATUSES,
    CITIES,
    PROPERTY_TYPES,
    PURPOSES,
    SOURCES,
    TIMELINES,
    enum_check_clause,
)

_RESIDENTIAL_TYPES = ", ".join(repr(t) for t in sorted(BHK_REQUIRED_PROPERTY_TYPES))


class Buyer(Base):
    """Prospective property buyer or renter tracked by an agent.

    Enum columns store their literal display values (``"Apartment"``,
    ``"0-3m"``) and are guarded by CHECK constraints derived from the
    same constants the validator uses.  ``tags`` is an ordered JSON
    array.  ``owner_id`` references a user managed by the external
    session provider, so there is no foreign key to a users table.
    """

    __tablename__ = "buyers"
    id = Column(UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid())
    full_name = Column(String(80), nullable=False)
    email = Column(String(255))
    phone = Column(String(15), nullable=False)
    city = Column(String(20), nullable=False)
    property_type = Column(String(20), nullable=False)
    bhk = Column(String(10))
    purpose = Column(String(10), nullable=False)
    budget_min = Column(BigInteger)
    budget_max = Column(BigInteger)
    timeline = Column(String(20), nullable=False)
    source = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False, server_default="New")
    notes = Column(Text)
    tags = Column(JSON, nullable=False, default=list)
    owner_id = Column(String(64), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    history = relationship("BuyerHistory", back_populates="buyer")

    __table_args__ = (
        Index("buyers_owner_idx", "owner_id"),
        Index("buyers_status_idx", "status"),
        Index("buyers_updated_at_idx", "updated_at"),
        Index("buyers_city_idx", "city"),
        Index("buyers_property_type_idx", "property_type"),
        CheckConstraint(enum_check_clause("city", CITIES), name="ck_buyer_city"),
        CheckConstraint(
            enum_check_clause("property_type", PROPERTY_TYPES),
            name="ck_buyer_property_type",
        ),
        CheckConstraint(
            enum_check_clause("bhk", BHK_VALUES, nullable=True), name="ck_buyer_bhk"
        ),
        CheckConstraint(enum_check_clause("purpose", PURPOSES), name="ck_buyer_purpose"),
        CheckConstraint(
            enum_check_clause("timeline", TIMELINES), name="ck_buyer_timeline"
        ),
        CheckConstraint(enum_check_clause("source", SOURCES), name="ck_buyer_source"),
        CheckConstraint(
            enum_check_clause("status", BUYER_STATUSES), name="ck_buyer_status"
        ),
        CheckConstraint(
            f"(property_type IN ({_RESIDENTIAL_TYPES})) = (bhk IS NOT NULL)",
            name="ck_buyer_bhk_iff_residential",
        ),
        CheckConstraint(
            "budget_min IS NULL OR budget_max IS NULL OR budget_max >= budget_min",
            name="ck_buyer_budget_range",
        ),
    )
