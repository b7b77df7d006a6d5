from sqlalchemy import Column, DateTime, ForeignKey, Index, JSON, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.models.base import Base


class BuyerHistory(Base):
    """Append-only audit trail of buyer changes.

    ``diff`` maps each changed field to ``{"old": ..., "new": ...}``.
    The foreign key has no ON DELETE CASCADE: deleting a buyer removes
    its history rows explicitly first, in the same transaction.
    """

    __tablename__ = "buyer_history"
    id = Column(UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid())
    buyer_id = Column(UUID(as_uuid=True), ForeignKey("buyers.id"), nullable=False)
    changed_by = Column(String(64), nullable=False)
    changed_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    diff = Column(JSON, nullable=False)

    buyer = relationship("Buyer", back_populates="history")

    __table_args__ = (
        Index("buyer_history_buyer_idx", "buyer_id"),
        Index("buyer_history_changed_at_idx", "changed_at"),
    )
