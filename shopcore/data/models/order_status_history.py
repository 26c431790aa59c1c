from datetime import datetime, timezone

from sqlalchemy import Column, Integer, ForeignKey, String, DateTime, JSON, Text, event
from sqlalchemy.orm import relationship

from shopcore.data.database import Base
from shopcore.domain.errors import DomainInvariantError


class OrderStatusHistoryModel(Base):
    __tablename__ = "order_status_history"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    from_status = Column(String(20), nullable=True)  # null dla wpisu tworzacego
    to_status = Column(String(20), nullable=False)
    changed_by_id = Column(Integer, nullable=True)
    changed_by_type = Column(String(20), nullable=False, default="system")
    reason = Column(Text, nullable=True)
    extra = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    order = relationship("OrderModel", back_populates="status_history")


@event.listens_for(OrderStatusHistoryModel, "before_update")
def _append_only(mapper, connection, target):
    raise DomainInvariantError("Order status history is append-only", history_id=target.id)
