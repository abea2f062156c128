from sqlalchemy import Column, Date, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import relationship

from comanda.core.database import Base
from comanda.core.timeutils import utcnow

TICKET_FLOW = ("queue", "preparing", "ready", "delivered")


class KitchenTicket(Base):
    __tablename__ = "kitchen_tickets"
    __table_args__ = (
        UniqueConstraint("order_id", name="uq_kitchen_tickets_order"),
        UniqueConstraint("venue_id", "business_date", "ticket_number", name="uq_kitchen_tickets_venue_day_number"),
        Index("ix_kitchen_tickets_venue_status", "venue_id", "status"),
    )

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False)
    venue_id = Column(Integer, ForeignKey("venues.id"), nullable=False)

    ticket_number = Column(Integer, nullable=False)
    business_date = Column(Date, nullable=False)
    status = Column(String(20), nullable=False, default="queue")  # queue / preparing / ready / delivered

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    started_at = Column(DateTime(timezone=True), nullable=True)
    ready_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)

    order = relationship("Order", back_populates="kitchen_ticket")


class KitchenTicketSequence(Base):
    """Contador de senhas por estabelecimento e dia."""

    __tablename__ = "kitchen_ticket_sequences"

    venue_id = Column(Integer, ForeignKey("venues.id"), primary_key=True)
    business_date = Column(Date, primary_key=True)
    last_number = Column(Integer, nullable=False, default=0)
