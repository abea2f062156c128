from decimal import Decimal

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, Numeric, String, func
from sqlalchemy.orm import relationship

from comanda.core.database import Base
from comanda.core.timeutils import utcnow

ORDER_STATUSES = ("open", "closed", "canceled")
PAYMENT_STATUSES = ("unpaid", "partial", "paid")


class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (
        Index("ix_orders_venue_created", "venue_id", "created_at"),
        CheckConstraint("total_amount >= 0", name="ck_orders_total_non_negative"),
        CheckConstraint("paid_amount >= 0", name="ck_orders_paid_non_negative"),
    )

    id = Column(Integer, primary_key=True)
    venue_id = Column(Integer, ForeignKey("venues.id"), index=True, nullable=False)

    # Identificação da comanda (mesa, cartão, etc.)
    code = Column(String(50), nullable=True)
    customer_name = Column(String(120), nullable=True)

    status = Column(String(20), default="open", nullable=False)  # open / closed / canceled
    payment_status = Column(String(20), default="unpaid", nullable=False)  # unpaid / partial / paid

    # Preços congelados no momento da criação
    total_amount = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    paid_amount = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))

    created_by = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    closed_at = Column(DateTime(timezone=True), nullable=True)

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )
    payments = relationship(
        "Payment",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="Payment.id",
    )
    kitchen_ticket = relationship("KitchenTicket", back_populates="order", uselist=False)
