from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, Numeric, String, func
from sqlalchemy.orm import relationship

from comanda.core.database import Base
from comanda.core.timeutils import utcnow

PAYMENT_METHODS = ("cash", "card", "pix")


class Payment(Base):
    __tablename__ = "payments"
    __table_args__ = (CheckConstraint("amount > 0", name="ck_payments_amount_positive"),)

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id"), index=True, nullable=False)

    method = Column(String(10), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    received_by = Column(Integer, nullable=False)
    received_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    order = relationship("Order", back_populates="payments")
