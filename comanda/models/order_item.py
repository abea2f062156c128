from sqlalchemy import CheckConstraint, Column, ForeignKey, Integer, Numeric, String, Text

from sqlalchemy.orm import relationship

from comanda.core.database import Base


class OrderItem(Base):
    __tablename__ = "order_items"
    __table_args__ = (CheckConstraint("qty > 0", name="ck_order_items_qty_positive"),)

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), index=True, nullable=False)
    # Produto pode ser removido do catálogo depois; o histórico fica no snapshot abaixo
    product_id = Column(Integer, ForeignKey("products.id", ondelete="SET NULL"), nullable=True)

    product_name = Column(String, nullable=False)
    qty = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    note = Column(Text, nullable=True)

    order = relationship("Order", back_populates="items")

    @property
    def subtotal(self):
        return self.unit_price * self.qty
