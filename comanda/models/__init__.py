from comanda.models.venue import Venue
from comanda.models.product import Product
from comanda.models.order import Order
from comanda.models.order_item import OrderItem
from comanda.models.payment import Payment
from comanda.models.kitchen_ticket import KitchenTicket, KitchenTicketSequence
from comanda.models.idempotency_key import IdempotencyKey
from comanda.models.audit_log import AuditLog
