"""
SQLAlchemy Database Models

Relational schema for the restaurant platform:
- Profiles (customers, staff, admins) keyed by the auth provider id
- Menu catalog (categories, products)
- Orders with price-snapshot line items
- Payment methods and payment transactions
- Dining tables and reservations
- Delivery drivers, driver locations and delivery estimates

Author: Khalil Bannouri
Version: 1.0.0
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    Time,
)
from sqlalchemy.orm import relationship

from gestro.database import Base


def generate_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Some drivers hand back naive timestamps; those are stored as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# =============================================================================
# STATUS VOCABULARY
# =============================================================================

class OrderStatus(str, enum.Enum):
    """Order status workflow."""
    PENDING = "pending"
    PREPARING = "preparing"
    READY = "ready"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, enum.Enum):
    """Outcome of a payment transaction, mirrored on the order."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    REFUNDED = "refunded"
    CANCELLED = "cancelled"


class PaymentMethodType(str, enum.Enum):
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    MERCADOPAGO = "mercadopago"
    CASH = "cash"
    TRANSFER = "transfer"


class ReservationStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class TableStatus(str, enum.Enum):
    AVAILABLE = "available"
    OCCUPIED = "occupied"
    RESERVED = "reserved"
    MAINTENANCE = "maintenance"


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    STAFF = "staff"
    CUSTOMER = "customer"


# Reservations in these states block a table for their time window
BLOCKING_RESERVATION_STATUSES = (ReservationStatus.PENDING, ReservationStatus.CONFIRMED)


def row_to_dict(instance) -> dict:
    """
    Flatten a mapped instance into a plain column dict.

    Enum members are reduced to their values so the result can travel
    through the change feed and into JSON.
    """
    data = {}
    for column in instance.__table__.columns:
        value = getattr(instance, column.key)
        if isinstance(value, enum.Enum):
            value = value.value
        data[column.key] = value
    return data


# =============================================================================
# PROFILES
# =============================================================================

class Profile(Base):
    """User profile keyed by the auth provider's user id."""
    __tablename__ = "profiles"

    id = Column(String(64), primary_key=True)
    email = Column(String(255), nullable=True, index=True)
    name = Column(String(120), nullable=True)
    phone = Column(String(20), nullable=True)
    role = Column(Enum(UserRole), default=UserRole.CUSTOMER, nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    @property
    def is_staff(self) -> bool:
        return self.role in (UserRole.ADMIN, UserRole.STAFF)

    def __repr__(self):
        return f"<Profile {self.id} - {self.email} - {self.role.value}>"


# =============================================================================
# MENU CATALOG
# =============================================================================

class Category(Base):
    __tablename__ = "categories"

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    image_url = Column(String(500), nullable=True)
    order_position = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Category {self.name}>"


class Product(Base):
    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=generate_id)
    category_id = Column(String(36), ForeignKey("categories.id", ondelete="SET NULL"), nullable=True, index=True)
    name = Column(String(150), nullable=False, index=True)
    description = Column(Text, nullable=True)
    price = Column(Float, nullable=False)
    image_url = Column(String(500), nullable=True)
    is_available = Column(Boolean, default=True, nullable=False)
    alcohol_percentage = Column(Float, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    category = relationship("Category", lazy="selectin")

    def __repr__(self):
        return f"<Product {self.name} - {self.price}>"


# =============================================================================
# ORDERS
# =============================================================================

class Order(Base):
    """
    Customer order.

    total_amount is derived from the line items by the repository inside
    the same transaction that writes them; callers never set it.
    """
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=generate_id)
    customer_id = Column(String(64), ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True, index=True)

    status = Column(
        Enum(OrderStatus),
        default=OrderStatus.PENDING,
        nullable=False,
        index=True
    )
    total_amount = Column(Float, default=0.0, nullable=False)
    notes = Column(Text, nullable=True)
    table_number = Column(Integer, nullable=True)

    # =========================================================================
    # PAYMENT INFO
    # =========================================================================
    payment_transaction_id = Column(String(36), nullable=True)
    payment_status = Column(Enum(PaymentStatus), nullable=True)

    # =========================================================================
    # DELIVERY
    # =========================================================================
    driver_id = Column(String(36), ForeignKey("delivery_drivers.id", ondelete="SET NULL"), nullable=True)

    # =========================================================================
    # TIMESTAMPS
    # =========================================================================
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    customer = relationship("Profile", lazy="selectin")

    def __repr__(self):
        return f"<Order {self.id} - {self.status.value} - {self.total_amount}>"


class OrderItem(Base):
    __tablename__ = "order_items"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
    )

    id = Column(String(36), primary_key=True, default=generate_id)
    order_id = Column(String(36), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(String(36), ForeignKey("products.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    # Price at the time of ordering, never re-read from the product
    unit_price = Column(Float, nullable=False)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)

    order = relationship("Order", back_populates="items")
    product = relationship("Product", lazy="selectin")

    @property
    def line_total(self) -> float:
        return round(self.quantity * self.unit_price, 2)

    def __repr__(self):
        return f"<OrderItem {self.product_id} x{self.quantity} @ {self.unit_price}>"


# =============================================================================
# PAYMENTS
# =============================================================================

class PaymentMethod(Base):
    """Saved payment method (masked card data only)."""
    __tablename__ = "payment_methods"

    id = Column(String(36), primary_key=True, default=generate_id)
    user_id = Column(String(64), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(Enum(PaymentMethodType), nullable=False)
    card_brand = Column(String(30), nullable=True)
    last_four = Column(String(4), nullable=True)
    expiry_month = Column(Integer, nullable=True)
    expiry_year = Column(Integer, nullable=True)
    holder_name = Column(String(120), nullable=True)
    is_default = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<PaymentMethod {self.type.value} ****{self.last_four or ''} default={self.is_default}>"


class PaymentTransaction(Base):
    __tablename__ = "payment_transactions"

    id = Column(String(36), primary_key=True, default=generate_id)
    order_id = Column(String(36), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    payment_method_id = Column(String(36), ForeignKey("payment_methods.id", ondelete="SET NULL"), nullable=True)
    amount = Column(Float, nullable=False)
    status = Column(Enum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False, index=True)

    provider_transaction_id = Column(String(100), nullable=True, index=True)
    provider_status = Column(String(50), nullable=True)
    provider_response = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<PaymentTransaction {self.id} - {self.status.value} - {self.amount}>"


# =============================================================================
# TABLES & RESERVATIONS
# =============================================================================

class Table(Base):
    __tablename__ = "tables"

    id = Column(String(36), primary_key=True, default=generate_id)
    table_number = Column(Integer, nullable=False, unique=True, index=True)
    capacity = Column(Integer, nullable=False)
    status = Column(Enum(TableStatus), default=TableStatus.AVAILABLE, nullable=False, index=True)
    location = Column(String(100), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Table #{self.table_number} ({self.capacity}) - {self.status.value}>"


class Reservation(Base):
    __tablename__ = "reservations"

    id = Column(String(36), primary_key=True, default=generate_id)
    table_id = Column(String(36), ForeignKey("tables.id", ondelete="CASCADE"), nullable=False, index=True)
    customer_id = Column(String(64), ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True, index=True)
    reservation_date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    party_size = Column(Integer, nullable=False)
    status = Column(
        Enum(ReservationStatus),
        default=ReservationStatus.PENDING,
        nullable=False,
        index=True
    )
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    table = relationship("Table", lazy="selectin")

    def __repr__(self):
        return (
            f"<Reservation {self.id} - {self.reservation_date} "
            f"{self.start_time}-{self.end_time} - {self.status.value}>"
        )


# =============================================================================
# DELIVERY
# =============================================================================

class DeliveryDriver(Base):
    __tablename__ = "delivery_drivers"

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(120), nullable=False)
    phone = Column(String(20), nullable=True)
    vehicle_type = Column(String(30), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow)

    def __repr__(self):
        return f"<DeliveryDriver {self.name}>"


class DriverLocation(Base):
    __tablename__ = "driver_locations"

    id = Column(String(36), primary_key=True, default=generate_id)
    driver_id = Column(String(36), ForeignKey("delivery_drivers.id", ondelete="CASCADE"), nullable=False, index=True)
    order_id = Column(String(36), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    accuracy = Column(Float, nullable=True)
    heading = Column(Float, nullable=True)
    speed = Column(Float, nullable=True)
    timestamp = Column(DateTime(timezone=True), default=utcnow, index=True)

    def __repr__(self):
        return f"<DriverLocation {self.driver_id} ({self.latitude}, {self.longitude})>"


class DeliveryEstimate(Base):
    __tablename__ = "delivery_estimates"

    id = Column(String(36), primary_key=True, default=generate_id)
    order_id = Column(String(36), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, unique=True)
    estimated_delivery_time = Column(DateTime(timezone=True), nullable=True)
    distance_km = Column(Float, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<DeliveryEstimate {self.order_id} - {self.estimated_delivery_time}>"
