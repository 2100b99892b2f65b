"""
Pydantic Schemas for Request/Response Validation

Covers the menu catalog, orders, checkout and payments, tables and
reservations, delivery tracking, staff notifications and the tool
dispatch / assistant endpoints.

Author: Khalil Bannouri
Version: 1.0.0
"""

from datetime import date, datetime, time
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from gestro.models import (
    OrderStatus,
    PaymentMethodType,
    PaymentStatus,
    ReservationStatus,
    TableStatus,
    UserRole,
)


# =============================================================================
# PROFILES
# =============================================================================

class ProfileResponse(BaseModel):
    id: str
    email: Optional[str]
    name: Optional[str]
    phone: Optional[str]
    role: UserRole
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=120)
    phone: Optional[str] = Field(None, max_length=20, examples=["+1-555-987-6543"])


# =============================================================================
# MENU CATALOG
# =============================================================================

class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, examples=["Pizzas"])
    description: Optional[str] = None
    image_url: Optional[str] = None
    order_position: int = Field(default=0, ge=0)


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    image_url: Optional[str] = None
    order_position: Optional[int] = Field(None, ge=0)


class CategoryResponse(BaseModel):
    id: str
    name: str
    description: Optional[str]
    image_url: Optional[str]
    order_position: int

    class Config:
        from_attributes = True


class ProductCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=150, examples=["Pizza Margherita"])
    description: Optional[str] = None
    price: float = Field(..., gt=0, examples=[14.99])
    category_id: Optional[str] = None
    image_url: Optional[str] = None
    is_available: bool = True
    alcohol_percentage: Optional[float] = Field(None, ge=0, le=100)


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=150)
    description: Optional[str] = None
    price: Optional[float] = Field(None, gt=0)
    category_id: Optional[str] = None
    image_url: Optional[str] = None
    is_available: Optional[bool] = None
    alcohol_percentage: Optional[float] = Field(None, ge=0, le=100)


class ProductResponse(BaseModel):
    id: str
    name: str
    description: Optional[str]
    price: float
    category_id: Optional[str]
    image_url: Optional[str]
    is_available: bool
    alcohol_percentage: Optional[float]
    category: Optional[CategoryResponse] = None

    class Config:
        from_attributes = True


class ProductListResponse(BaseModel):
    total: int
    products: List[ProductResponse]


# =============================================================================
# ORDERS
# =============================================================================

class CartItem(BaseModel):
    """Single cart line submitted by a client. Prices come from the catalog."""
    product_id: str = Field(..., examples=["b3c1f0e2-6f1d-4b8e-9a3c-2f7d5e1a9c44"])
    quantity: int = Field(..., ge=1, le=99, examples=[2])
    notes: Optional[str] = Field(None, max_length=200)


class OrderItemCreate(CartItem):
    """Line handed to the repository. unit_price defaults to the product's current price."""
    unit_price: Optional[float] = Field(None, gt=0, examples=[14.99])


class OrderDraft(BaseModel):
    """Order header as handed to the repository."""
    customer_id: Optional[str] = None
    notes: Optional[str] = Field(None, max_length=500)
    table_number: Optional[int] = Field(None, ge=1)
    status: OrderStatus = OrderStatus.PENDING


class OrderCreate(BaseModel):
    """Request schema for creating a new order."""
    items: List[CartItem] = Field(..., min_length=1)
    notes: Optional[str] = Field(None, max_length=500, examples=["No onions please"])
    table_number: Optional[int] = Field(None, ge=1, examples=[4])


class OrderStatusUpdate(BaseModel):
    status: OrderStatus
    force: bool = Field(
        default=False,
        description="Administrator override: skip workflow validation",
    )


class ProductSummary(BaseModel):
    id: str
    name: str
    price: float
    image_url: Optional[str]

    class Config:
        from_attributes = True


class OrderItemResponse(BaseModel):
    id: str
    product_id: str
    quantity: int
    unit_price: float
    notes: Optional[str]
    product: Optional[ProductSummary] = None

    class Config:
        from_attributes = True


class OrderResponse(BaseModel):
    """Response schema for a single order."""
    id: str
    customer_id: Optional[str]
    status: OrderStatus
    total_amount: float
    notes: Optional[str]
    table_number: Optional[int]
    payment_transaction_id: Optional[str]
    payment_status: Optional[PaymentStatus]
    driver_id: Optional[str]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    items: List[OrderItemResponse] = []

    class Config:
        from_attributes = True


class OrderListResponse(BaseModel):
    """Response for listing multiple orders."""
    total: int
    orders: List[OrderResponse]


# =============================================================================
# PAYMENTS
# =============================================================================

class PaymentMethodCreate(BaseModel):
    type: PaymentMethodType = Field(..., examples=["credit_card"])
    card_brand: Optional[str] = Field(None, max_length=30, examples=["visa"])
    last_four: Optional[str] = Field(None, examples=["4242"])
    expiry_month: Optional[int] = Field(None, ge=1, le=12)
    expiry_year: Optional[int] = Field(None, ge=2000, le=2100)
    holder_name: Optional[str] = Field(None, max_length=120)
    is_default: bool = False

    @field_validator("last_four")
    @classmethod
    def validate_last_four(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        if len(v) != 4 or not v.isdigit():
            raise ValueError("last_four must be exactly 4 digits")
        return v


class PaymentMethodResponse(BaseModel):
    id: str
    user_id: str
    type: PaymentMethodType
    card_brand: Optional[str]
    last_four: Optional[str]
    expiry_month: Optional[int]
    expiry_year: Optional[int]
    holder_name: Optional[str]
    is_default: bool
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class TransactionCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    order_id: str = Field(..., alias="orderId")
    payment_method_id: Optional[str] = Field(None, alias="paymentMethodId")


class TransactionResponse(BaseModel):
    id: str
    order_id: str
    payment_method_id: Optional[str]
    amount: float
    status: PaymentStatus
    provider_transaction_id: Optional[str]
    provider_status: Optional[str]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True


class PaymentData(BaseModel):
    """Payment instructions supplied by the client at checkout."""
    method: str = Field(..., examples=["card", "cash"])
    token: Optional[str] = Field(
        None,
        description="Gateway payment method token (e.g. pm_card_visa)",
    )
    email: Optional[str] = None
    description: Optional[str] = None


class ProcessPaymentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    transaction_id: str = Field(..., alias="transactionId")
    payment_data: PaymentData = Field(..., alias="paymentData")


class RefundRequest(BaseModel):
    amount: Optional[float] = Field(None, gt=0, description="Omit for a full refund")
    reason: Optional[str] = Field(None, examples=["requested_by_customer"])


class ProcessPaymentResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    status: Optional[PaymentStatus] = None
    payment_id: Optional[str] = Field(None, alias="paymentId")
    error: Optional[str] = None
    redirect_url: Optional[str] = Field(None, alias="redirectUrl")


class CheckoutRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    items: List[CartItem] = Field(..., min_length=1)
    notes: Optional[str] = Field(None, max_length=500)
    table_number: Optional[int] = Field(None, ge=1)
    payment_method_id: Optional[str] = Field(None, alias="paymentMethodId")
    payment_data: PaymentData = Field(..., alias="paymentData")


class CheckoutResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    order_id: Optional[str] = Field(None, alias="orderId")
    transaction_id: Optional[str] = Field(None, alias="transactionId")
    total_amount: Optional[float] = Field(None, alias="totalAmount")
    payment: Optional[ProcessPaymentResponse] = None
    error: Optional[str] = None


# =============================================================================
# TABLES & RESERVATIONS
# =============================================================================

class TableCreate(BaseModel):
    table_number: int = Field(..., ge=1, examples=[7])
    capacity: int = Field(..., ge=1, le=50, examples=[4])
    location: Optional[str] = Field(None, max_length=100, examples=["Terrace"])
    status: TableStatus = TableStatus.AVAILABLE


class TableUpdate(BaseModel):
    table_number: Optional[int] = Field(None, ge=1)
    capacity: Optional[int] = Field(None, ge=1, le=50)
    location: Optional[str] = Field(None, max_length=100)
    status: Optional[TableStatus] = None


class TableStatusUpdate(BaseModel):
    status: TableStatus


class TableResponse(BaseModel):
    id: str
    table_number: int
    capacity: int
    status: TableStatus
    location: Optional[str]

    class Config:
        from_attributes = True


class TableStatsResponse(BaseModel):
    total: int
    available: int
    occupied: int
    reserved: int
    maintenance: int


class ReservationCreate(BaseModel):
    table_id: str
    reservation_date: date = Field(..., examples=["2026-11-20"])
    start_time: time = Field(..., examples=["19:00"])
    end_time: time = Field(..., examples=["21:00"])
    party_size: int = Field(..., ge=1, le=50, examples=[4])
    notes: Optional[str] = Field(None, max_length=500)

    @model_validator(mode="after")
    def validate_window(self) -> "ReservationCreate":
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class ReservationUpdate(BaseModel):
    table_id: Optional[str] = None
    reservation_date: Optional[date] = None
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    party_size: Optional[int] = Field(None, ge=1, le=50)
    notes: Optional[str] = Field(None, max_length=500)


class ReservationStatusUpdate(BaseModel):
    status: ReservationStatus


class ReservationResponse(BaseModel):
    id: str
    table_id: str
    customer_id: Optional[str]
    reservation_date: date
    start_time: time
    end_time: time
    party_size: int
    status: ReservationStatus
    notes: Optional[str]
    created_at: Optional[datetime]
    table: Optional[TableResponse] = None

    class Config:
        from_attributes = True


# =============================================================================
# DELIVERY
# =============================================================================

class DriverCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    phone: Optional[str] = Field(None, max_length=20)
    vehicle_type: Optional[str] = Field(None, max_length=30, examples=["motorbike"])


class DriverResponse(BaseModel):
    id: str
    name: str
    phone: Optional[str]
    vehicle_type: Optional[str]
    is_active: bool

    class Config:
        from_attributes = True


class DriverAssignRequest(BaseModel):
    driver_id: str


class DriverLocationResponse(BaseModel):
    id: str
    driver_id: str
    order_id: str
    latitude: float
    longitude: float
    accuracy: Optional[float]
    heading: Optional[float]
    speed: Optional[float]
    timestamp: Optional[datetime]

    class Config:
        from_attributes = True


class TrackingResponse(BaseModel):
    order_id: str
    status: OrderStatus
    driver_location: Optional[DriverLocationResponse] = None
    estimated_minutes: int
    estimated_time: datetime


class SimulationRequest(BaseModel):
    start_lat: float = Field(..., ge=-90, le=90)
    start_lng: float = Field(..., ge=-180, le=180)
    end_lat: float = Field(..., ge=-90, le=90)
    end_lng: float = Field(..., ge=-180, le=180)
    duration_minutes: int = Field(default=15, ge=1, le=120)


# =============================================================================
# STAFF NOTIFICATIONS
# =============================================================================

class StaffNotificationResponse(BaseModel):
    id: str
    title: str
    message: str
    type: str
    order_id: Optional[str]
    status: Optional[str]
    timestamp: datetime
    read: bool


class NotificationPreferences(BaseModel):
    show_notifications: bool = True
    play_sounds: bool = True


class NotificationPreferencesUpdate(BaseModel):
    show_notifications: Optional[bool] = None
    play_sounds: Optional[bool] = None


# =============================================================================
# TOOL DISPATCH & ASSISTANT
# =============================================================================

class ToolRequest(BaseModel):
    tool: str = Field(..., examples=["searchProducts"])
    params: dict[str, Any] = Field(default_factory=dict)


class ChatMessage(BaseModel):
    role: str = Field(..., pattern="^(system|user|assistant)$")
    content: str


class AssistantRequest(BaseModel):
    messages: List[ChatMessage] = Field(..., min_length=1)
    context: dict[str, Any] = Field(default_factory=dict)


class AssistantResponse(BaseModel):
    response: str
    action: Optional[str] = None
    data: Optional[dict[str, Any]] = None


# =============================================================================
# COMMON
# =============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    change_feed: str
    payment_service: str
    notification_service: str
    timestamp: datetime
