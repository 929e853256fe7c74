"""Record shapes exchanged with the commerce adapters."""

from typing import Any, Optional, TypedDict, Union

RecordId = Union[int, str]


class ProductRecord(TypedDict, total=False):
    id: RecordId
    name: str
    description: str
    price: float
    stock: int
    category: Optional[str]
    images: list[str]
    attributes: dict[str, list[str]]
    status: str


class ProductFilters(TypedDict, total=False):
    category: Optional[str]
    min_price: Optional[float]
    max_price: Optional[float]
    include_inactive: bool


class Availability(TypedDict):
    available: bool
    stock: int


class OrderTotals(TypedDict):
    subtotal: float
    tax: float
    shipping: float
    total: float


class CustomerRecord(TypedDict, total=False):
    id: RecordId
    name: str
    email: str
    phone: str
    address: Any
    metadata: dict[str, Any]
    created_at: Optional[str]


class OrderRecord(TypedDict, total=False):
    id: RecordId
    order_number: str
    customer: dict[str, Any]
    items: list[dict[str, Any]]
    totals: OrderTotals
    status: str
    payment_status: str
    payment_id: Optional[str]
    payment_link: Optional[str]
    notes: Optional[str]
    created_at: Optional[str]
    updated_at: Optional[str]


class PaymentRecord(TypedDict, total=False):
    id: str
    order_id: RecordId
    amount: int
    currency: str
    status: str
    payment_link: str
    created_at: str


class PaymentStatus(TypedDict):
    status: str
    verified: bool


class ReceiptProcessingResult(TypedDict, total=False):
    verified: bool
    status: str
    decision: str
    confidence: float
