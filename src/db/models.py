# provide dataclass models, plus the mapping to and from store documents

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

CATEGORIES = ("vegetable", "fruit")
ORDER_STATUSES = ("pending", "delivered")
TICKET_STATUSES = ("Open", "In Progress", "Resolved")
DELIVERY_METHODS = ("Cash on Delivery",)
ADMIN_ROLE = "admin"


def _parse_ts(value) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        return None


@dataclass(frozen=True)
class Product:
    pid: str
    name: str
    price: int
    image: str
    category: str  # "vegetable" or "fruit"

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> "Product":
        return cls(
            pid=str(doc["id"]),
            name=doc.get("name", ""),
            price=int(doc.get("price") or 0),
            image=doc.get("image", ""),
            category=doc.get("category", ""),
        )

    def to_doc(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "price": self.price,
            "image": self.image,
            "category": self.category,
        }


@dataclass(frozen=True)
class CartLine:
    """A product copy taken when the line was created, plus the quantity."""

    pid: str
    name: str
    price: int  # unit price at time of adding
    image: str
    category: str
    qty: int

    @classmethod
    def from_product(cls, product: Product, qty: int = 1) -> "CartLine":
        return cls(
            pid=product.pid,
            name=product.name,
            price=product.price,
            image=product.image,
            category=product.category,
            qty=qty,
        )

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> "CartLine":
        return cls(
            pid=str(doc["pid"]),
            name=doc.get("name", ""),
            price=int(doc.get("price") or 0),
            image=doc.get("image", ""),
            category=doc.get("category", ""),
            qty=int(doc.get("qty") or 0),
        )

    def to_doc(self) -> Dict[str, Any]:
        return {
            "pid": self.pid,
            "name": self.name,
            "price": self.price,
            "image": self.image,
            "category": self.category,
            "qty": self.qty,
        }

    def with_qty(self, qty: int) -> "CartLine":
        return replace(self, qty=qty)

    @property
    def subtotal(self) -> int:
        return self.price * self.qty


@dataclass(frozen=True)
class DeliveryDetails:
    name: str
    phone: str
    address: str
    delivery: str = DELIVERY_METHODS[0]


@dataclass(frozen=True)
class Order:
    ono: str
    user_id: Optional[str]
    user_email: str
    name: str
    phone: str
    address: str
    items: Tuple[CartLine, ...]
    total: int
    delivery: str
    status: str  # "pending" or "delivered"
    odate: datetime

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> "Order":
        return cls(
            ono=str(doc.get("ono") or doc["id"]),
            user_id=doc.get("user_id"),
            user_email=doc.get("user_email", ""),
            name=doc.get("name", ""),
            phone=doc.get("phone", ""),
            address=doc.get("address", ""),
            items=tuple(CartLine.from_doc(i) for i in doc.get("items") or []),
            total=int(doc.get("total") or 0),
            delivery=doc.get("delivery", DELIVERY_METHODS[0]),
            status=doc.get("status") or ORDER_STATUSES[0],
            odate=_parse_ts(doc.get("odate")) or _parse_ts(doc.get("created_at")) or datetime.min,
        )

    def to_doc(self) -> Dict[str, Any]:
        return {
            "ono": self.ono,
            "user_id": self.user_id,
            "user_email": self.user_email,
            "name": self.name,
            "phone": self.phone,
            "address": self.address,
            "items": [i.to_doc() for i in self.items],
            "total": self.total,
            "delivery": self.delivery,
            "status": self.status,
            "odate": self.odate.isoformat(),
        }


@dataclass(frozen=True)
class Reply:
    author_id: str
    message: str
    ts: datetime

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> "Reply":
        return cls(
            author_id=str(doc.get("author_id", "")),
            message=doc.get("message", ""),
            ts=_parse_ts(doc.get("ts")) or datetime.min,
        )

    def to_doc(self) -> Dict[str, Any]:
        return {
            "author_id": self.author_id,
            "message": self.message,
            "ts": self.ts.isoformat(),
        }


@dataclass(frozen=True)
class SupportTicket:
    tid: str
    user_id: str
    name: str
    email: str
    message: str
    order_ref: Optional[str]
    status: str  # "Open", "In Progress" or "Resolved"
    replies: Tuple[Reply, ...] = field(default_factory=tuple)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> "SupportTicket":
        return cls(
            tid=str(doc["id"]),
            user_id=str(doc.get("user_id", "")),
            name=doc.get("name", ""),
            email=doc.get("email", ""),
            message=doc.get("message", ""),
            order_ref=doc.get("order_ref") or None,
            status=doc.get("status") or TICKET_STATUSES[0],
            replies=tuple(Reply.from_doc(r) for r in doc.get("replies") or []),
            created_at=_parse_ts(doc.get("created_at")),
            updated_at=_parse_ts(doc.get("updated_at")),
        )

    @property
    def accepts_replies(self) -> bool:
        return self.status != "Resolved"


@dataclass(frozen=True)
class UserProfile:
    uid: str
    name: str
    email: str
    role: Optional[str] = None  # None or "admin"

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> "UserProfile":
        role = doc.get("role")
        if role != ADMIN_ROLE and doc.get("is_admin") is True:
            role = ADMIN_ROLE
        email = doc.get("email", "")
        return cls(
            uid=str(doc["id"]),
            name=doc.get("name") or email.split("@")[0],
            email=email,
            role=role or None,
        )

    def to_doc(self) -> Dict[str, Any]:
        return {"uid": self.uid, "name": self.name, "email": self.email, "role": self.role}


@dataclass(frozen=True)
class AuthResult:
    success: bool
    user: Optional[UserProfile] = None
    message: str = ""
