from __future__ import annotations

from ..extensions import db
from ..money import format_amount
from ..time_utils import to_utc_z, utcnow


class Booking(db.Model):
    """
    A cylinder delivery booking.

    Two independent axes:
    - status (delivery): Booked -> InTransit -> Delivered, or -> Cancelled
    - payment_status: Pending -> Partial -> Paid

    LOCK: a booking that is Paid AND Delivered is immutable. The only thing
    that touches it afterwards is the retention sweep, which deletes it once
    updated_at is BOOKING_RETENTION_HOURS old.

    updated_at is written explicitly by booking_service (never by an
    onupdate hook) because it is the retention clock.
    """
    __tablename__ = "bookings"
    __table_args__ = (
        db.Index("ix_bookings_owner_status", "owner_key", "status"),
        db.Index("ix_bookings_owner_payment", "owner_key", "payment_status"),
        db.Index("ix_bookings_owner_delivery_date", "owner_key", "delivery_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    owner_key = db.Column(db.String(64), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    cylinders = db.Column(db.Integer, nullable=False)
    cylinder_type = db.Column(db.String(16), nullable=False)
    dsc_code = db.Column(db.String(4), nullable=False)
    service_type = db.Column(db.String(16), nullable=False, default="No")
    delivery_date = db.Column(db.Date, nullable=False)

    payment_status = db.Column(db.String(16), nullable=False, default="Pending")
    payment_amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    last_payment_date = db.Column(db.DateTime(timezone=True), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="Booked")
    empty_cylinder_received = db.Column(db.Boolean, nullable=False, default=False)

    # FULL cylinders not removed from stock because the operator chose to
    # proceed with delivery under insufficient stock
    stock_shortfall = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    customer = db.relationship("Customer", lazy=True)

    def __repr__(self) -> str:
        return (
            f"<Booking id={self.id} customer_id={self.customer_id} "
            f"status={self.status!r} payment_status={self.payment_status!r}>"
        )

    @property
    def is_locked(self) -> bool:
        return self.payment_status == "Paid" and self.status == "Delivered"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "cylinders": self.cylinders,
            "cylinder_type": self.cylinder_type,
            "dsc_code": self.dsc_code,
            "service_type": self.service_type,
            "delivery_date": self.delivery_date.isoformat() if self.delivery_date else None,
            "payment": {
                "status": self.payment_status,
                "amount": format_amount(self.payment_amount or 0),
                "last_payment_date": to_utc_z(self.last_payment_date),
            },
            "status": self.status,
            "empty_cylinder_received": self.empty_cylinder_received,
            "stock_shortfall": self.stock_shortfall,
            "is_locked": self.is_locked,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
