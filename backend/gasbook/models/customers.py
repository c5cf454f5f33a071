from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


CATEGORY_DOMESTIC = "Domestic"
CATEGORY_COMMERCIAL = "Commercial"
VALID_CATEGORIES = (CATEGORY_DOMESTIC, CATEGORY_COMMERCIAL)


class Customer(db.Model):
    """
    Registered customer of one owner.

    OWNER SCOPE: Customers are partitioned by owner_key.
    - phone is unique per owner (UniqueConstraint)
    - book_id is unique per owner among Domestic customers; this is
      conditional on category, so customer_service enforces it

    REGISTRATION: cylinders / cylinder_type cap every booking made for the
    customer. Bookings above the registration are rejected until the
    registration itself is edited.

    PAYMENT HISTORY: payment_history is a JSON list of transaction dicts,
    newest first, at most PAYMENT_HISTORY_LIMIT entries. It is only ever
    replaced wholesale (never mutated in place) so SQLAlchemy sees the change.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.UniqueConstraint("owner_key", "phone", name="uq_customers_owner_phone"),
        db.Index("ix_customers_owner_book_id", "owner_key", "book_id"),
        db.Index("ix_customers_owner_category", "owner_key", "category"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    owner_key = db.Column(db.String(64), nullable=False, index=True)

    name = db.Column(db.String(128), nullable=False)
    phone = db.Column(db.String(32), nullable=False)
    book_id = db.Column(db.String(16), nullable=True)
    category = db.Column(db.String(16), nullable=False, default=CATEGORY_DOMESTIC)
    subsidy = db.Column(db.Boolean, nullable=False, default=False)
    address = db.Column(db.String(255), nullable=True)

    # Registration
    cylinders = db.Column(db.Integer, nullable=False, default=1)
    cylinder_type = db.Column(db.String(16), nullable=False, default="14.2kg")

    # Payment snapshot (refreshed by every ledger append)
    payment_status = db.Column(db.String(16), nullable=True)
    last_payment_date = db.Column(db.DateTime(timezone=True), nullable=True)

    payment_history = db.Column(db.JSON, nullable=False, default=list)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def __repr__(self) -> str:
        return f"<Customer id={self.id} name={self.name!r} phone={self.phone!r} owner_key={self.owner_key!r}>"

    def to_dict(self, include_history: bool = False) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "book_id": self.book_id,
            "category": self.category,
            "subsidy": self.subsidy,
            "address": self.address,
            "cylinders": self.cylinders,
            "cylinder_type": self.cylinder_type,
            "payment": {
                "status": self.payment_status,
                "last_payment_date": to_utc_z(self.last_payment_date),
            },
            "payment_history_count": len(self.payment_history or []),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_history:
            data["payment_history"] = list(self.payment_history or [])
        return data
