from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class CylinderUnit(db.Model):
    """
    One physical cylinder.

    Inventory is unit-derived: the on-hand count for (type, status) is
    COUNT(*) over these rows, never a stored quantity field.
    """
    __tablename__ = "cylinder_units"
    __table_args__ = (
        db.Index("ix_cylinder_units_owner_type_status", "owner_key", "cylinder_type", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    owner_key = db.Column(db.String(64), nullable=False, index=True)

    cylinder_type = db.Column(db.String(16), nullable=False)
    status = db.Column(db.String(8), nullable=False)  # FULL, EMPTY

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<CylinderUnit id={self.id} type={self.cylinder_type!r} status={self.status!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "cylinder_type": self.cylinder_type,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StoveUnit(db.Model):
    """
    One physical stove.

    AVAILABLE stoves carry no borrower. LENT stoves carry a snapshot of the
    borrower taken at lending time (later customer edits do not change it)
    and a PAID / PENDING payment status.
    """
    __tablename__ = "stove_units"
    __table_args__ = (
        db.Index("ix_stove_units_owner_model_status", "owner_key", "model", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    owner_key = db.Column(db.String(64), nullable=False, index=True)

    model = db.Column(db.String(64), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="AVAILABLE")  # AVAILABLE, LENT

    borrower_customer_id = db.Column(db.Integer, nullable=True)
    borrower_name = db.Column(db.String(128), nullable=True)
    borrower_phone = db.Column(db.String(32), nullable=True)
    borrower_address = db.Column(db.String(255), nullable=True)
    payment_status = db.Column(db.String(16), nullable=True)  # PAID, PENDING
    lent_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<StoveUnit id={self.id} model={self.model!r} status={self.status!r}>"

    def to_dict(self) -> dict:
        borrower = None
        if self.status == "LENT":
            borrower = {
                "customer_id": self.borrower_customer_id,
                "name": self.borrower_name,
                "phone": self.borrower_phone,
                "address": self.borrower_address,
            }
        return {
            "id": self.id,
            "model": self.model,
            "status": self.status,
            "borrower": borrower,
            "payment_status": self.payment_status,
            "lent_at": to_utc_z(self.lent_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class LendingRecord(db.Model):
    """
    History row written when a LENT stove comes back.

    Records are RETURNED from birth and deleted by the retention sweep
    LENDING_RETENTION_DAYS after returned_at.
    """
    __tablename__ = "lending_records"
    __table_args__ = (
        db.Index("ix_lending_records_owner_status_returned", "owner_key", "status", "returned_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    owner_key = db.Column(db.String(64), nullable=False, index=True)

    # Plain ints: the stove (or customer) may be removed while history remains
    stove_id = db.Column(db.Integer, nullable=False, index=True)
    stove_model = db.Column(db.String(64), nullable=False)

    borrower_customer_id = db.Column(db.Integer, nullable=True)
    borrower_name = db.Column(db.String(128), nullable=True)
    borrower_phone = db.Column(db.String(32), nullable=True)
    borrower_address = db.Column(db.String(255), nullable=True)
    payment_status = db.Column(db.String(16), nullable=True)

    lent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    returned_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    status = db.Column(db.String(16), nullable=False, default="RETURNED")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "stove_id": self.stove_id,
            "stove_model": self.stove_model,
            "borrower": {
                "customer_id": self.borrower_customer_id,
                "name": self.borrower_name,
                "phone": self.borrower_phone,
                "address": self.borrower_address,
            },
            "payment_status": self.payment_status,
            "lent_at": to_utc_z(self.lent_at),
            "returned_at": to_utc_z(self.returned_at),
            "status": self.status,
        }
