"""
QssunReports
Package request domain model.

Models:
    - PackageRequest: customer package order with a linear fulfilment status
    - PackageAttachment: payment proofs and shipping documents
    - PackageLog: one row per status action
"""

from datetime import datetime, timezone

from qssun_reports.models import db


# ── Status machine ───────────────────────────────────────────────────────────

PACKAGE_STATUSES = (
    "NEW", "PAYMENT_CONFIRMED", "PROCESSING", "READY_FOR_DELIVERY", "DELIVERED", "CANCELLED",
)

PACKAGE_TRANSITIONS = {
    "NEW":                ["PAYMENT_CONFIRMED", "CANCELLED"],
    "PAYMENT_CONFIRMED":  ["PROCESSING", "CANCELLED"],
    "PROCESSING":         ["READY_FOR_DELIVERY", "CANCELLED"],
    "READY_FOR_DELIVERY": ["DELIVERED"],
    "DELIVERED":          [],
    "CANCELLED":          [],
}

# Progress shown to the customer-facing screens for each status
PACKAGE_PROGRESS = {
    "NEW": 0,
    "PAYMENT_CONFIRMED": 20,
    "PROCESSING": 50,
    "READY_FOR_DELIVERY": 75,
    "DELIVERED": 100,
}

PACKAGE_PRIORITIES = ("low", "medium", "high")
ATTACHMENT_TYPES = ("payment_proof", "shipping_doc")


def validate_package_transition(old_status, new_status):
    """Return True if the PackageRequest status transition is valid."""
    return new_status in PACKAGE_TRANSITIONS.get(old_status, [])


class PackageRequest(db.Model):
    __tablename__ = "package_requests"

    id = db.Column(db.String(20), primary_key=True, comment="PKG-000001 style code")
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    title = db.Column(db.String(250), nullable=False)
    description = db.Column(db.Text, default="")
    customer_name = db.Column(db.String(200), default="")
    customer_phone = db.Column(db.String(50), default="")
    customer_location = db.Column(db.String(250), nullable=True)
    priority = db.Column(db.String(10), default="medium")
    status = db.Column(db.String(30), nullable=False, default="NEW")
    progress_percent = db.Column(db.Integer, default=0)
    meta = db.Column(db.JSON, default=dict)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    last_modified = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                              onupdate=lambda: datetime.now(timezone.utc))

    owner = db.relationship("User")
    attachments = db.relationship(
        "PackageAttachment", backref="package", lazy="dynamic",
        cascade="all, delete-orphan", order_by="PackageAttachment.id.desc()",
    )
    logs = db.relationship(
        "PackageLog", backref="package", lazy="dynamic",
        cascade="all, delete-orphan", order_by="PackageLog.id.desc()",
    )

    def to_dict(self, include_children=False):
        owner = self.owner
        d = {
            "id": self.id,
            "title": self.title,
            "description": self.description or "",
            "customerName": self.customer_name or "",
            "customerPhone": self.customer_phone or "",
            "customerLocation": self.customer_location,
            "priority": self.priority,
            "status": self.status,
            "progressPercent": self.progress_percent or 0,
            "creationDate": self.created_at.isoformat() if self.created_at else None,
            "lastModified": self.last_modified.isoformat() if self.last_modified else None,
            "employeeId": owner.username if owner else None,
            "employeeName": owner.full_name if owner else None,
            "branch": owner.branch.name if owner and owner.branch else "N/A",
            "meta": dict(self.meta or {}),
        }
        if include_children:
            files = [a.to_dict() for a in self.attachments]
            d["attachments"] = {
                "paymentProofs": [f for f in files if f["type"] == "payment_proof"],
                "shippingDocs": [f for f in files if f["type"] == "shipping_doc"],
                "all": files,
            }
            d["logs"] = [log.to_dict() for log in self.logs]
        return d

    def __repr__(self):
        return f"<PackageRequest {self.id} [{self.status}]>"


class PackageAttachment(db.Model):
    __tablename__ = "package_attachments"

    id = db.Column(db.Integer, primary_key=True)
    package_id = db.Column(
        db.String(20), db.ForeignKey("package_requests.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    type = db.Column(db.String(20), nullable=False)
    url = db.Column(db.String(500), nullable=False)
    file_name = db.Column(db.String(250), nullable=False)
    uploaded_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    upload_date = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {"url": self.url, "fileName": self.file_name, "type": self.type}


class PackageLog(db.Model):
    __tablename__ = "package_logs"

    id = db.Column(db.Integer, primary_key=True)
    package_id = db.Column(
        db.String(20), db.ForeignKey("package_requests.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    actor_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    action = db.Column(db.String(40), nullable=False)
    comment = db.Column(db.Text, default="")
    date = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": str(self.id),
            "action": self.action,
            "comment": self.comment or "",
            "actorId": str(self.actor_id or ""),
            "date": self.date.isoformat() if self.date else None,
        }
