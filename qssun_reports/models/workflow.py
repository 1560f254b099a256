"""
QssunReports
Import/export workflow domain model.

Models:
    - WorkflowRequest: logistics request moving through a fixed 7-stage table

``stage_history`` is a list of StageHistoryItem dicts keyed by ``sequence``
(1-based append order).
"""

from datetime import datetime, timezone

from qssun_reports.models import db


# ── Document types ───────────────────────────────────────────────────────────

DOCUMENT_TYPES = (
    "Price Quote",
    "Purchase Order",
    "Compliance Certificate",
    "Shipping Certificate",
    "Invoice",
    "Customs Document",
    "Other",
    "Bill of Lading",
    "Commercial Invoice",
    "Packing List",
    "Certificate of Origin",
)

REQUEST_TYPES = ("استيراد", "تصدير")           # import, export
REQUEST_PRIORITIES = ("عالية", "متوسطة", "منخفضة")  # high, medium, low


# ── Stage table ──────────────────────────────────────────────────────────────

WORKFLOW_STAGES = (
    {"id": 1, "name": "عرض السعر والموافقة", "responsible": "موظف المبيعات",
     "requiredDocuments": ["Price Quote"]},
    {"id": 2, "name": "أمر الشراء", "responsible": "قسم المشتريات",
     "requiredDocuments": ["Purchase Order"]},
    {"id": 3, "name": "الشحن", "responsible": "قسم الشحن",
     "requiredDocuments": ["Bill of Lading", "Invoice"]},
    {"id": 4, "name": "التخليص الجمركي", "responsible": "مخلص جمركي",
     "requiredDocuments": ["Shipping Certificate", "Commercial Invoice",
                           "Packing List", "Certificate of Origin"]},
    {"id": 5, "name": "الاستلام والفحص", "responsible": "مدير المستودع",
     "requiredDocuments": ["Compliance Certificate"]},
    {"id": 6, "name": "المتابعة", "responsible": "مدير العمليات",
     "requiredDocuments": []},
    {"id": 7, "name": "الإنجاز", "responsible": "مدير العمليات",
     "requiredDocuments": []},
)
FINAL_STAGE_ID = WORKFLOW_STAGES[-1]["id"]

# Stage whose approval also needs departure logistics
DEPARTURE_STAGE_ID = 2


def get_stage(stage_id):
    """Return the stage dict for ``stage_id`` or None."""
    for stage in WORKFLOW_STAGES:
        if stage["id"] == stage_id:
            return stage
    return None


class WorkflowRequest(db.Model):
    """
    Import/export logistics request.

    Advancing is ``current_stage_id -> current_stage_id + 1`` and appends one
    StageHistoryItem; the request is complete once it sits on the final stage.
    """

    __tablename__ = "workflow_requests"

    id = db.Column(db.String(20), primary_key=True, comment="REQ-0001 style code")
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    title = db.Column(db.String(250), nullable=False)
    description = db.Column(db.Text, default="")
    type = db.Column(db.String(20), nullable=False, default=REQUEST_TYPES[0])
    priority = db.Column(db.String(20), nullable=False, default=REQUEST_PRIORITIES[2])
    current_stage_id = db.Column(db.Integer, nullable=False, default=1)
    stage_history = db.Column(db.JSON, default=list)

    container_count_20ft = db.Column(db.Integer, nullable=True)
    container_count_40ft = db.Column(db.Integer, nullable=True)
    expected_departure_date = db.Column(db.String(30), nullable=True)
    departure_port = db.Column(db.String(150), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    last_modified = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                              onupdate=lambda: datetime.now(timezone.utc))

    owner = db.relationship("User")

    @property
    def is_complete(self):
        return self.current_stage_id >= FINAL_STAGE_ID

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description or "",
            "type": self.type,
            "priority": self.priority,
            "currentStageId": self.current_stage_id,
            "creationDate": self.created_at.isoformat() if self.created_at else None,
            "lastModified": self.last_modified.isoformat() if self.last_modified else None,
            "stageHistory": list(self.stage_history or []),
            "employeeId": self.owner.username if self.owner else None,
            "containerCount20ft": self.container_count_20ft,
            "containerCount40ft": self.container_count_40ft,
            "expectedDepartureDate": self.expected_departure_date,
            "departurePort": self.departure_port,
        }

    def __repr__(self):
        return f"<WorkflowRequest {self.id}: stage {self.current_stage_id}>"
