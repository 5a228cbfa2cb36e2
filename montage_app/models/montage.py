"""
Montage Pipeline Engine
Montage (installation project) and per-project checklist models.

    Montage                — one installation engagement moving through the stage catalog
    MontageChecklistItem   — per-project instance of a checklist template entry

Checklist rows cascade-delete with their montage. The (montage_id, template_id)
unique constraint is what makes concurrent checklist reconciliation safe.
"""

from datetime import datetime, timezone

from montage_app.models import db
from montage_app.models.soft_delete import SoftDeleteMixin

# ── Constants ────────────────────────────────────────────────────────────────
MATERIAL_STATUSES = {"none", "ordered", "in_stock", "delivered"}
MATERIAL_CLAIM_TYPES = {"installer_pickup", "company_delivery", "courier", "client_pickup"}
PICKUP_CLAIM_TYPES = {"installer_pickup", "client_pickup"}
INSTALLER_STATUSES = {"none", "informed", "confirmed"}

DEFAULT_STATUS = "new_lead"


def _iso(value):
    return value.isoformat() if value else None


class Montage(SoftDeleteMixin, db.Model):
    """Installation project tracked through the pipeline."""

    __tablename__ = "montages"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(30), nullable=False, unique=True, comment="Display code, e.g. MNT-001")
    client_name = db.Column(db.String(200), nullable=False)
    contact_email = db.Column(db.String(255), nullable=True)
    contact_phone = db.Column(db.String(50), nullable=True)
    installation_address = db.Column(db.String(300), nullable=True)
    installation_city = db.Column(db.String(120), nullable=True)

    status = db.Column(db.String(50), nullable=False, default=DEFAULT_STATUS, index=True)

    installer_id = db.Column(
        db.Integer, db.ForeignKey("persons.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    measurer_id = db.Column(
        db.Integer, db.ForeignKey("persons.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    architect_id = db.Column(
        db.Integer, db.ForeignKey("persons.id", ondelete="SET NULL"), nullable=True, index=True,
    )

    scheduled_installation_at = db.Column(db.DateTime(timezone=True), nullable=True)
    forecasted_installation_date = db.Column(
        db.Date, nullable=True, comment="Rough date used before a real schedule exists",
    )

    material_status = db.Column(
        db.String(20), nullable=False, default="none",
        comment="none | ordered | in_stock | delivered",
    )
    material_claim_type = db.Column(
        db.String(30), nullable=True,
        comment="installer_pickup | company_delivery | courier | client_pickup",
    )
    installer_status = db.Column(
        db.String(20), nullable=False, default="none",
        comment="none | informed | confirmed",
    )

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        index=True,
    )

    installer = db.relationship("Person", foreign_keys=[installer_id])
    measurer = db.relationship("Person", foreign_keys=[measurer_id])
    architect = db.relationship("Person", foreign_keys=[architect_id])
    checklist_items = db.relationship(
        "MontageChecklistItem",
        backref="montage",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="MontageChecklistItem.order_index",
    )

    def _person_ref(self, person_id, person):
        """Assignment reference; a dangling id renders as 'unknown'."""
        if person_id is None:
            return None
        if person is None:
            return {"id": person_id, "name": "unknown"}
        return {"id": person.id, "name": person.display_name}

    def to_summary(self) -> dict:
        """Compact card payload used by the pipeline board."""
        done = sum(1 for item in self.checklist_items if item.completed)
        return {
            "id": self.id,
            "code": self.code,
            "client_name": self.client_name,
            "installation_city": self.installation_city,
            "status": self.status,
            "installer": self._person_ref(self.installer_id, self.installer),
            "measurer": self._person_ref(self.measurer_id, self.measurer),
            "architect": self._person_ref(self.architect_id, self.architect),
            "scheduled_installation_at": _iso(self.scheduled_installation_at),
            "forecasted_installation_date": _iso(self.forecasted_installation_date),
            "material_status": self.material_status,
            "checklist_done": done,
            "checklist_total": len(self.checklist_items),
            "updated_at": _iso(self.updated_at),
        }

    def to_dict(self, include_checklist: bool = False) -> dict:
        d = self.to_summary()
        d.update({
            "contact_email": self.contact_email,
            "contact_phone": self.contact_phone,
            "installation_address": self.installation_address,
            "material_claim_type": self.material_claim_type,
            "installer_status": self.installer_status,
            "created_at": _iso(self.created_at),
            "deleted_at": _iso(self.deleted_at),
        })
        if include_checklist:
            d["checklist"] = [item.to_dict() for item in self.checklist_items]
        return d

    def __repr__(self):
        return f"<Montage {self.id}: {self.code} [{self.status}]>"


class MontageChecklistItem(db.Model):
    """One required checklist entry of a montage, bound to a template id."""

    __tablename__ = "montage_checklist_items"

    id = db.Column(db.Integer, primary_key=True)
    montage_id = db.Column(
        db.Integer, db.ForeignKey("montages.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    template_id = db.Column(db.String(80), nullable=False)
    label = db.Column(db.String(255), nullable=False)
    allow_attachment = db.Column(db.Boolean, nullable=False, default=False)
    attachment_ref = db.Column(
        db.String(500), nullable=True, comment="Opaque key in the external file store",
    )
    completed = db.Column(db.Boolean, nullable=False, default=False, index=True)
    order_index = db.Column(db.Integer, nullable=False)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.UniqueConstraint("montage_id", "template_id", name="uq_checklist_montage_template"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "montage_id": self.montage_id,
            "template_id": self.template_id,
            "label": self.label,
            "allow_attachment": self.allow_attachment,
            "attachment_ref": self.attachment_ref,
            "completed": self.completed,
            "order_index": self.order_index,
            "updated_at": _iso(self.updated_at),
        }


# ═══════════════════════════════════════════════════════════════════════════
# Code generation
# ═══════════════════════════════════════════════════════════════════════════

def next_montage_code() -> str:
    """
    Generate the next sequential display code: MNT-001, MNT-002, ...

    Uses MAX(id) ordering and SELECT ... FOR UPDATE where supported.
    The unique constraint on ``code`` is the final guard.
    """
    prefix = "MNT-"
    last = (
        Montage.query
        .filter(Montage.code.like(f"{prefix}%"))
        .order_by(Montage.id.desc())
        .with_for_update(skip_locked=True)
        .first()
    )
    if last:
        try:
            num = int(last.code.split("-")[1]) + 1
        except (IndexError, ValueError):
            num = 1
    else:
        num = 1
    return f"{prefix}{num:03d}"
