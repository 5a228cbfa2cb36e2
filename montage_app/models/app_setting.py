"""Key/value store for process-wide business settings.

Values are stored as trimmed text; typed access goes through
``montage_app.services.settings_service``.
"""

from datetime import datetime, timezone

from montage_app.models import db


# ── Known setting keys ──────────────────────────────────────────────────────
class SettingKeys:
    MONTAGE_CHECKLIST = "montage.checklist"
    MONTAGE_STATUSES = "montage.statuses"
    MONTAGE_CHECKLIST_AUTO_ADVANCE = "montage.checklist_auto_advance"
    KPI_ALERT_MISSING_MEASURER_DAYS = "kpi.alert_missing_measurer_days"
    KPI_ALERT_MISSING_INSTALLER_DAYS = "kpi.alert_missing_installer_days"
    KPI_ALERT_MISSING_MATERIAL_STATUS_DAYS = "kpi.alert_missing_material_status_days"
    KPI_ALERT_MISSING_INSTALLER_STATUS_DAYS = "kpi.alert_missing_installer_status_days"
    KPI_ALERT_MATERIAL_ORDERED_DAYS = "kpi.alert_material_ordered_days"
    KPI_ALERT_MATERIAL_INSTOCK_DAYS = "kpi.alert_material_instock_days"


class AppSetting(db.Model):
    """One named configuration value."""

    __tablename__ = "app_settings"

    key = db.Column(db.String(120), primary_key=True)
    value = db.Column(db.Text, nullable=False, default="")
    updated_by = db.Column(db.Integer, db.ForeignKey("persons.id", ondelete="SET NULL"), nullable=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "value": self.value,
            "updated_by": self.updated_by,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
