"""
Role-Scoped View Filter

Three exclusive visibility tiers, resolved in a fixed order:

    1. admin        — everything (an admin holding operational roles stays admin)
    2. installer    — montages where the viewer is installer or measurer;
                      measurement/installation columns only
    3. architect    — montages where the viewer is the architect;
                      referral-tracking milestones only
    4. unrestricted — any other role set; everything

The role restriction is applied first. Admin, architect and unrestricted
viewers may narrow further with an explicit ``ViewFilter`` (view / stage /
urgent / payments); installers ignore it.

Usage:
    from montage_app.services.role_scope import scope_project_predicate, scope_for_role
    scope = scope_project_predicate(g.viewer_roles, g.viewer_id)
    q = Montage.query_active()
    clause = scope.as_clause(Montage)
    if clause is not None:
        q = q.filter(clause)
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from sqlalchemy import and_, or_

from montage_app.services.montage_alerts import COMPLETED_STATUSES, FRESH_LEAD_STATUSES
from montage_app.services.stage_catalog import FunnelGroup, is_builtin_stage, stage_values


class ViewerTier(str, Enum):
    ADMIN = "admin"
    INSTALLER = "installer"
    ARCHITECT = "architect"
    UNRESTRICTED = "unrestricted"


# Resolution order after the admin check.
_OPERATIONAL_TIERS = (
    ("installer", ViewerTier.INSTALLER),
    ("architect", ViewerTier.ARCHITECT),
)

INSTALLER_VISIBLE_STATUSES = (
    "measurement_to_schedule",
    "measurement_scheduled",
    "measurement_done",
    "installation_scheduled",
    "installation_in_progress",
    "protocol_signed",
)

ARCHITECT_VISIBLE_STATUSES = (
    "new_lead",
    "measurement_scheduled",
    "quote_sent",
    "quote_accepted",
    "contract_signed",
    "installation_scheduled",
    "installation_in_progress",
    "completed",
)


def resolve_tier(roles) -> ViewerTier:
    """Single visibility tier for a role set; admin always wins."""
    role_set = set(roles or ())
    if "admin" in role_set:
        return ViewerTier.ADMIN
    for role, tier in _OPERATIONAL_TIERS:
        if role in role_set:
            return tier
    return ViewerTier.UNRESTRICTED


def _tier(roles_or_tier) -> ViewerTier:
    if isinstance(roles_or_tier, ViewerTier):
        return roles_or_tier
    if isinstance(roles_or_tier, str):
        return resolve_tier([roles_or_tier])
    return resolve_tier(roles_or_tier)


def scope_for_role(roles, all_statuses) -> list[str]:
    """Subset of ``all_statuses`` (order kept) the viewer gets as board columns.

    ``roles`` may be a role list, a single role name, or a ViewerTier.
    """
    tier = _tier(roles)
    if tier is ViewerTier.INSTALLER:
        allowed = set(INSTALLER_VISIBLE_STATUSES)
    elif tier is ViewerTier.ARCHITECT:
        allowed = set(ARCHITECT_VISIBLE_STATUSES)
    else:
        return list(all_statuses)
    return [s for s in all_statuses if s in allowed]


@dataclass(frozen=True)
class ProjectScope:
    """Which montages a viewer may see."""

    tier: ViewerTier
    user_id: int | None = None

    @property
    def is_restricted(self) -> bool:
        return self.tier in (ViewerTier.INSTALLER, ViewerTier.ARCHITECT)

    def matches(self, montage) -> bool:
        if self.tier is ViewerTier.INSTALLER:
            return self.user_id is not None and self.user_id in (montage.installer_id, montage.measurer_id)
        if self.tier is ViewerTier.ARCHITECT:
            return self.user_id is not None and montage.architect_id == self.user_id
        return True

    def as_clause(self, model):
        """SQLAlchemy filter for ``model``; None when nothing is restricted."""
        if self.tier is ViewerTier.INSTALLER:
            return or_(model.installer_id == self.user_id, model.measurer_id == self.user_id)
        if self.tier is ViewerTier.ARCHITECT:
            return model.architect_id == self.user_id
        return None


def scope_project_predicate(roles, user_id) -> ProjectScope:
    return ProjectScope(tier=_tier(roles), user_id=user_id)


# ═════════════════════════════════════════════════════════════════════════════
# Explicit view filter (query parameters)
# ═════════════════════════════════════════════════════════════════════════════

VIEWS = ("lead", "in-progress", "done", "rejected")
STAGES = ("all", "before-measure", "before-first-payment", "before-install", "before-invoice")
AD_HOC_FILTERS = ("urgent", "payments")

DEFAULT_VIEW = "in-progress"
DEFAULT_STAGE = "all"

LEAD_VIEW_STATUSES = (
    "new_lead",
    "lead_contact",
    "lead_samples_pending",
    "lead_samples_sent",
    "lead_pre_estimate",
)

STAGE_STATUSES = {
    "before-measure": ("measurement_to_schedule", "measurement_scheduled"),
    "before-first-payment": (
        "measurement_done", "quote_in_progress", "quote_sent",
        "quote_accepted", "contract_signed", "waiting_for_deposit",
    ),
    "before-install": (
        "deposit_paid", "materials_ordered", "materials_pickup_ready",
        "installation_scheduled", "materials_delivered",
    ),
    "before-invoice": (
        "installation_in_progress", "protocol_signed",
        "final_invoice_issued", "final_settlement",
    ),
}

IN_PROGRESS_STATUSES = tuple(s for group in STAGE_STATUSES.values() for s in group)

DONE_STATUSES = ("completed",)
REJECTED_STATUSES = ("on_hold", "rejected")
PAYMENT_STATUSES = ("waiting_for_deposit", "final_settlement")

# Bucket a custom catalog stage joins, by funnel group.
CUSTOM_STAGE_BUCKETS = {
    FunnelGroup.LEAD.value: "lead",
    FunnelGroup.HANDOFF.value: "before-measure",
    FunnelGroup.QUOTING.value: "before-first-payment",
    FunnelGroup.PAPERWORK.value: "before-first-payment",
    FunnelGroup.LOGISTICS.value: "before-install",
    FunnelGroup.EXECUTION.value: "before-invoice",
    FunnelGroup.CLOSEOUT.value: "before-invoice",
    FunnelGroup.SPECIAL.value: "rejected",
}


def custom_stage_buckets(stages) -> dict[str, tuple[str, ...]]:
    """Stages absent from the built-in catalog, grouped by view/stage bucket."""
    buckets: dict[str, list[str]] = {}
    for s in stages or ():
        if is_builtin_stage(s.value):
            continue
        bucket = CUSTOM_STAGE_BUCKETS.get(s.funnel_group)
        if bucket:
            buckets.setdefault(bucket, []).append(s.value)
    return {name: tuple(values) for name, values in buckets.items()}


@dataclass(frozen=True)
class ViewFilter:
    view: str = DEFAULT_VIEW
    stage: str = DEFAULT_STAGE
    ad_hoc: str | None = None

    @classmethod
    def from_args(cls, args) -> "ViewFilter":
        """Build from request args; unknown values fall back to defaults."""
        view = args.get("view")
        stage = args.get("stage")
        ad_hoc = args.get("filter")
        return cls(
            view=view if view in VIEWS else DEFAULT_VIEW,
            stage=stage if stage in STAGES else DEFAULT_STAGE,
            ad_hoc=ad_hoc if ad_hoc in AD_HOC_FILTERS else None,
        )

    def statuses(self, stages=None) -> tuple[str, ...] | None:
        """Status set a montage must be in; None for the urgent filter (not status-bound).

        Custom stages of ``stages`` join the bucket of their funnel group.
        """
        custom = custom_stage_buckets(stages)
        if self.ad_hoc == "urgent":
            return None
        if self.ad_hoc == "payments":
            return PAYMENT_STATUSES
        if self.view == "lead":
            return LEAD_VIEW_STATUSES + custom.get("lead", ())
        if self.view == "done":
            return DONE_STATUSES
        if self.view == "rejected":
            return REJECTED_STATUSES + custom.get("rejected", ())
        if self.stage != "all":
            return STAGE_STATUSES[self.stage] + custom.get(self.stage, ())
        return IN_PROGRESS_STATUSES + tuple(v for name in STAGE_STATUSES for v in custom.get(name, ()))

    def column_statuses(self, all_statuses=None, stages=None) -> tuple[str, ...]:
        """Board columns for the selection; the urgent filter spans the whole catalog."""
        if self.ad_hoc == "urgent":
            if all_statuses is None:
                all_statuses = stage_values(stages)
            return tuple(all_statuses)
        columns = self.statuses(stages)
        if self.ad_hoc is None and self.view == "lead":
            return columns + ("measurement_to_schedule",)
        if self.ad_hoc is None and self.view == "in-progress" and self.stage == "all":
            return columns + ("complaint",)
        return columns

    def matches(self, montage, stages=None) -> bool:
        if self.ad_hoc == "urgent":
            return (
                montage.status not in FRESH_LEAD_STATUSES
                and montage.status not in COMPLETED_STATUSES
                and montage.scheduled_installation_at is None
            )
        return montage.status in self.statuses(stages)

    def as_clause(self, model, stages=None):
        if self.ad_hoc == "urgent":
            return and_(
                model.status.notin_(tuple(FRESH_LEAD_STATUSES | COMPLETED_STATUSES)),
                model.scheduled_installation_at.is_(None),
            )
        return model.status.in_(self.statuses(stages))

    def to_dict(self) -> dict:
        return {"view": self.view, "stage": self.stage, "filter": self.ad_hoc}


def applies_view_filter(scope: ProjectScope) -> bool:
    """Installers always get their full assigned set; the view filter is ignored."""
    return scope.tier is not ViewerTier.INSTALLER
