"""Person model — installers, measurers, architects and office staff.

Identity and role assignment are owned by the authentication collaborator;
this table mirrors the subset the pipeline needs to resolve assignments.
"""

from datetime import datetime, timezone

from montage_app.models import db

class Person(db.Model):
    """A user that can be assigned to a montage."""

    __tablename__ = "persons"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=True)
    email = db.Column(db.String(255), nullable=False, unique=True)
    roles = db.Column(db.JSON, nullable=False, default=list)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    @property
    def display_name(self) -> str:
        return self.name or self.email

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "roles": list(self.roles or []),
            "is_active": self.is_active,
        }

    def __repr__(self):
        return f"<Person {self.id}: {self.email}>"
