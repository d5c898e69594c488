"""Read-only reference data: personnel and construction sites."""

from tracker.models import db


class Employee(db.Model):
    """A member of staff who can own a project stage."""

    __tablename__ = "employees"

    id = db.Column(db.Integer, primary_key=True)
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
        }

    def __repr__(self) -> str:
        return f"<Employee {self.id}: {self.first_name}>"


class Location(db.Model):
    """A construction site. ``activity`` tells apart sites sharing a name."""

    __tablename__ = "locations"

    id = db.Column(db.Integer, primary_key=True)
    site_name = db.Column(db.String(255), nullable=False)
    activity = db.Column(db.String(255), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "site_name": self.site_name,
            "activity": self.activity,
        }

    def __repr__(self) -> str:
        return f"<Location {self.id}: {self.site_name}>"
