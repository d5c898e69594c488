"""
Reference data normalization — personnel and location lists for forms and views.

Runs once per reference-data load:
  - personnel sorted by first name
  - locations get a display name, disambiguated when several sites share
    a raw name: "{site_name} ({activity})" for each duplicate that carries a
    non-empty activity; everything else keeps its raw name. Sorted by display
    name.

Two sites with the same name and the same (or no) activity stay
indistinguishable; that is accepted, not corrected here.
"""

from __future__ import annotations

import locale
import logging
from collections import Counter
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


def _collation_key(text: str | None) -> str:
    # strxfrm honours LC_COLLATE; casefold keeps the C locale case-insensitive
    return locale.strxfrm((text or "").casefold())


def employee_display_name(employee: dict | None) -> str | None:
    if not employee:
        return None
    return f"{employee.get('first_name') or ''} {employee.get('last_name') or ''}".strip()


def normalize_personnel(rows: list[dict]) -> list[dict]:
    """Sorted copy of the personnel rows, each with a ``display_name``."""
    people = [{**row, "display_name": employee_display_name(row)} for row in rows]
    people.sort(key=lambda e: _collation_key(e.get("first_name")))
    return people


def normalize_locations(rows: list[dict]) -> list[dict]:
    """Sorted copy of the location rows, each with a disambiguated ``display_name``."""
    name_counts = Counter((row.get("site_name") or "") for row in rows)
    locations = []
    for row in rows:
        raw = row.get("site_name") or ""
        activity = row.get("activity")
        display = raw
        if name_counts[raw] > 1 and activity:
            display = f"{raw} ({activity})"
        locations.append({**row, "display_name": display})
    locations.sort(key=lambda loc: _collation_key(loc["display_name"]))
    return locations


@dataclass
class ReferenceData:
    """Normalized personnel and locations with id lookups for display."""
    employees: list[dict] = field(default_factory=list)
    locations: list[dict] = field(default_factory=list)

    def __post_init__(self):
        self._employees_by_id = {e["id"]: e for e in self.employees}
        self._locations_by_id = {loc["id"]: loc for loc in self.locations}

    def employee_name(self, employee_id) -> str | None:
        employee = self._employees_by_id.get(employee_id)
        return employee["display_name"] if employee else None

    def location_name(self, location_id) -> str | None:
        location = self._locations_by_id.get(location_id)
        return location["display_name"] if location else None

    def options_for(self, source: str) -> list[dict]:
        """``[{"value": id, "label": display name}]`` for a select field source."""
        rows = self.employees if source == "employees" else self.locations
        return [{"value": r["id"], "label": r["display_name"]} for r in rows]

    def to_dict(self) -> dict:
        return {"employees": self.employees, "locations": self.locations}


def load_reference_data(repository) -> ReferenceData:
    """Load and normalize both lists. The two reads are independent of each other."""
    employees = normalize_personnel(repository.list_personnel())
    locations = normalize_locations(repository.list_locations())
    logger.debug("Reference data loaded: %d employees, %d locations",
                 len(employees), len(locations))
    return ReferenceData(employees=employees, locations=locations)
