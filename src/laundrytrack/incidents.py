"""Process incidents: exception notes that never block the main flow."""

import uuid

from .errors import DescriptionRequiredError
from .models import Actor, Incident, IncidentCategory, TrackingRecord, _utc_now

INCIDENT_TEMPLATES: dict[IncidentCategory, str] = {
    IncidentCategory.DAMAGED_GARMENT: "Garment damaged during processing",
    IncidentCategory.PERSISTENT_STAIN: "Stain could not be removed",
    IncidentCategory.MISSING_GARMENT: "Garment missing from the order",
    IncidentCategory.WRONG_ITEM_COUNT: "Item count does not match the order",
    IncidentCategory.MACHINE_FAILURE: "Machine failure while processing the order",
    IncidentCategory.OTHER: "",
}


def build_description(category: IncidentCategory, details: str | None = None) -> str:
    """
    Compose the stored description from the category template and free text.

    Raises:
        DescriptionRequiredError: If category is OTHER and no details were given.
    """
    details = (details or "").strip()
    if category == IncidentCategory.OTHER:
        if not details:
            raise DescriptionRequiredError(category.value)
        return details
    template = INCIDENT_TEMPLATES[category]
    if details:
        return f"{template} - {details}"
    return template


def _new_incident_id() -> str:
    return f"inc_{uuid.uuid4().hex[:12]}"


def report_incident(
    record: TrackingRecord,
    actor: Actor,
    category: IncidentCategory,
    description: str,
) -> Incident:
    """Append an open incident stamped with the record's current state."""
    incident = Incident(
        id=_new_incident_id(),
        reported_at=_utc_now(),
        state=record.state,
        actor_id=actor.id,
        actor_name=actor.name,
        category=category,
        description=description,
    )
    record.incidents.append(incident)
    record.touch()
    return incident


def resolve_incident(record: TrackingRecord, incident_id: str) -> bool:
    """
    Mark one incident as resolved.

    An unknown ID is a no-op and returns False.
    """
    for incident in record.incidents:
        if incident.id == incident_id:
            incident.resolved = True
            record.touch()
            return True
    return False


def open_incidents(record: TrackingRecord) -> list[Incident]:
    return [i for i in record.incidents if not i.resolved]
