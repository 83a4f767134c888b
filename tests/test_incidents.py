"""Tests for process incidents."""

import pytest

from laundrytrack.errors import DescriptionRequiredError
from laundrytrack.incidents import (
    INCIDENT_TEMPLATES,
    build_description,
    open_incidents,
    report_incident,
    resolve_incident,
)
from laundrytrack.models import IncidentCategory, OrderState
from laundrytrack.state_machine import advance


class TestBuildDescription:
    def test_template_only(self):
        assert (
            build_description(IncidentCategory.PERSISTENT_STAIN)
            == INCIDENT_TEMPLATES[IncidentCategory.PERSISTENT_STAIN]
        )

    def test_template_with_details(self):
        description = build_description(IncidentCategory.DAMAGED_GARMENT, " torn sleeve ")
        assert description == "Garment damaged during processing - torn sleeve"

    def test_other_uses_details(self):
        assert build_description(IncidentCategory.OTHER, "Customer called") == "Customer called"

    def test_other_without_details_raises(self):
        with pytest.raises(DescriptionRequiredError) as exc_info:
            build_description(IncidentCategory.OTHER, "   ")
        assert exc_info.value.category == "other"


class TestReportIncident:
    def test_incident_on_drying_keeps_state(self, pickup_record, operator):
        advance(pickup_record, operator)
        advance(pickup_record, operator)
        assert pickup_record.state == OrderState.DRYING
        history_len = len(pickup_record.history)

        incident = report_incident(
            pickup_record, operator, IncidentCategory.MACHINE_FAILURE, "Dryer 2 stopped"
        )

        assert pickup_record.state == OrderState.DRYING
        assert len(pickup_record.history) == history_len
        assert incident.state == OrderState.DRYING
        assert incident.resolved is False
        assert incident.id.startswith("inc_")
        assert incident.actor_name == "Ana"
        assert pickup_record.incidents == [incident]

    def test_incident_ids_are_unique(self, pickup_record, operator):
        first = report_incident(pickup_record, operator, IncidentCategory.OTHER, "a")
        second = report_incident(pickup_record, operator, IncidentCategory.OTHER, "b")
        assert first.id != second.id


class TestResolveIncident:
    def test_resolve(self, pickup_record, operator):
        incident = report_incident(
            pickup_record, operator, IncidentCategory.MISSING_GARMENT, "One sock"
        )

        assert resolve_incident(pickup_record, incident.id) is True
        assert pickup_record.incidents[0].resolved is True
        assert open_incidents(pickup_record) == []

    def test_resolve_unknown_id_is_noop(self, pickup_record, operator):
        report_incident(pickup_record, operator, IncidentCategory.OTHER, "note")

        assert resolve_incident(pickup_record, "inc_missing") is False
        assert len(open_incidents(pickup_record)) == 1

    def test_resolve_only_matching_entry(self, pickup_record, operator):
        first = report_incident(pickup_record, operator, IncidentCategory.OTHER, "a")
        second = report_incident(pickup_record, operator, IncidentCategory.OTHER, "b")

        resolve_incident(pickup_record, second.id)

        assert open_incidents(pickup_record) == [first]
