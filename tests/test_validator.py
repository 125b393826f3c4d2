"""Tests for the data-quality rule set (CRITICAL drops, WARNING metadata)."""

import logging
from datetime import date

import pytest

from repfinder.jurisdiction.registry import PlaceRegistry
from repfinder.quality.validator import (
    DataQualityValidator,
    FORBIDDEN_VALUES,
    in_state_bounds,
    is_forbidden,
    is_sentinel_coordinate,
)
from repfinder.schemas.models import ContactInfo, DistrictAssignment, MailingAddress, RepresentativeRecord

from conftest import make_jurisdiction, make_location


def _record(**overrides) -> RepresentativeRecord:
    fields = {
        "external_id": "sac-bos-1",
        "name": "Phil Serna",
        "title": "Supervisor",
        "level": "county",
        "chamber": "board",
        "district": 1,
        "party": "Nonpartisan",
        "jurisdiction_name": "Sacramento County",
        "contact": ContactInfo(
            phone="916-874-5485",
            email="SupervisorSerna@saccounty.gov",
            address=MailingAddress(street="700 H Street", city="Sacramento", state="CA", postal_code="95814"),
        ),
        "term_end": "2027-01-04",
        "source": "county_registry",
    }
    fields.update(overrides)
    return RepresentativeRecord(**fields)


def _rules(results, severity=None):
    return {r.rule for r in results if severity is None or r.severity == severity}


class TestHelpers:

    @pytest.mark.parametrize("value", ["Unknown", "unknown city", "  N/A ", "TBD", "", "   ", "null"])
    def test_forbidden(self, value):
        assert is_forbidden(value)

    @pytest.mark.parametrize("value", ["Sacramento", "Unknownville", None, 0])
    def test_not_forbidden(self, value):
        assert not is_forbidden(value)

    def test_forbidden_values_are_normalized(self):
        assert all(v == v.lower().strip() for v in FORBIDDEN_VALUES)

    def test_sentinels(self):
        assert is_sentinel_coordinate(0.0, 0.0)
        assert is_sentinel_coordinate(36.778, -119.418)
        assert not is_sentinel_coordinate(38.5804, -121.4922)

    def test_bounds(self):
        assert in_state_bounds(38.5804, -121.4922)
        assert not in_state_bounds(47.6, -122.3)


class TestValidateRecord:

    def test_clean_record(self, validator):
        assert validator.validate_record(_record()) == []

    @pytest.mark.parametrize("overrides, field, rule", [
        ({"name": "Unknown"}, "name", "forbidden_value"),
        ({"name": ""}, "name", "required"),
        ({"jurisdiction_name": "N/A"}, "jurisdiction_name", "forbidden_value"),
        ({"jurisdiction_name": "Sacramento"}, "jurisdiction_name", "county_not_authoritative"),
        ({"district": 12}, "district", "district_out_of_range"),
        ({"district": 0}, "district", "district_out_of_range"),
    ])
    def test_critical(self, validator, overrides, field, rule):
        results = validator.validate_record(_record(**overrides))
        critical = [r for r in results if r.severity == "CRITICAL"]
        assert [(r.field, r.rule) for r in critical] == [(field, rule)]
        assert critical[0].subject == "sac-bos-1"

    def test_placeholder_address_city_is_critical(self, validator):
        record = _record(contact=ContactInfo(address=MailingAddress(city="Unknown City", state="CA")))
        results = validator.validate_record(record)
        assert ("contact.address.city", "forbidden_value") in {(r.field, r.rule) for r in results}

    def test_district_bounds_follow_chamber(self, validator):
        senate = _record(
            external_id="ocd-person/x", level="state", chamber="senate", district=40,
            jurisdiction_name="California", title="State Senator",
        )
        assembly = senate.model_copy(update={"chamber": "assembly", "district": 80})
        too_high = senate.model_copy(update={"district": 41})
        assert _rules(validator.validate_record(senate), "CRITICAL") == set()
        assert _rules(validator.validate_record(assembly), "CRITICAL") == set()
        assert _rules(validator.validate_record(too_high), "CRITICAL") == {"district_out_of_range"}

    def test_district_on_at_large_office_is_critical(self, validator):
        sheriff = _record(title="Sheriff", chamber="executive", district=99)
        senator = _record(
            external_id="P000145", level="federal", chamber="senate", district=3,
            jurisdiction_name="California", title="U.S. Senator",
        )
        assert _rules(validator.validate_record(sheriff), "CRITICAL") == {"district_not_applicable"}
        assert _rules(validator.validate_record(senator), "CRITICAL") == {"district_not_applicable"}

    def test_district_without_chamber_uses_level_range(self, validator):
        assert _rules(validator.validate_record(_record(chamber=None, district=11)), "CRITICAL") == set()
        results = validator.validate_record(_record(chamber=None, district=500))
        assert _rules(results, "CRITICAL") == {"district_out_of_range"}

    def test_moved_record_checked_against_new_level(self, validator):
        moved = _record(
            level="municipal", chamber="board", district=16,
            jurisdiction_name="Sacramento", title="Council Member",
        )
        assert _rules(validator.validate_record(moved), "CRITICAL") == {"district_out_of_range"}
        assert _rules(validator.validate_record(moved.model_copy(update={"district": 15})), "CRITICAL") == set()

    def test_unreadable_county_set_is_a_warning(self, tmp_path):
        registry = PlaceRegistry({"data": {"counties": str(tmp_path / "missing.json")}})
        validator = DataQualityValidator(registry, {}, today=lambda: date(2026, 10, 19))
        results = validator.validate_record(_record())
        assert _rules(results, "WARNING") == {"county_unverified"}
        assert _rules(results, "CRITICAL") == set()

    @pytest.mark.parametrize("overrides, rule", [
        ({"name": "Phil2 Serna"}, "unusual_name_pattern"),
        ({"name": "Cher"}, "unusual_name_pattern"),
        ({"contact": ContactInfo(phone="call the office")}, "malformed_phone"),
        ({"contact": ContactInfo(email="serna-at-saccounty")}, "malformed_email"),
        ({"term_end": "2025-01-06"}, "expired_term"),
        ({"term_end": "next year"}, "unparseable_date"),
        ({"party": "Whig"}, "unrecognized_party"),
    ])
    def test_warnings(self, validator, overrides, rule):
        results = validator.validate_record(_record(**overrides))
        assert _rules(results, "WARNING") == {rule}
        assert _rules(results, "CRITICAL") == set()

    @pytest.mark.parametrize("phone", ["916-874-5485", "(916) 874-5485", "916.874.5485", "+1 916 874 5485", "916-874-5485 ext. 12"])
    def test_phone_formats_accepted(self, validator, phone):
        assert validator.validate_record(_record(contact=ContactInfo(phone=phone))) == []


class TestFilterRecords:

    def test_drops_critical_and_logs(self, validator, caplog):
        good = _record()
        bad = _record(external_id="sac-bos-x", name="Unknown City")
        with caplog.at_level(logging.WARNING, logger="repfinder.quality.validator"):
            kept, findings = validator.filter_records([good, bad])

        assert kept == [good]
        assert [(f.subject, f.rule, f.severity) for f in findings] == [
            ("sac-bos-x", "forbidden_value", "CRITICAL"),
        ]
        assert any(
            "sac-bos-x" in r.message and "field=name" in r.message and "rule=forbidden_value" in r.message
            for r in caplog.records
        )

    def test_keeps_records_with_warnings(self, validator):
        record = _record(party="Whig")
        kept, findings = validator.filter_records([record])
        assert kept == [record]
        assert [f.rule for f in findings] == ["unrecognized_party"]


class TestValidateLocation:

    def test_clean_location(self, validator):
        assert validator.validate_location(make_location()) == []

    @pytest.mark.parametrize("overrides, rule", [
        ({"county": "Unknown"}, "forbidden_value"),
        ({"county": "Washoe County"}, "county_not_authoritative"),
        ({"state": "NV"}, "state_mismatch"),
        ({"latitude": 0.0, "longitude": 0.0}, "sentinel_coordinate"),
        ({"latitude": 47.6, "longitude": -122.3}, "coordinates_out_of_bounds"),
        ({"districts": DistrictAssignment(congressional=53)}, "district_out_of_range"),
        ({"districts": DistrictAssignment(state_senate=41)}, "district_out_of_range"),
        ({"districts": DistrictAssignment(state_assembly=81)}, "district_out_of_range"),
    ])
    def test_critical(self, validator, overrides, rule):
        results = validator.validate_location(make_location(**overrides))
        assert rule in _rules(results, "CRITICAL")

    def test_warnings(self, validator):
        results = validator.validate_location(make_location(locality="unknown", confidence=0.35))
        assert _rules(results, "WARNING") == {"placeholder_locality", "low_confidence"}
        assert _rules(results, "CRITICAL") == set()


class TestValidateJurisdiction:

    def test_clean(self, validator):
        assert validator.validate_jurisdiction(make_jurisdiction()) == []

    def test_forbidden_name(self, validator):
        results = validator.validate_jurisdiction(make_jurisdiction(name="Unknown City"))
        assert _rules(results, "CRITICAL") == {"forbidden_value"}

    def test_non_authoritative_county(self, validator):
        results = validator.validate_jurisdiction(make_jurisdiction(county="Sacramento"))
        assert _rules(results, "CRITICAL") == {"county_not_authoritative"}
