"""Tests for license requirement discovery."""

import pytest
from pydantic import ValidationError

from complyflow.contracts import Priority
from complyflow.discovery import (
    DEFAULT_RULES,
    BusinessProfile,
    Condition,
    FieldCondition,
    RequirementDiscoveryEngine,
    RequirementRule,
    RequirementTemplate,
    discover,
    evaluate,
    load_rule_corpus,
    parse_location,
    requirement_id_for,
    supersede,
    validate_corpus,
)
from complyflow.discovery.rules import make_lookup
from complyflow.exceptions import DefinitionError, DuplicateDefinitionError, ProfileFieldError


def _rule(rule_id, priority, when=None, category="general", authority="City Hall"):
    return RequirementRule(
        rule_id=rule_id,
        when=when or Condition(),
        requirements=(
            RequirementTemplate(
                name=f"{rule_id} license",
                license_category=category,
                priority=priority,
                issuing_authority=authority,
                jurisdiction="Local",
            ),
        ),
    )


def test_restaurant_profile_orders_by_priority():
    result = discover({"industry": "72", "handlesFood": True})

    assert result.names() == ["Food Service Permit", "General Business License"]
    assert result[0].priority == Priority.CRITICAL
    assert result[1].priority == Priority.MEDIUM
    assert not result.partial


def test_result_independent_of_corpus_order():
    profile = {"industry": "72", "handlesFood": True, "hasEmployees": True}
    forward = discover(profile)
    backward = discover(profile, tuple(reversed(DEFAULT_RULES)))

    assert forward.requirements == backward.requirements
    assert discover(profile) == forward


def test_integer_industry_code_is_accepted():
    result = discover({"industry": 236220})
    assert "General Contractor License" in result.names()
    assert not result.partial


def test_malformed_field_marks_result_partial():
    result = discover({"industry": "restaurant", "handlesFood": True})

    assert result.partial
    assert [(i.field, i.rule_id) for i in result.issues] == [
        ("industry_code", "general_contractor_license")
    ]
    # Other rules still produce their requirements.
    assert result.names() == ["Food Service Permit", "General Business License"]


def test_bad_flag_skips_only_rules_reading_it():
    result = discover({"industry": "72", "handlesFood": "maybe", "hasEmployees": True})

    assert result.partial
    (issue,) = result.issues
    assert (issue.field, issue.rule_id) == ("handles_food", "food_service_permit")
    assert "boolean" in issue.message
    assert result.names() == ["General Business License", "Employer Withholding Registration"]


def test_bad_list_field_falls_back_to_default():
    result = discover({"industry": "72", "activities": 5, "salesChannels": 3})

    assert result.partial
    assert [(i.field, i.rule_id) for i in result.issues] == [
        ("activities", "profile"),
        ("sales_channels", "state_sales_tax"),
    ]
    assert result.names() == ["General Business License"]

    profile, invalid = BusinessProfile.lenient({"activities": 5, "servesMinors": True})
    assert profile.activities == []
    assert profile.serves_minors is True
    assert set(invalid) == {"activities"}


def test_location_rules_render_jurisdictions():
    result = discover(
        {
            "operatingLocations": ["Austin, Travis County, TX"],
            "hasPhysicalLocation": True,
            "salesChannels": ["Retail store"],
        }
    )

    assert result.names() == [
        "TX Sales Tax Permit",
        "Austin Business License",
        "General Business License",
        "Travis County Business Permit",
    ]
    sales_tax = result[0]
    assert sales_tax.issuing_authority == "TX Department of Revenue"
    assert sales_tax.requirement_id == requirement_id_for(("sales-tax", "TX", "TX Department of Revenue"))


def test_same_state_locations_collapse():
    result = discover(
        {
            "operatingLocations": ["Austin, TX", "Dallas, TX"],
            "salesChannels": ["online"],
        }
    )
    sales_tax = [req for req in result.requirements if req.license_category == "sales-tax"]
    assert len(sales_tax) == 1
    assert sales_tax[0].rule_ids == ("state_sales_tax",)
    assert {"Austin Business License", "Dallas Business License"} <= set(result.names())


def test_unparseable_location_is_reported():
    result = discover({"operatingLocations": ["Somewhere nice"]})

    assert result.partial
    assert {issue.field for issue in result.issues} == {"locations"}
    assert result.names() == ["General Business License"]


def test_duplicate_key_keeps_highest_priority():
    rules = (
        _rule("b_rule", Priority.MEDIUM),
        _rule("a_rule", Priority.HIGH),
        _rule("c_rule", Priority.HIGH),
    )
    result = RequirementDiscoveryEngine(rules).discover({})

    assert len(result) == 1
    assert result[0].name == "a_rule license"
    assert result[0].priority == Priority.HIGH
    assert result[0].rule_ids == ("a_rule", "b_rule", "c_rule")


def test_operators():
    profile = BusinessProfile(
        industry="541211",
        specializedServices=["Tax Accounting"],
        website="https://example.com",
    )
    lookup = make_lookup(profile)

    def check(op, field, value=None):
        return evaluate(FieldCondition(field=field, op=op, value=value), lookup)

    assert check("startswith", "industry_code", "54")
    assert check("contains", "specialized_services", "accounting")
    assert check("contains_any", "specialized_services", ["legal", "tax"])
    assert check("in", "industry_code", ["541211", "541110"])
    assert check("ne", "industry_code", "72")
    assert check("not_empty", "website")
    assert check("empty", "activities")
    assert check("falsy", "handles_food")
    assert not check("truthy", "serves_minors")

    with pytest.raises(ProfileFieldError):
        check("contains", "handles_food", "x")


def test_nested_conditions():
    profile = BusinessProfile(handlesFood=True, servesMinors=False)
    lookup = make_lookup(profile)
    condition = Condition.model_validate(
        {
            "all": [{"field": "handles_food", "op": "truthy"}],
            "not": {"any": [{"field": "serves_minors", "op": "truthy"}]},
        }
    )
    assert evaluate(condition, lookup)
    assert evaluate(Condition(), lookup)


def test_parse_location():
    location = parse_location("Portland, Multnomah County, or")
    assert (location.city, location.county, location.state) == ("Portland", "Multnomah", "OR")

    location = parse_location("Boise, ID")
    assert (location.city, location.county, location.state) == ("Boise", None, "ID")

    with pytest.raises(ProfileFieldError):
        parse_location("Atlantis")


def test_supersede_keeps_history():
    first = discover({"handlesFood": True})
    history = supersede([], first, 1)
    second = discover({"handlesFood": False})
    history = supersede(history, second, 2)

    assert [(r.name, r.generation, r.status) for r in history] == [
        ("Food Service Permit", 1, "stale"),
        ("General Business License", 1, "stale"),
        ("General Business License", 2, "active"),
    ]


def test_discover_many_preserves_order():
    engine = RequirementDiscoveryEngine()
    results = engine.discover_many(
        [{"handlesFood": True}, {}, {"industry": "238210"}], rules=DEFAULT_RULES
    )
    assert [len(r) for r in results] == [2, 1, 2]
    assert results[2][0].name == "General Contractor License"


def test_corpus_validation():
    with pytest.raises(DuplicateDefinitionError):
        validate_corpus([_rule("dup", Priority.LOW), _rule("dup", Priority.HIGH)])

    scoped = _rule(
        "scoped",
        Priority.LOW,
        when=Condition(all=(FieldCondition(field="location.city", op="not_empty"),)),
    )
    with pytest.raises(DefinitionError):
        validate_corpus([scoped])


def _templated(name, for_each=None):
    return RequirementRule(
        rule_id="templated",
        for_each=for_each,
        requirements=(
            RequirementTemplate(
                name=name,
                license_category="general",
                priority=Priority.LOW,
                issuing_authority="City Hall",
                jurisdiction="Local",
            ),
        ),
    )


def test_template_placeholders_are_checked_at_load():
    validate_corpus([_templated("{city} Permit", for_each="locations")])

    with pytest.raises(DefinitionError) as exc_info:
        validate_corpus([_templated("Permit {zip}", for_each="locations")])
    assert exc_info.value.details["placeholders"] == ["zip"]

    with pytest.raises(DefinitionError):
        validate_corpus([_templated("{city} Permit")])
    with pytest.raises(DefinitionError):
        validate_corpus([_templated("Permit {city", for_each="locations")])
    with pytest.raises(DefinitionError):
        RequirementDiscoveryEngine([_templated("Permit {zip}", for_each="locations")])


def test_list_operators_require_list_values(tmp_path):
    with pytest.raises(ValidationError):
        FieldCondition(field="industry_code", op="in", value="722")
    with pytest.raises(ValidationError):
        FieldCondition(field="activities", op="contains_any", value="alcohol")

    path = tmp_path / "rules.yaml"
    path.write_text(
        """
rules:
  - rule_id: food_codes
    when:
      all:
        - {field: industry_code, op: in, value: "722"}
    requirements:
      - name: Food Code Permit
        license_category: health
        priority: high
        issuing_authority: Health Department
        jurisdiction: County
"""
    )
    with pytest.raises(DefinitionError):
        load_rule_corpus(path)


def test_load_rule_corpus(tmp_path):
    path = tmp_path / "rules.yaml"
    path.write_text(
        """
rules:
  - rule_id: liquor_license
    when:
      all:
        - {field: activities, op: contains, value: alcohol}
    requirements:
      - name: Liquor License
        license_category: alcohol
        priority: critical
        issuing_authority: State Alcohol Board
        jurisdiction: State
"""
    )
    rules = load_rule_corpus(path)
    result = discover({"activities": ["Serves Alcohol"]}, rules)
    assert result.names() == ["Liquor License"]
    assert discover({"activities": ["retail"]}, rules).names() == []
