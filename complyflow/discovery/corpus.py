"""Default license requirement rules and corpus loading."""

from __future__ import annotations

import logging
from pathlib import Path
from string import Formatter
from typing import Optional, Sequence

import yaml
from pydantic import ValidationError

from ..config import ComplyFlowConfig
from ..contracts import Priority
from ..exceptions import DefinitionError, DuplicateDefinitionError
from .entities import Condition, FieldCondition, RequirementRule, RequirementTemplate
from .rules import LOCATION_PREFIX, referenced_fields

logger = logging.getLogger(__name__)

SALES_CHANNELS_REQUIRING_PERMIT = ("retail", "online", "wholesale")
TEMPLATE_FIELDS = ("name", "license_category", "issuing_authority", "jurisdiction", "description")
LOCATION_PLACEHOLDERS = frozenset({"city", "county", "state"})


def _professional(rule_id: str, keywords: Sequence[str], name: str, authority: str) -> RequirementRule:
    return RequirementRule(
        rule_id=rule_id,
        when=Condition(
            all=(FieldCondition(field="specialized_services", op="contains_any", value=list(keywords)),)
        ),
        requirements=(
            RequirementTemplate(
                name=name,
                license_category="professional",
                priority=Priority.HIGH,
                issuing_authority=authority,
                jurisdiction="State",
                description=f"Required to offer {', '.join(keywords)} services",
            ),
        ),
    )


DEFAULT_RULES: tuple[RequirementRule, ...] = (
    RequirementRule(
        rule_id="general_business_license",
        description="Every business needs a general operating license",
        requirements=(
            RequirementTemplate(
                name="General Business License",
                license_category="general",
                priority=Priority.MEDIUM,
                issuing_authority="Local Licensing Authority",
                jurisdiction="Local",
                description="General license required to operate a business",
            ),
        ),
    ),
    RequirementRule(
        rule_id="city_business_license",
        for_each="locations",
        when=Condition(all=(FieldCondition(field="location.city", op="not_empty"),)),
        requirements=(
            RequirementTemplate(
                name="{city} Business License",
                license_category="general",
                priority=Priority.MEDIUM,
                issuing_authority="City of {city}",
                jurisdiction="{city}, {state}",
                description="General business license required to operate within {city} city limits",
            ),
        ),
    ),
    RequirementRule(
        rule_id="county_business_permit",
        for_each="locations",
        when=Condition(
            all=(
                FieldCondition(field="has_physical_location", op="truthy"),
                FieldCondition(field="location.county", op="not_empty"),
            )
        ),
        requirements=(
            RequirementTemplate(
                name="{county} County Business Permit",
                license_category="general",
                priority=Priority.MEDIUM,
                issuing_authority="{county} County",
                jurisdiction="{county} County, {state}",
                description="County business permit for operating in {county} County",
            ),
        ),
    ),
    RequirementRule(
        rule_id="state_sales_tax",
        for_each="locations",
        when=Condition(
            all=(
                FieldCondition(
                    field="sales_channels",
                    op="contains_any",
                    value=list(SALES_CHANNELS_REQUIRING_PERMIT),
                ),
            )
        ),
        requirements=(
            RequirementTemplate(
                name="{state} Sales Tax Permit",
                license_category="sales-tax",
                priority=Priority.HIGH,
                issuing_authority="{state} Department of Revenue",
                jurisdiction="{state}",
                description="Required for businesses selling taxable goods or services in {state}",
            ),
        ),
    ),
    _professional("cpa_license", ("accounting", "cpa"), "CPA License", "State Board of Accountancy"),
    _professional("attorney_license", ("legal", "attorney"), "Attorney Bar License", "State Bar Association"),
    _professional(
        "real_estate_license",
        ("real estate",),
        "Real Estate Broker License",
        "State Real Estate Commission",
    ),
    RequirementRule(
        rule_id="food_service_permit",
        when=Condition(all=(FieldCondition(field="handles_food", op="truthy"),)),
        requirements=(
            RequirementTemplate(
                name="Food Service Permit",
                license_category="health-safety",
                priority=Priority.CRITICAL,
                issuing_authority="Local Health Department",
                jurisdiction="County",
                description="Required for businesses handling, preparing, or serving food",
            ),
        ),
    ),
    RequirementRule(
        rule_id="general_contractor_license",
        when=Condition(all=(FieldCondition(field="industry_code", op="startswith", value="23"),)),
        requirements=(
            RequirementTemplate(
                name="General Contractor License",
                license_category="industry-specific",
                priority=Priority.HIGH,
                issuing_authority="State Contractor Licensing Board",
                jurisdiction="State",
                description="Required for construction and contracting work",
            ),
        ),
    ),
    RequirementRule(
        rule_id="youth_services_clearance",
        when=Condition(all=(FieldCondition(field="serves_minors", op="truthy"),)),
        requirements=(
            RequirementTemplate(
                name="Youth Services Background Clearance",
                license_category="background-check",
                priority=Priority.HIGH,
                issuing_authority="State Department of Social Services",
                jurisdiction="State",
                description="Background clearance for staff working with minors",
            ),
        ),
    ),
    RequirementRule(
        rule_id="employer_registration",
        when=Condition(all=(FieldCondition(field="has_employees", op="truthy"),)),
        requirements=(
            RequirementTemplate(
                name="Employer Withholding Registration",
                license_category="employment",
                priority=Priority.MEDIUM,
                issuing_authority="State Workforce Agency",
                jurisdiction="State",
                description="Registration for payroll withholding and unemployment insurance",
            ),
        ),
    ),
)


def _placeholders(rule: RequirementRule, text: str) -> set[str]:
    try:
        return {name for _, name, _, _ in Formatter().parse(text) if name is not None}
    except ValueError as exc:
        raise DefinitionError(
            f"Rule '{rule.rule_id}' has a malformed template {text!r}: {exc}",
            "INVALID_RULE",
            {"rule_id": rule.rule_id, "template": text},
        ) from None


def _check_templates(rule: RequirementRule) -> None:
    allowed = LOCATION_PLACEHOLDERS if rule.for_each == "locations" else frozenset()
    for template in rule.requirements:
        for field in TEMPLATE_FIELDS:
            unknown = sorted(_placeholders(rule, getattr(template, field)) - allowed)
            if unknown:
                raise DefinitionError(
                    f"Rule '{rule.rule_id}' uses unsupported placeholder(s) "
                    f"{', '.join(unknown)} in {field}",
                    "INVALID_RULE",
                    {"rule_id": rule.rule_id, "field": field, "placeholders": unknown},
                )


def validate_corpus(rules: Sequence[RequirementRule]) -> None:
    """Reject duplicate rule ids and location fields outside location rules.

    Templates may only use the ``{city}``, ``{county}`` and ``{state}``
    placeholders, and only in rules that iterate over locations.
    """

    seen: set[str] = set()
    for rule in rules:
        if rule.rule_id in seen:
            raise DuplicateDefinitionError("rule_corpus", "rule", rule.rule_id)
        seen.add(rule.rule_id)
        _check_templates(rule)
        if rule.for_each is None:
            scoped = sorted(
                f for f in referenced_fields(rule.when) if f.startswith(LOCATION_PREFIX)
            )
            if scoped:
                raise DefinitionError(
                    f"Rule '{rule.rule_id}' reads {', '.join(scoped)} without for_each: locations",
                    "INVALID_RULE",
                    {"rule_id": rule.rule_id, "fields": scoped},
                )


def load_rule_corpus(path: str | Path) -> tuple[RequirementRule, ...]:
    """Load a YAML rule corpus with a top-level ``rules`` list."""

    with open(path) as f:
        data = yaml.safe_load(f) or {}
    try:
        rules = tuple(RequirementRule.model_validate(item) for item in data.get("rules", []))
    except ValidationError as exc:
        raise DefinitionError(
            f"Invalid rule corpus {path}: {exc}", "INVALID_RULE", {"path": str(path)}
        ) from exc
    validate_corpus(rules)
    logger.info(f"Loaded {len(rules)} discovery rules from {path}")
    return rules


def get_rule_corpus(config: Optional[ComplyFlowConfig] = None) -> tuple[RequirementRule, ...]:
    """Return the configured corpus, or the built-in rules when none is set."""
    if config is not None and config.rules_path:
        return load_rule_corpus(config.rules_path)
    return DEFAULT_RULES


validate_corpus(DEFAULT_RULES)


__all__ = [
    "DEFAULT_RULES",
    "validate_corpus",
    "load_rule_corpus",
    "get_rule_corpus",
]
