"""License requirement discovery."""

from .corpus import DEFAULT_RULES, get_rule_corpus, load_rule_corpus, validate_corpus
from .engine import RequirementDiscoveryEngine, discover, requirement_id_for, supersede
from .entities import (
    BusinessProfile,
    Condition,
    DiscoveryResult,
    FieldCondition,
    FieldIssue,
    Location,
    Requirement,
    RequirementRule,
    RequirementTemplate,
)
from .rules import evaluate, parse_location

__all__ = [
    "BusinessProfile",
    "Condition",
    "DiscoveryResult",
    "FieldCondition",
    "FieldIssue",
    "Location",
    "Requirement",
    "RequirementRule",
    "RequirementTemplate",
    "RequirementDiscoveryEngine",
    "DEFAULT_RULES",
    "discover",
    "supersede",
    "requirement_id_for",
    "evaluate",
    "parse_location",
    "load_rule_corpus",
    "get_rule_corpus",
    "validate_corpus",
]
