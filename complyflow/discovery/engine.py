"""Requirement discovery over a declarative rule corpus."""

from __future__ import annotations

import hashlib
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Iterable, Mapping, Optional, Sequence

from ..exceptions import ProfileFieldError
from .entities import (
    BusinessProfile,
    DiscoveryResult,
    FieldIssue,
    Location,
    Requirement,
    RequirementRule,
    RequirementTemplate,
)
from .rules import evaluate, make_lookup, parse_location, referenced_fields

logger = logging.getLogger(__name__)

PROFILE_ISSUE = "profile"


def requirement_id_for(key: tuple[str, str, str]) -> str:
    """Deterministic identifier for a ``(category, jurisdiction, authority)`` key."""
    digest = hashlib.sha1("|".join(key).encode()).hexdigest()[:16]
    return f"req-{digest}"


def _render(template: RequirementTemplate, location: Optional[Location]) -> dict[str, str]:
    values = {"city": "", "county": "", "state": ""}
    if location is not None:
        values.update(
            {k: v for k, v in location.model_dump(include={"city", "county", "state"}).items() if v}
        )
    return {
        "name": template.name.format_map(values),
        "license_category": template.license_category.format_map(values),
        "issuing_authority": template.issuing_authority.format_map(values),
        "jurisdiction": template.jurisdiction.format_map(values),
        "description": template.description.format_map(values),
    }


def _coerce_profile(
    profile: BusinessProfile | Mapping[str, Any],
) -> tuple[BusinessProfile, dict[str, str]]:
    if isinstance(profile, BusinessProfile):
        return profile, {}
    return BusinessProfile.lenient(profile)


def _validated(rules: Sequence[RequirementRule]) -> tuple[RequirementRule, ...]:
    from .corpus import validate_corpus

    rules = tuple(rules)
    validate_corpus(rules)
    return rules


class RequirementDiscoveryEngine:
    """Evaluate business profiles against a rule corpus.

    The engine holds no mutable state, so a single instance can serve many
    threads at once.
    """

    def __init__(
        self,
        rules: Optional[Sequence[RequirementRule]] = None,
        max_workers: Optional[int] = None,
    ) -> None:
        if rules is None:
            from .corpus import DEFAULT_RULES

            self._rules = DEFAULT_RULES
        else:
            self._rules = _validated(rules)
        self._max_workers = max_workers

    @property
    def rules(self) -> tuple[RequirementRule, ...]:
        return self._rules

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------
    def _evaluate_rule(
        self,
        rule: RequirementRule,
        profile: BusinessProfile,
        issues: list[FieldIssue],
        invalid: Mapping[str, str],
    ) -> list[tuple[RequirementTemplate, Optional[Location]]]:
        fields = referenced_fields(rule.when)
        if rule.for_each == "locations":
            fields.add("locations")
        blocked = sorted(fields & invalid.keys())
        if blocked:
            issues.extend(
                FieldIssue(field=field, rule_id=rule.rule_id, message=invalid[field])
                for field in blocked
            )
            return []

        scopes: list[Optional[Location]] = [None]
        if rule.for_each == "locations":
            scopes = []
            for raw in profile.locations:
                try:
                    scopes.append(parse_location(raw))
                except ProfileFieldError as exc:
                    issues.append(
                        FieldIssue(field=exc.field, rule_id=rule.rule_id, message=exc.reason)
                    )

        matches: list[tuple[RequirementTemplate, Optional[Location]]] = []
        for location in scopes:
            try:
                applies = evaluate(rule.when, make_lookup(profile, location))
            except ProfileFieldError as exc:
                issues.append(
                    FieldIssue(field=exc.field, rule_id=rule.rule_id, message=exc.reason)
                )
                continue
            if applies:
                matches.extend((template, location) for template in rule.requirements)
        return matches

    def discover(
        self,
        profile: BusinessProfile | Mapping[str, Any],
        rules: Optional[Sequence[RequirementRule]] = None,
        generation: int = 1,
    ) -> DiscoveryResult:
        """Return the prioritized, de-duplicated requirements for ``profile``.

        Every rule is evaluated independently. Candidates sharing a
        ``(license_category, jurisdiction, issuing_authority)`` key collapse
        into the highest priority one, with ties going to the lowest rule id,
        so the output never depends on corpus order.

        A malformed profile field falls back to its default. Rules reading it
        are skipped and reported as issues; a field no rule reads is reported
        under the ``profile`` rule id.
        """

        profile, invalid = _coerce_profile(profile)
        corpus = self._rules if rules is None else _validated(rules)
        issues: list[FieldIssue] = []
        best: dict[tuple[str, str, str], tuple[int, str, dict[str, str]]] = {}
        sources: dict[tuple[str, str, str], set[str]] = {}

        for rule in corpus:
            for template, location in self._evaluate_rule(rule, profile, issues, invalid):
                fields = _render(template, location)
                key = (
                    fields["license_category"],
                    fields["jurisdiction"],
                    fields["issuing_authority"],
                )
                rank = (template.priority.rank, rule.rule_id)
                sources.setdefault(key, set()).add(rule.rule_id)
                current = best.get(key)
                if current is None or rank < current[:2]:
                    best[key] = (*rank, {**fields, "priority": template.priority.value})

        requirements = [
            Requirement(
                requirement_id=requirement_id_for(key),
                rule_ids=tuple(sorted(sources[key])),
                generation=generation,
                **fields,
            )
            for key, (_, _, fields) in best.items()
        ]
        requirements.sort(key=lambda req: req.sort_key)

        reported = {issue.field for issue in issues}
        issues.extend(
            FieldIssue(field=field, rule_id=PROFILE_ISSUE, message=message)
            for field, message in invalid.items()
            if field not in reported
        )
        unique_issues = sorted(
            set(issues), key=lambda issue: (issue.field, issue.rule_id, issue.message)
        )
        if unique_issues:
            logger.warning(
                f"Discovery for profile produced {len(unique_issues)} field issue(s); result is partial"
            )
        return DiscoveryResult(
            requirements=tuple(requirements),
            partial=bool(unique_issues),
            issues=tuple(unique_issues),
            profile_digest=profile.digest(),
        )

    def discover_many(
        self,
        profiles: Iterable[BusinessProfile | Mapping[str, Any]],
        rules: Optional[Sequence[RequirementRule]] = None,
    ) -> list[DiscoveryResult]:
        """Evaluate several profiles concurrently, preserving input order."""
        with ThreadPoolExecutor(max_workers=self._max_workers) as pool:
            return list(pool.map(lambda p: self.discover(p, rules), profiles))


def discover(
    profile: BusinessProfile | Mapping[str, Any],
    rule_corpus: Optional[Sequence[RequirementRule]] = None,
    generation: int = 1,
) -> DiscoveryResult:
    """Module level shortcut for :meth:`RequirementDiscoveryEngine.discover`."""
    return RequirementDiscoveryEngine(rule_corpus).discover(profile, generation=generation)


def supersede(
    previous: Iterable[Requirement], result: DiscoveryResult, generation: int
) -> list[Requirement]:
    """Return requirement history with ``result`` as the new active generation.

    Earlier active requirements are replaced by ``stale`` copies; nothing is
    dropped from the history.
    """

    history = [
        req.model_copy(update={"status": "stale"}) if req.status == "active" else req
        for req in previous
    ]
    history.extend(
        req.model_copy(update={"generation": generation, "status": "active"})
        for req in result.requirements
    )
    return history


__all__ = [
    "RequirementDiscoveryEngine",
    "discover",
    "supersede",
    "requirement_id_for",
]
