"""Typed contracts for license requirement discovery."""

from __future__ import annotations

import hashlib
import json
from typing import Any, Literal, Mapping, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from ..contracts import Priority

Operator = Literal[
    "eq",
    "ne",
    "in",
    "contains",
    "contains_any",
    "startswith",
    "truthy",
    "falsy",
    "empty",
    "not_empty",
]


class Location(BaseModel):
    """Operating location split into its jurisdictions."""

    city: Optional[str] = None
    county: Optional[str] = None
    state: Optional[str] = None
    raw: str = ""

    model_config = ConfigDict(frozen=True)


class BusinessProfile(BaseModel):
    """Facts about a business that rules are evaluated against.

    Unknown fields are kept so corpus rules can reference attributes the
    profile form adds later without a model change.
    """

    industry_code: Optional[str] = Field(default=None, alias="industry")
    activities: list[str] = Field(default_factory=list)
    specialized_services: list[str] = Field(
        default_factory=list, alias="specializedServices"
    )
    sales_channels: list[str] = Field(default_factory=list, alias="salesChannels")
    locations: list[Union[Location, str]] = Field(
        default_factory=list, alias="operatingLocations"
    )
    handles_food: bool = Field(default=False, alias="handlesFood")
    serves_minors: bool = Field(default=False, alias="servesMinors")
    has_physical_location: bool = Field(default=False, alias="hasPhysicalLocation")
    has_employees: bool = Field(default=False, alias="hasEmployees")

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    @field_validator("industry_code", mode="before")
    @classmethod
    def _coerce_code(cls, v: Any) -> Any:
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator(
        "activities", "specialized_services", "sales_channels", "locations", mode="before"
    )
    @classmethod
    def _wrap_scalar(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, (str, dict)):
            return [v]
        return v

    @classmethod
    def lenient(cls, data: Mapping[str, Any]) -> tuple[BusinessProfile, dict[str, str]]:
        """Validate ``data``, replacing malformed fields with their defaults.

        Returns the profile and a mapping of each dropped field name to the
        validation message that rejected it.
        """
        values = dict(data)
        try:
            return cls.model_validate(values), {}
        except ValidationError as exc:
            errors = exc.errors()
            if any(not error["loc"] for error in errors):
                raise

        names: dict[str, str] = {}
        for name, info in cls.model_fields.items():
            names[name] = name
            if info.alias:
                names[info.alias] = name

        invalid: dict[str, str] = {}
        for error in errors:
            key = str(error["loc"][0])
            field = names.get(key, key)
            invalid.setdefault(field, error["msg"])
            for alias, name in names.items():
                if name == field:
                    values.pop(alias, None)
            values.pop(key, None)
        return cls.model_validate(values), invalid

    def get_field(self, name: str) -> Any:
        """Return the value of a declared or extra field, ``None`` if absent."""
        if name in type(self).model_fields:
            return getattr(self, name)
        return (self.model_extra or {}).get(name)

    def digest(self) -> str:
        """Stable fingerprint of the profile contents."""
        payload = json.dumps(self.model_dump(mode="json"), sort_keys=True)
        return hashlib.sha256(payload.encode()).hexdigest()


class FieldCondition(BaseModel):
    """Single comparison of a profile field against a value."""

    field: str
    op: Operator = "eq"
    value: Any = None

    model_config = ConfigDict(frozen=True, extra="forbid")

    @model_validator(mode="after")
    def _check_value(self) -> FieldCondition:
        if self.op in ("in", "contains_any") and not isinstance(self.value, (list, tuple)):
            raise ValueError(f"operator {self.op!r} requires a list value")
        return self


class Condition(BaseModel):
    """Boolean combination of predicates; an empty condition always holds."""

    all: tuple[Union[FieldCondition, Condition], ...] = Field(default_factory=tuple)
    any: tuple[Union[FieldCondition, Condition], ...] = Field(default_factory=tuple)
    not_: Optional[Union[FieldCondition, Condition]] = Field(default=None, alias="not")

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)


class RequirementTemplate(BaseModel):
    """Requirement produced when a rule matches.

    Text fields may use ``{city}``, ``{county}`` and ``{state}`` placeholders
    when the owning rule iterates over locations.
    """

    name: str
    license_category: str
    priority: Priority
    issuing_authority: str
    jurisdiction: str
    description: str = ""

    model_config = ConfigDict(frozen=True)


class RequirementRule(BaseModel):
    rule_id: str
    description: str = ""
    when: Condition = Field(default_factory=Condition)
    for_each: Optional[Literal["locations"]] = None
    requirements: tuple[RequirementTemplate, ...] = Field(..., min_length=1)

    model_config = ConfigDict(frozen=True)


class Requirement(BaseModel):
    """License or permit a business must obtain."""

    requirement_id: str
    name: str
    license_category: str
    priority: Priority
    issuing_authority: str
    jurisdiction: str
    description: str = ""
    rule_ids: tuple[str, ...] = Field(default_factory=tuple)
    generation: int = 1
    status: Literal["active", "stale"] = "active"

    model_config = ConfigDict(frozen=True)

    @property
    def dedup_key(self) -> tuple[str, str, str]:
        return (self.license_category, self.jurisdiction, self.issuing_authority)

    @property
    def sort_key(self) -> tuple[int, str, str, str, str]:
        return (
            self.priority.rank,
            self.jurisdiction,
            self.license_category,
            self.issuing_authority,
            self.name,
        )


class FieldIssue(BaseModel):
    """Profile field a rule could not evaluate."""

    field: str
    rule_id: str
    message: str

    model_config = ConfigDict(frozen=True)


class DiscoveryResult(BaseModel):
    """Ordered requirements for one profile plus evaluation diagnostics."""

    requirements: tuple[Requirement, ...] = Field(default_factory=tuple)
    partial: bool = False
    issues: tuple[FieldIssue, ...] = Field(default_factory=tuple)
    profile_digest: str = ""

    model_config = ConfigDict(frozen=True)

    def __len__(self) -> int:
        return len(self.requirements)

    def __getitem__(self, index: int) -> Requirement:
        return self.requirements[index]

    def names(self) -> list[str]:
        return [req.name for req in self.requirements]


__all__ = [
    "Operator",
    "Location",
    "BusinessProfile",
    "FieldCondition",
    "Condition",
    "RequirementTemplate",
    "RequirementRule",
    "Requirement",
    "FieldIssue",
    "DiscoveryResult",
]
