"""Typed rule payloads, one model per rule category.

Rules are stored with a free-form JSON ``rule_logic`` column. On read the
payload is parsed into the model for the rule's category, so evaluators work
with typed fields instead of probing optional keys. Payloads written by
clients in camelCase (``preferredTherapistGender``) are accepted too.
"""

from datetime import UTC, datetime
from typing import Annotated, Literal, NamedTuple
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from practice_scheduler.core.exceptions import ValidationException
from practice_scheduler.schemas.organizations import Gender, RuleRecord
from practice_scheduler.scheduling.timeslots import WEEKDAYS, ensure_utc

Severity = Literal["required", "preferred"]


class EntityBinding(BaseModel):
    """Resolves a name mentioned in a rule to one staff member or patient."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    mention: str
    entity_type: Literal["staff", "patient"]
    entity_id: UUID


class RuleLogicBase(BaseModel):
    """Fields shared by every rule category."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    priority: Severity = "required"
    entity_bindings: list[EntityBinding] = Field(default_factory=list)

    @property
    def is_required(self) -> bool:
        return self.priority == "required"


class GenderPairingLogic(RuleLogicBase):
    """Patients of a gender (or all) should see staff of a given gender."""

    category: Literal["gender_pairing"]
    patient_gender: Gender | Literal["any"] | None = None
    preferred_therapist_gender: Gender
    patient_ids: list[UUID] | None = None


class CertificationLogic(RuleLogicBase):
    """Staff must hold every required cert and, if listed, one allowed cert."""

    category: Literal["certification"]
    required_certifications: list[str] = Field(default_factory=list)
    allowed_certifications: list[str] = Field(default_factory=list)
    patient_ids: list[UUID] | None = None


class SessionLogic(RuleLogicBase):
    """Numeric limits on session timing and volume."""

    category: Literal["session"]
    min_gap_minutes: int | None = Field(None, ge=0)
    max_sessions_per_day: int | None = Field(None, ge=1)
    max_patient_sessions_per_day: int | None = Field(None, ge=1)
    min_duration_minutes: int | None = Field(None, ge=1)
    max_duration_minutes: int | None = Field(None, ge=1)
    staff_ids: list[UUID] | None = None


class AvailabilityLogic(RuleLogicBase):
    """Day-of-week and time-of-day restrictions."""

    category: Literal["availability"]
    staff_ids: list[UUID] | None = None
    patient_ids: list[UUID] | None = None
    allowed_days: list[str] | None = None
    blocked_days: list[str] = Field(default_factory=list)
    earliest_start: str | None = None
    latest_end: str | None = None

    @field_validator("allowed_days", "blocked_days")
    @classmethod
    def validate_days(cls, v: list[str] | None) -> list[str] | None:
        """Normalize weekday names."""
        if v is None:
            return None
        normalized = [day.strip().lower() for day in v]
        unknown = [day for day in normalized if day not in WEEKDAYS]
        if unknown:
            raise ValueError(f"Unknown weekdays: {unknown}")
        return normalized


class SpecificPairingLogic(RuleLogicBase):
    """A patient must (or must never) be paired with a staff member."""

    category: Literal["specific_pairing"]
    patient_id: UUID
    staff_id: UUID
    mode: Literal["require", "forbid"] = "require"


RuleLogic = Annotated[
    GenderPairingLogic | CertificationLogic | SessionLogic | AvailabilityLogic | SpecificPairingLogic,
    Field(discriminator="category"),
]

RULE_LOGIC_TYPES: dict[str, type[RuleLogicBase]] = {
    "gender_pairing": GenderPairingLogic,
    "certification": CertificationLogic,
    "session": SessionLogic,
    "availability": AvailabilityLogic,
    "specific_pairing": SpecificPairingLogic,
}

_rule_logic_adapter: TypeAdapter[RuleLogic] = TypeAdapter(RuleLogic)


class ParsedRule(NamedTuple):
    """An active rule with its payload parsed."""

    id: UUID
    description: str
    priority: int
    logic: RuleLogicBase


def parse_rule_logic(category: str, payload: dict) -> RuleLogicBase:
    """
    Parse a stored payload into the model for its category.

    Raises:
        ValidationException: If the category is unknown or the payload is malformed
    """
    if category not in RULE_LOGIC_TYPES:
        raise ValidationException(f"Unknown rule category: {category}")
    try:
        return _rule_logic_adapter.validate_python({**(payload or {}), "category": category})
    except PydanticValidationError as e:
        raise ValidationException(f"Invalid {category} rule logic: {e.errors()[0]['msg']}") from e


def parse_rules(rules: list[RuleRecord]) -> list[ParsedRule]:
    """Parse active rules, ordered by integer priority then creation time."""
    active = [rule for rule in rules if rule.is_active]
    oldest = datetime.min.replace(tzinfo=UTC)
    active.sort(
        key=lambda rule: (rule.priority, ensure_utc(rule.created_at) if rule.created_at else oldest)
    )
    parsed = []
    for rule in active:
        try:
            logic = parse_rule_logic(rule.category, rule.rule_logic)
        except ValidationException as e:
            raise ValidationException(f"Rule {rule.id}: {e.message}") from e
        parsed.append(ParsedRule(rule.id, rule.description, rule.priority, logic))
    return parsed
