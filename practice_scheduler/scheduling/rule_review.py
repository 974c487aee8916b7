"""Detection of rules whose wording cannot be tied to a single person.

Rule descriptions are free text ("Maria should only see female therapists").
When a mentioned name matches several staff members or patients the rule is
ambiguous and generation must stop until someone binds the mention to an
entity through ``entity_bindings`` or rewords the rule.
"""

import re
from collections import defaultdict
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel

from practice_scheduler.core.exceptions import RuleReviewRequiredException
from practice_scheduler.schemas.organizations import PatientRecord, RuleRecord, StaffMember

# Depth limit when collecting strings from nested rule payloads
_SCAN_DEPTH = 4


class ReviewCandidate(BaseModel):
    """An entity a mention could refer to."""

    entity_type: Literal["staff", "patient"]
    id: UUID
    name: str


class ReviewIssue(BaseModel):
    """A mention that does not identify exactly one entity."""

    type: Literal["ambiguous_entity_reference", "duplicate_full_name", "flagged_for_review"]
    mention: str
    candidates: list[ReviewCandidate]
    detail: str


class RuleReviewResult(BaseModel):
    """Review outcome for one rule."""

    rule_id: UUID
    status: Literal["ok", "needs_review"]
    issues: list[ReviewIssue]


def _normalize(text: str) -> str:
    return text.lower().strip()


def _contains_phrase(haystack: str, phrase: str) -> bool:
    return bool(phrase) and re.search(rf"\b{re.escape(phrase)}\b", haystack) is not None


def _first_name(full_name: str) -> str | None:
    parts = _normalize(full_name).split()
    return parts[0] if parts else None


def _collect_strings(value: Any, out: list[str], depth: int) -> None:
    if depth <= 0:
        return
    if isinstance(value, str):
        out.append(value)
    elif isinstance(value, list):
        for item in value:
            _collect_strings(item, out, depth - 1)
    elif isinstance(value, dict):
        for item in value.values():
            _collect_strings(item, out, depth - 1)


def _candidate_indexes(
    staff: list[StaffMember], patients: list[PatientRecord]
) -> tuple[dict[str, list[ReviewCandidate]], dict[str, list[ReviewCandidate]]]:
    by_first: dict[str, list[ReviewCandidate]] = defaultdict(list)
    by_full: dict[str, list[ReviewCandidate]] = defaultdict(list)
    entities = [("staff", s.id, s.name) for s in staff] + [("patient", p.id, p.name) for p in patients]
    for entity_type, entity_id, name in entities:
        candidate = ReviewCandidate(entity_type=entity_type, id=entity_id, name=name)
        by_full[_normalize(name)].append(candidate)
        first = _first_name(name)
        if first:
            by_first[first].append(candidate)
    return by_first, by_full


def _bound_mentions(
    rule_logic: dict, staff: list[StaffMember], patients: list[PatientRecord]
) -> set[str]:
    """Mentions explicitly tied to an existing entity."""
    known = {"staff": {str(s.id) for s in staff}, "patient": {str(p.id) for p in patients}}
    bound = set()
    for binding in rule_logic.get("entityBindings") or rule_logic.get("entity_bindings") or []:
        if not isinstance(binding, dict):
            continue
        mention = binding.get("mention")
        entity_type = binding.get("entityType", binding.get("entity_type"))
        entity_id = binding.get("entityId", binding.get("entity_id"))
        if not isinstance(mention, str) or entity_type not in known or entity_id is None:
            continue
        if str(entity_id) in known[entity_type]:
            bound.add(_normalize(mention))
    return bound


def evaluate_rule_for_review(
    rule: RuleRecord,
    staff: list[StaffMember],
    patients: list[PatientRecord],
) -> RuleReviewResult:
    """
    Flag name mentions in a rule that match more than one entity.

    Two kinds of issues are reported: a full name shared by several
    entities, and a bare first name shared by several entities. Mentions
    covered by an entity binding, and first names of unambiguous full-name
    mentions, are not flagged. A rule already stored as ``needs_review``
    stays flagged.
    """
    rule_logic = rule.rule_logic if isinstance(rule.rule_logic, dict) else {}
    strings = [rule.description]
    _collect_strings(rule_logic, strings, _SCAN_DEPTH)
    haystack = _normalize(" ".join(strings))

    by_first, by_full = _candidate_indexes(staff, patients)
    bound = _bound_mentions(rule_logic, staff, patients)
    resolved_first_names = {mention.split()[0] for mention in bound if mention.split()}

    for full_name, candidates in by_full.items():
        if len(candidates) == 1 and _contains_phrase(haystack, full_name):
            first = _first_name(candidates[0].name)
            if first:
                resolved_first_names.add(first)

    issues: list[ReviewIssue] = []
    for full_name, candidates in by_full.items():
        if len(candidates) > 1 and full_name not in bound and _contains_phrase(haystack, full_name):
            issues.append(
                ReviewIssue(
                    type="duplicate_full_name",
                    mention=full_name,
                    candidates=candidates,
                    detail=f'The name "{full_name}" matches multiple entities.',
                )
            )

    tokens = dict.fromkeys(t for t in re.split(r"[^a-z0-9]+", haystack) if t)
    for token in tokens:
        if token in resolved_first_names or token in bound:
            continue
        candidates = by_first.get(token, [])
        if len(candidates) > 1:
            issues.append(
                ReviewIssue(
                    type="ambiguous_entity_reference",
                    mention=token,
                    candidates=candidates,
                    detail=f'The mention "{token}" matches multiple entities.',
                )
            )

    if not issues and rule.review_status == "needs_review":
        issues.append(
            ReviewIssue(
                type="flagged_for_review",
                mention=rule.description,
                candidates=[],
                detail="The rule is marked as needing review.",
            )
        )

    return RuleReviewResult(
        rule_id=rule.id, status="needs_review" if issues else "ok", issues=issues
    )


def evaluate_rules_for_review(
    rules: list[RuleRecord],
    staff: list[StaffMember],
    patients: list[PatientRecord],
) -> list[RuleReviewResult]:
    return [evaluate_rule_for_review(rule, staff, patients) for rule in rules]


def ensure_rules_reviewed(
    rules: list[RuleRecord],
    staff: list[StaffMember],
    patients: list[PatientRecord],
) -> None:
    """
    Stop when any active rule needs human review.

    Raises:
        RuleReviewRequiredException: With the review results of flagged rules
    """
    active = [rule for rule in rules if rule.is_active]
    flagged = [
        result
        for result in evaluate_rules_for_review(active, staff, patients)
        if result.status == "needs_review"
    ]
    if flagged:
        raise RuleReviewRequiredException([result.model_dump(mode="json") for result in flagged])
