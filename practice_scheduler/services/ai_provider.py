"""Client for an OpenAI-compatible chat-completions endpoint that drafts schedules."""

import json
from datetime import date, timedelta
from typing import Any, NamedTuple

import httpx
import structlog

from practice_scheduler.config import get_settings
from practice_scheduler.core.exceptions import UpstreamServiceException
from practice_scheduler.schemas.organizations import (
    OrganizationSettings,
    PatientRecord,
    RoomRecord,
    RuleRecord,
    StaffMember,
)
from practice_scheduler.scheduling.timeslots import WEEKDAYS

logger = structlog.get_logger(__name__)

SYSTEM_PROMPT = """You are an expert therapy scheduling assistant. Generate a weekly schedule that \
assigns therapists to patients while respecting all constraints.

CRITICAL RULES:
1. Each therapist, patient and room can only have ONE session at a time
2. Sessions must be within the therapist's working hours for that day
3. Therapists must have ALL certifications the patient requires
4. Rooms must have ALL capabilities the patient requires
5. Honor gender preferences and the listed scheduling rules when possible
6. Each patient should receive their requested number of sessions per week
7. Distribute sessions evenly across the week

You must return ONLY a valid JSON object with no additional text."""


class ScheduleProposal(NamedTuple):
    """Raw provider output, validated downstream."""

    sessions: list[dict[str, Any]]
    warnings: list[str]


def _format_staff(staff: list[StaffMember]) -> str:
    lines = []
    for member in staff:
        hours = ", ".join(
            f"{day}: {h.start}-{h.end}" for day, h in member.default_hours.items() if h is not None
        )
        lines.append(
            f"- ID: {member.id}\n"
            f"  Gender: {member.gender.value if member.gender else 'unspecified'}\n"
            f"  Certifications: [{', '.join(member.certifications)}]\n"
            f"  Working Hours: {hours or 'Not specified'}"
        )
    return "\n".join(lines)


def _format_session_specs(patient: PatientRecord, default_duration: int) -> str:
    lines = []
    for spec in patient.session_specs:
        lines.append(
            f"    - Spec ID: {spec.id}\n"
            f"      Service: {spec.name}\n"
            f"      Sessions Per Week: {spec.sessions_per_week}\n"
            f"      Duration (minutes): {spec.duration_minutes or default_duration}\n"
            f"      Required Certifications: [{', '.join(spec.required_certifications)}]\n"
            f"      Required Room Capabilities: [{', '.join(spec.required_room_capabilities)}]\n"
            f"      Preferred Times: [{', '.join(spec.preferred_times)}]"
        )
    return "\n".join(lines)


def _format_patients(patients: list[PatientRecord], default_duration: int) -> str:
    lines = []
    for patient in patients:
        specs = _format_session_specs(patient, default_duration)
        lines.append(
            f"- ID: {patient.id}\n"
            f"  Gender: {patient.gender.value if patient.gender else 'unspecified'}\n"
            f"  Preferred Therapist Gender: "
            f"{patient.preferred_gender.value if patient.preferred_gender else 'none'}\n"
            f"  Sessions Per Week: {patient.weekly_target}\n"
            f"  Duration (minutes): {default_duration}\n"
            f"  Required Certifications: [{', '.join(patient.required_certifications)}]\n"
            f"  Required Room Capabilities: [{', '.join(patient.required_room_capabilities)}]\n"
            f"  Preferred Times: [{', '.join(patient.preferred_times)}]"
            + (f"\n  Session Specs:\n{specs}" if specs else "")
        )
    return "\n".join(lines)


def _format_rooms(rooms: list[RoomRecord]) -> str:
    if not rooms:
        return "No rooms configured."
    return "\n".join(
        f"- ID: {room.id}\n  Name: {room.name}\n  Capabilities: [{', '.join(room.capabilities)}]"
        for room in rooms
    )


def _format_rules(rules: list[RuleRecord]) -> str:
    active = [rule for rule in rules if rule.is_active]
    if not active:
        return "No specific rules defined."
    return "\n".join(
        f"{i}. [{rule.category}] {rule.description} (priority: {rule.priority})"
        for i, rule in enumerate(active, start=1)
    )


def open_dates(org_settings: OrganizationSettings, week_start: date) -> list[date]:
    """Dates of the week on which the organization is open."""
    return [
        week_start + timedelta(days=offset)
        for offset, weekday in enumerate(WEEKDAYS)
        if org_settings.business_day(weekday) is not None
    ]


def build_user_prompt(
    org_settings: OrganizationSettings,
    week_start: date,
    staff: list[StaffMember],
    patients: list[PatientRecord],
    rooms: list[RoomRecord],
    rules: list[RuleRecord],
) -> str:
    """Describe the week, the directories and the rules to the model."""
    dates = [d.isoformat() for d in open_dates(org_settings, week_start)]
    return f"""Generate a schedule for the week starting {week_start.isoformat()}.

AVAILABLE DATES: {', '.join(dates)}

STAFF ({len(staff)} therapists):
{_format_staff(staff)}

PATIENTS ({len(patients)} patients):
{_format_patients(patients, org_settings.default_session_duration)}

ROOMS ({len(rooms)} rooms):
{_format_rooms(rooms)}

SCHEDULING RULES:
{_format_rules(rules)}

Return a JSON object with this exact structure:
{{
  "sessions": [
    {{
      "therapistId": "<staff UUID>",
      "patientId": "<patient UUID>",
      "sessionSpecId": "<session spec UUID or null>",
      "roomId": "<room UUID or null>",
      "date": "YYYY-MM-DD",
      "startTime": "HH:mm",
      "endTime": "HH:mm",
      "notes": "optional note"
    }}
  ],
  "warnings": ["any constraints that could not be fully satisfied"]
}}

Use exact UUIDs from the lists above and 24-hour times."""


class AIScheduleProvider:
    """Drafts schedules through a chat-completions API."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize provider, falling back to application settings."""
        config = get_settings()
        self.api_key = api_key if api_key is not None else config.ai_api_key
        self.base_url = (base_url or config.ai_base_url).rstrip("/")
        self.model = model or config.ai_model
        self.timeout = timeout or config.ai_timeout_seconds
        self.max_tokens = config.ai_max_tokens
        self.transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def generate_schedule(
        self,
        org_settings: OrganizationSettings,
        week_start: date,
        staff: list[StaffMember],
        patients: list[PatientRecord],
        rooms: list[RoomRecord],
        rules: list[RuleRecord],
    ) -> ScheduleProposal:
        """
        Ask the model for a week of sessions.

        Returns:
            Proposed sessions and the model's own warnings

        Raises:
            UpstreamServiceException: If the provider is unconfigured, unreachable
                or returns something other than the requested JSON
        """
        if not self.is_configured:
            raise UpstreamServiceException("AI schedule generation is not configured")

        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": build_user_prompt(
                        org_settings, week_start, staff, patients, rooms, rules
                    ),
                },
            ],
            "response_format": {"type": "json_object"},
            "max_tokens": self.max_tokens,
        }

        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self.transport,
            headers={"Authorization": f"Bearer {self.api_key}"},
        ) as client:
            try:
                response = await client.post("/chat/completions", json=payload)
            except httpx.HTTPError as e:
                logger.error("ai_provider_request_failed", error=str(e))
                raise UpstreamServiceException("AI service is unavailable") from e

        if response.status_code != 200:
            logger.error(
                "ai_provider_error_response",
                status_code=response.status_code,
                body=response.text[:500],
            )
            raise UpstreamServiceException(f"AI service error: HTTP {response.status_code}")

        try:
            content = response.json()["choices"][0]["message"]["content"]
            result = json.loads(content)
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise UpstreamServiceException("AI service returned an unreadable response") from e

        if not isinstance(result, dict) or not isinstance(result.get("sessions"), list):
            raise UpstreamServiceException("Invalid AI response: sessions must be an array")

        warnings = result.get("warnings")
        proposal = ScheduleProposal(
            sessions=[s for s in result["sessions"] if isinstance(s, dict)],
            warnings=[str(w) for w in warnings] if isinstance(warnings, list) else [],
        )
        logger.info("ai_schedule_proposed", sessions=len(proposal.sessions), model=self.model)
        return proposal


def get_ai_provider() -> AIScheduleProvider:
    """Dependency returning the configured provider."""
    return AIScheduleProvider()
