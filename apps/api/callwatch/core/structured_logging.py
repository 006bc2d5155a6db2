"""
Structured log context for reminder and permission events.

Records carry ids and trigger metadata only. Contact names, phone numbers
and call notes never go into `extra`.
"""

from typing import Any
from uuid import UUID


def build_log_context(
    *,
    viewer_id: UUID | str | None = None,
    call_id: UUID | str | None = None,
    permission_id: UUID | str | None = None,
    offset_minutes: int | None = None,
    trigger: str | None = None,
    channel: str | None = None,
    component: str | None = None,
) -> dict[str, Any]:
    """Return an `extra=` dict with the fields that were given; ids become strings."""
    fields = {
        "viewer_id": viewer_id,
        "call_id": call_id,
        "permission_id": permission_id,
        "offset_minutes": offset_minutes,
        "trigger": trigger,
        "channel": channel,
        "component": component,
    }
    context: dict[str, Any] = {}
    for key, value in fields.items():
        if value is None or value == "":
            continue
        context[key] = str(value) if isinstance(value, UUID) else value
    return context
