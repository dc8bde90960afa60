"""
Narrative text for executed events.

Templates use {{variable}} placeholders rendered through Jinja2. Only
eventName, location, date and time are provided; any other placeholder is
left in the text as written so authors can spot it.
"""

import logging
import re
from typing import Any

from jinja2 import Environment, TemplateError, Undefined

logger = logging.getLogger(__name__)

PRESENT_PREFIX = "You witness the following event:\n\n"
ABSENT_PREFIX = "At {location}, the following occurred:\n\n"

_PLACEHOLDER = re.compile(r"\{\{\s*(\w+)\s*\}\}")


class _LiteralUndefined(Undefined):
    """Render an unknown placeholder back as written, including a.b and a[b]."""

    def __str__(self) -> str:
        return "{{" + (self._undefined_name or "") + "}}"

    def __getattr__(self, name: str) -> Any:
        if name[:2] == "__":
            raise AttributeError(name)
        return _LiteralUndefined(name=f"{self._undefined_name}.{name}")

    def __getitem__(self, key: Any) -> "_LiteralUndefined":
        return _LiteralUndefined(name=f"{self._undefined_name}[{key!r}]")


# Only {{ }} is template syntax; block and comment markers are moved out of
# the way so prose like "{#3" or "{%" renders as text.
_env = Environment(
    undefined=_LiteralUndefined,
    autoescape=False,
    keep_trailing_newline=True,
    block_start_string="<%kapis",
    block_end_string="kapis%>",
    comment_start_string="<#kapis",
    comment_end_string="kapis#>",
)


def _field(event: Any, *names: str) -> Any:
    """Read the first present field from a mapping or model, by any alias."""
    for name in names:
        if isinstance(event, dict):
            value = event.get(name)
        else:
            value = getattr(event, name, None)
        if value:
            return value
    return None


def narrative_variables(event: Any) -> dict[str, str]:
    return {
        "eventName": _field(event, "name", "event_id", "eventId") or "unknown event",
        "location": _field(event, "location_id", "locationId") or "unknown location",
        "date": _field(event, "trigger_date", "triggerDate") or "unknown date",
        "time": _field(event, "trigger_time", "triggerTime") or "unknown time",
    }


def render_template(template: str, variables: dict[str, str]) -> str:
    """
    Render placeholders.

    If Jinja2 rejects the template, known {{name}} placeholders are still
    replaced one by one and everything else is left as written.
    """
    try:
        return _env.from_string(template).render(**variables)
    except TemplateError as e:
        logger.warning(f"Narrative template failed to render: {e}")
        return _PLACEHOLDER.sub(
            lambda m: str(variables.get(m.group(1), m.group(0))),
            template,
        )


def generate_event_narrative(event: Any, player_present: bool = False) -> str:
    """
    Build the observer-facing narrative for an event.

    The text is the event's narrativeTemplate, else its description, else a
    generic line. The prefix depends on whether the player saw it happen.

    Args:
        event: Mapping or model carrying the event and definition fields
        player_present: Whether the player was at the event's location

    Returns:
        Narrative text; never raises
    """
    variables = narrative_variables(event)
    text = (
        _field(event, "narrative_template", "narrativeTemplate")
        or _field(event, "description")
        or f'Event "{variables["eventName"]}" occurred.'
    )
    text = render_template(str(text), variables)

    if player_present:
        return PRESENT_PREFIX + text
    return ABSENT_PREFIX.format(location=variables["location"]) + text
