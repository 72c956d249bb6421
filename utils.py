import html
import re
from datetime import timedelta
from typing import Optional

ADMIN_CENTER_URL = "https://admin.teams.microsoft.com"

_TIMESPAN_RE = re.compile(
    r"^(?:(?P<days>\d+)\.)?(?P<hours>\d{1,2}):(?P<minutes>\d{2})(?::(?P<seconds>\d{2})(?:\.\d+)?)?$"
)


def strip_phone_scheme(number: Optional[str]) -> Optional[str]:
    """Removes the ``tel:`` prefix Teams puts in front of phone numbers."""
    if not number:
        return None
    clean = number.strip()
    if clean.lower().startswith("tel:"):
        clean = clean[4:]
    return clean or None


def phone_digits(number: Optional[str]) -> str:
    """Digits-only form of a number, used to compare differently formatted numbers."""
    if not number:
        return ""
    return re.sub(r"\D", "", strip_phone_scheme(number) or "")


def parse_timespan(value) -> timedelta:
    """Parses a .NET style TimeSpan ("09:00:00", "1.00:00:00") into a timedelta."""
    if isinstance(value, timedelta):
        return value

    m = _TIMESPAN_RE.match(str(value).strip())
    if not m:
        raise ValueError(f"Unrecognized time span: {value!r}")

    return timedelta(
        days=int(m.group("days") or 0),
        hours=int(m.group("hours")),
        minutes=int(m.group("minutes")),
        seconds=int(m.group("seconds") or 0),
    )


def format_time_of_day(offset: timedelta) -> str:
    """Formats an offset from midnight as HH:MM (24:00 for end of day)."""
    total_minutes = int(offset.total_seconds() // 60)
    return f"{total_minutes // 60:02d}:{total_minutes % 60:02d}"


def mermaid_text(text: str) -> str:
    """Escapes one label line for use inside a quoted Mermaid label."""
    normalized = re.sub(r"\s+", " ", html.unescape(str(text))).strip()
    return (
        normalized.replace("&", "#amp;")
        .replace("<", "#lt;")
        .replace(">", "#gt;")
        .replace('"', "#quot;")
        .replace("|", "#124;")
    )


def safe_file_name(name: str) -> str:
    """Turns a voice app name into something usable as a file name."""
    cleaned = re.sub(r"[^A-Za-z0-9._-]+", "_", name).strip("._")
    return cleaned or "callflow"


def generate_admin_center_link(type_hint: str, id_value: str) -> str:
    """Generates a Teams admin center deep link based on type."""

    if type_hint == "auto_attendant":
        return f"{ADMIN_CENTER_URL}/auto-attendants/edit/{id_value}"

    elif type_hint == "call_queue":
        return f"{ADMIN_CENTER_URL}/call-queues/edit/{id_value}"

    elif type_hint == "user":
        return f"{ADMIN_CENTER_URL}/users/{id_value}/account"

    return ""
