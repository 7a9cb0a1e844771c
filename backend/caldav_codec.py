# caldav_codec.py — Task ↔ iCalendar (VTODO / VEVENT) codec
"""
Serialization writes the calendar text by hand so the output is stable
line for line. Parsing unfolds the text with the icalendar
content-line parser and maps the first component's raw properties onto a Task.

Priorities: internal 1-9 (9 = most urgent) map onto iCalendar's inverted
1-9 scale in three tiers:

    internal 1-3 -> 9      iCalendar 6-9 -> 2
    internal 4-6 -> 5      iCalendar 5   -> 5
    internal 7-9 -> 1      iCalendar 1-4 -> 8
"""
import hashlib
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from icalendar import vDuration
from icalendar.parser import Contentline, Contentlines

from errors import InvalidData
from models import RepeatMode, Task, as_utc

logger = logging.getLogger("donelist.caldav")

DATE_FORMAT = "%Y%m%dT%H%M%S"
PROD_ID = "Donelist Todo App"

_NEWLINES = re.compile(r"\r?\n")


@dataclass
class Config:
    name: str
    prodid: str = PROD_ID
    color: str = ""


@dataclass
class Alarm:
    time: datetime
    description: str = ""


@dataclass
class Event:
    summary: str
    timestamp: datetime
    start: datetime
    end: datetime
    description: str = ""
    uid: str = ""
    color: str = ""
    alarms: List[Alarm] = field(default_factory=list)


@dataclass
class Todo:
    timestamp: datetime
    uid: str = ""
    summary: str = ""
    description: str = ""
    completed: Optional[datetime] = None
    organizer: Optional[str] = None
    priority: int = 0
    related_to_uid: str = ""
    color: str = ""
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    due: Optional[datetime] = None
    duration: timedelta = timedelta(0)
    repeat_after: int = 0
    repeat_mode: int = RepeatMode.DEFAULT.value
    created: Optional[datetime] = None
    updated: Optional[datetime] = None


# ============================================================
# HELPERS
# ============================================================

def caldav_time(ts: datetime) -> str:
    return as_utc(ts).strftime(DATE_FORMAT) + "Z"


def _uid_for(timestamp: datetime, summary: str) -> str:
    return caldav_time(timestamp) + hashlib.sha256(summary.encode("utf-8")).hexdigest()


def _color_lines(color: str) -> str:
    if not color:
        return ""
    if not color.startswith("#"):
        color = "#" + color
    color += "FF"
    return (
        "\nX-APPLE-CALENDAR-COLOR:" + color
        + "\nX-OUTLOOK-COLOR:" + color
        + "\nX-FUNAMBOL-COLOR:" + color
    )


def _escape_newlines(text: str) -> str:
    return _NEWLINES.sub(r"\\n", text)


def _header(config: Config) -> str:
    return (
        "BEGIN:VCALENDAR\n"
        "VERSION:2.0\n"
        "METHOD:PUBLISH\n"
        "X-PUBLISHED-TTL:PT4H\n"
        "X-WR-CALNAME:" + config.name + "\n"
        "PRODID:-//" + config.prodid + "//EN" + _color_lines(config.color)
    )


def _format_hms(seconds: int) -> str:
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}H{minutes}M{secs}S"
    if minutes:
        return f"{minutes}M{secs}S"
    return f"{secs}S"


def alarm_trigger(event_start: datetime, alarm_time: datetime) -> str:
    """Signed offset of the alarm from the event start, e.g. -PT1H0M0S."""
    seconds = int((as_utc(alarm_time) - as_utc(event_start)).total_seconds())
    sign = "-" if seconds < 0 else ""
    return sign + "PT" + _format_hms(abs(seconds))


def _format_duration(duration: timedelta) -> str:
    seconds = int(duration.total_seconds())
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    return f"PT{hours}H{minutes}M{secs}S"


def priority_to_caldav(priority: int) -> int:
    if priority <= 0:
        return 0
    if priority <= 3:
        return 9
    if priority <= 6:
        return 5
    return 1


def priority_from_caldav(priority: int) -> int:
    if priority <= 0:
        return 0
    if priority <= 4:
        return 8
    if priority == 5:
        return 5
    return 2


# ============================================================
# SERIALIZE
# ============================================================

def serialize_events(config: Config, events: List[Event]) -> str:
    out = _header(config)
    for e in events:
        uid = e.uid or _uid_for(e.timestamp, e.summary)
        out += (
            "\nBEGIN:VEVENT"
            "\nUID:" + uid
            + "\nSUMMARY:" + e.summary + _color_lines(e.color)
            + "\nDESCRIPTION:" + (_escape_newlines(e.description) if e.description else "")
            + "\nDTSTAMP:" + caldav_time(e.timestamp)
            + "\nDTSTART:" + caldav_time(e.start)
            + "\nDTEND:" + caldav_time(e.end)
        )
        for a in e.alarms:
            out += (
                "\nBEGIN:VALARM"
                "\nTRIGGER:" + alarm_trigger(e.start, a.time)
                + "\nACTION:DISPLAY"
                "\nDESCRIPTION:" + (a.description or e.summary)
                + "\nEND:VALARM"
            )
        out += "\nEND:VEVENT"
    out += "\nEND:VCALENDAR"
    return out


def serialize_todos(config: Config, todos: List[Todo]) -> str:
    out = _header(config)
    for t in todos:
        uid = t.uid or _uid_for(t.timestamp, t.summary)
        out += (
            "\nBEGIN:VTODO"
            "\nUID:" + uid
            + "\nDTSTAMP:" + caldav_time(t.timestamp)
            + "\nSUMMARY:" + t.summary + _color_lines(t.color)
        )
        if t.start is not None:
            out += "\nDTSTART:" + caldav_time(t.start)
            if t.duration and t.due is None and t.end is None:
                out += "\nDURATION:" + _format_duration(t.duration)
        if t.end is not None:
            out += "\nDTEND:" + caldav_time(t.end)
        if t.description:
            out += "\nDESCRIPTION:" + _escape_newlines(t.description)
        if t.completed is not None:
            out += "\nCOMPLETED:" + caldav_time(t.completed) + "\nSTATUS:COMPLETED"
        if t.organizer:
            out += "\nORGANIZER;CN=:" + t.organizer
        if t.related_to_uid:
            out += "\nRELATED-TO:" + t.related_to_uid
        if t.due is not None:
            out += "\nDUE:" + caldav_time(t.due)
        if t.created is not None:
            out += "\nCREATED:" + caldav_time(t.created)
        if t.priority:
            out += "\nPRIORITY:" + str(priority_to_caldav(t.priority))
        if t.repeat_mode == RepeatMode.MONTH.value:
            day = as_utc(t.due).day if t.due is not None else 1
            out += f"\nRRULE:FREQ=MONTHLY;BYMONTHDAY={day:02d}"
        elif t.repeat_after > 0:
            out += f"\nRRULE:FREQ=SECONDLY;INTERVAL={t.repeat_after}"
        out += "\nLAST-MODIFIED:" + caldav_time(t.updated or t.timestamp)
        out += "\nEND:VTODO"
    out += "\nEND:VCALENDAR"
    return out


def todos_for_tasks(tasks: List[Task]) -> List[Todo]:
    todos = []
    for t in tasks:
        completed = t.done_at if t.done_at else (t.updated if t.done else None)
        todos.append(Todo(
            timestamp=t.updated,
            uid=t.uid,
            summary=t.title,
            description=t.description or "",
            completed=completed,
            priority=t.priority or 0,
            color=t.hex_color or "",
            start=t.start_date,
            end=t.end_date,
            due=t.due_date,
            repeat_after=t.repeat_after or 0,
            repeat_mode=t.repeat_mode or 0,
            created=t.created,
            updated=t.updated,
        ))
    return todos


def calendar_for_tasks(list_title: str, tasks: List[Task], color: str = "") -> str:
    return serialize_todos(Config(name=list_title, color=color), todos_for_tasks(tasks))


# ============================================================
# PARSE
def parse_caldav_time(text: Optional[str]) -> Optional[datetime]:
    """Parse a raw iCalendar date or date-time. Failures are logged and yield None."""
    if not text:
        return None
    fmt = DATE_FORMAT
    if text.endswith("Z"):
        fmt = DATE_FORMAT + "Z"
    if len(text) == 8:
        fmt = "%Y%m%d"
    try:
        return datetime.strptime(text, fmt).replace(tzinfo=timezone.utc)
    except ValueError as e:
        logger.warning(f"Error while parsing caldav time {text} to timestamp: {e}")
        return None


_TEXT_ESCAPES = re.compile(r"\\([\\,;nN])")


def _unescape_text(raw: str) -> str:
    return _TEXT_ESCAPES.sub(lambda m: "\n" if m.group(1) in "nN" else m.group(1), raw)


def _raw_value(line: Contentline) -> str:
    # Everything after the first colon outside a quoted parameter value
    in_quotes = False
    for i, ch in enumerate(line):
        if ch == '"':
            in_quotes = not in_quotes
        elif ch == ":" and not in_quotes:
            return line[i + 1:]
    raise ValueError(f"Content line without a value: {line}")


def _component_properties(text: str) -> Dict[str, str]:
    """Unfold the calendar and return the first component's properties as raw strings.

    Values are left untyped so a single malformed date cannot fail the whole parse.
    Properties of nested components (VALARM) are skipped.
    """
    try:
        lines = Contentlines.from_ical(text)
    except ValueError as e:
        raise InvalidData(f"Could not parse calendar data: {e}")

    props: Dict[str, str] = {}
    stack: List[str] = []
    component_depth = None
    for line in lines:
        try:
            name, _, value = line.parts()
            raw = _raw_value(line)
        except ValueError as e:
            raise InvalidData(f"Could not parse calendar data: {e}")
        name = name.upper()

        if name == "BEGIN":
            stack.append(value.upper())
            if component_depth is None and value.upper() != "VCALENDAR":
                component_depth = len(stack)
            continue
        if name == "END":
            if component_depth is not None and len(stack) == component_depth:
                break
            if stack:
                stack.pop()
            continue
        if not stack:
            raise InvalidData("Could not parse calendar data: content outside of a calendar")
        if component_depth is not None and len(stack) == component_depth:
            props.setdefault(name, raw)

    if component_depth is None:
        raise InvalidData("The calendar does not contain any component")
    return props


def parse_task_from_vtodo(text: str) -> Task:
    props = _component_properties(text)

    priority = 0
    if props.get("PRIORITY"):
        try:
            priority = priority_from_caldav(int(props["PRIORITY"]))
        except ValueError:
            raise InvalidData("The PRIORITY of the task is not a number")

    task = Task(
        uid=props.get("UID", ""),
        title=_unescape_text(props.get("SUMMARY", "")),
        description=_unescape_text(props.get("DESCRIPTION", "")),
        priority=priority,
        due_date=parse_caldav_time(props.get("DUE")),
        start_date=parse_caldav_time(props.get("DTSTART")),
        end_date=parse_caldav_time(props.get("DTEND")),
        done_at=parse_caldav_time(props.get("COMPLETED")),
        done=props.get("STATUS", "").upper() == "COMPLETED",
        repeat_after=0,
        repeat_mode=RepeatMode.DEFAULT.value,
    )
    task.created = parse_caldav_time(props.get("CREATED"))
    task.updated = parse_caldav_time(props.get("LAST-MODIFIED")) or parse_caldav_time(props.get("DTSTAMP"))

    if "RRULE" in props:
        rule = dict(part.split("=", 1) for part in props["RRULE"].upper().split(";") if "=" in part)
        if rule.get("FREQ") == "MONTHLY":
            task.repeat_mode = RepeatMode.MONTH.value
        elif rule.get("FREQ") == "SECONDLY" and rule.get("INTERVAL", "").isdigit():
            task.repeat_after = int(rule["INTERVAL"])

    if props.get("DURATION") and task.start_date is not None and task.due_date is None and task.end_date is None:
        try:
            duration = vDuration.from_ical(props["DURATION"])
        except ValueError as e:
            logger.warning(f"Error while parsing caldav duration {props['DURATION']}: {e}")
            duration = None
        if duration is not None and duration > timedelta(0):
            task.end_date = task.start_date + duration

    return task
