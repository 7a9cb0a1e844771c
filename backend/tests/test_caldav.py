# tests/test_caldav.py — iCalendar serialization and VTODO parsing
import hashlib
from datetime import datetime, timedelta, timezone

import pytest

import lists as list_service
import namespaces as namespace_service
from caldav_codec import (
    Alarm, Config, Event, Todo,
    alarm_trigger, calendar_for_tasks, parse_caldav_time, parse_task_from_vtodo,
    priority_from_caldav, priority_to_caldav, serialize_events, serialize_todos,
)
from errors import InvalidData
from models import RepeatMode, Task
from tests.conftest import get_auth_headers

T = datetime(2018, 12, 1, 14, 0, 0, tzinfo=timezone.utc)
START = datetime(2018, 12, 2, 10, 0, 0, tzinfo=timezone.utc)

HEADER = (
    "BEGIN:VCALENDAR\n"
    "VERSION:2.0\n"
    "METHOD:PUBLISH\n"
    "X-PUBLISHED-TTL:PT4H\n"
    "X-WR-CALNAME:test\n"
    "PRODID:-//RandomProdID which is not random//EN\n"
)


def _config(color: str = "") -> Config:
    return Config(name="test", prodid="RandomProdID which is not random", color=color)


# ============================================================
# SERIALIZE
# ============================================================

def test_serialize_minimal_todo():
    out = serialize_todos(_config(), [
        Todo(timestamp=T, uid="randommduid", summary="Todo #1", description="Lorem Ipsum"),
    ])
    assert out == HEADER + (
        "BEGIN:VTODO\n"
        "UID:randommduid\n"
        "DTSTAMP:20181201T140000Z\n"
        "SUMMARY:Todo #1\n"
        "DESCRIPTION:Lorem Ipsum\n"
        "LAST-MODIFIED:20181201T140000Z\n"
        "END:VTODO\n"
        "END:VCALENDAR"
    )


def test_serialize_full_todo_property_order():
    out = serialize_todos(_config(), [
        Todo(
            timestamp=T,
            uid="uid2",
            summary="Todo #2",
            description="Line1\nLine2",
            completed=datetime(2018, 12, 2, 12, 0, 0, tzinfo=timezone.utc),
            priority=9,
            color="affffe",
            start=START,
            due=datetime(2018, 12, 3, 10, 0, 0, tzinfo=timezone.utc),
            duration=timedelta(hours=1),
            repeat_after=86400,
            created=datetime(2018, 11, 1, 0, 0, 0, tzinfo=timezone.utc),
            updated=datetime(2018, 12, 1, 15, 0, 0, tzinfo=timezone.utc),
        ),
    ])
    assert out == HEADER + (
        "BEGIN:VTODO\n"
        "UID:uid2\n"
        "DTSTAMP:20181201T140000Z\n"
        "SUMMARY:Todo #2\n"
        "X-APPLE-CALENDAR-COLOR:#affffeFF\n"
        "X-OUTLOOK-COLOR:#affffeFF\n"
        "X-FUNAMBOL-COLOR:#affffeFF\n"
        "DTSTART:20181202T100000Z\n"
        "DESCRIPTION:Line1\\nLine2\n"
        "COMPLETED:20181202T120000Z\n"
        "STATUS:COMPLETED\n"
        "DUE:20181203T100000Z\n"
        "CREATED:20181101T000000Z\n"
        "PRIORITY:1\n"
        "RRULE:FREQ=SECONDLY;INTERVAL=86400\n"
        "LAST-MODIFIED:20181201T150000Z\n"
        "END:VTODO\n"
        "END:VCALENDAR"
    )


def test_serialize_duration_only_without_due_or_end():
    out = serialize_todos(_config(), [
        Todo(timestamp=T, uid="uid3", summary="Todo #3", start=START, duration=timedelta(hours=1, minutes=30)),
    ])
    assert "DTSTART:20181202T100000Z\nDURATION:PT1H30M0S\n" in out


def test_serialize_monthly_repeat_uses_due_day():
    out = serialize_todos(_config(), [
        Todo(
            timestamp=T, uid="uid4", summary="Rent",
            due=datetime(2018, 12, 5, 9, 0, 0, tzinfo=timezone.utc),
            repeat_mode=RepeatMode.MONTH.value,
        ),
    ])
    assert "RRULE:FREQ=MONTHLY;BYMONTHDAY=05\n" in out


def test_serialize_calendar_color_in_header():
    out = serialize_todos(_config(color="#ff0000"), [])
    assert out == HEADER.rstrip("\n") + (
        "\nX-APPLE-CALENDAR-COLOR:#ff0000FF"
        "\nX-OUTLOOK-COLOR:#ff0000FF"
        "\nX-FUNAMBOL-COLOR:#ff0000FF"
        "\nEND:VCALENDAR"
    )


def test_generated_uid_is_timestamp_plus_summary_hash():
    out = serialize_todos(_config(), [Todo(timestamp=T, summary="No uid")])
    expected = "20181201T140000Z" + hashlib.sha256(b"No uid").hexdigest()
    assert f"UID:{expected}\n" in out


def test_serialize_event_with_alarms():
    out = serialize_events(_config(), [
        Event(
            summary="Event #1",
            timestamp=T,
            start=START,
            end=START + timedelta(hours=2),
            description="Lorem",
            uid="uidev",
            alarms=[
                Alarm(time=START - timedelta(hours=1)),
                Alarm(time=START + timedelta(minutes=30), description="Custom"),
            ],
        ),
    ])
    assert out == HEADER + (
        "BEGIN:VEVENT\n"
        "UID:uidev\n"
        "SUMMARY:Event #1\n"
        "DESCRIPTION:Lorem\n"
        "DTSTAMP:20181201T140000Z\n"
        "DTSTART:20181202T100000Z\n"
        "DTEND:20181202T120000Z\n"
        "BEGIN:VALARM\n"
        "TRIGGER:-PT1H0M0S\n"
        "ACTION:DISPLAY\n"
        "DESCRIPTION:Event #1\n"
        "END:VALARM\n"
        "BEGIN:VALARM\n"
        "TRIGGER:PT30M0S\n"
        "ACTION:DISPLAY\n"
        "DESCRIPTION:Custom\n"
        "END:VALARM\n"
        "END:VEVENT\n"
        "END:VCALENDAR"
    )


def test_alarm_trigger_at_start():
    assert alarm_trigger(START, START) == "PT0S"


@pytest.mark.parametrize("ical", [1, 5, 9])
def test_priority_tier_round_trip(ical):
    assert priority_to_caldav(priority_from_caldav(ical)) == ical


def test_priority_tiers():
    assert [priority_to_caldav(p) for p in range(0, 10)] == [0, 9, 9, 9, 5, 5, 5, 1, 1, 1]
    assert [priority_from_caldav(p) for p in range(0, 10)] == [0, 8, 8, 8, 8, 5, 2, 2, 2, 2]


# ============================================================
# PARSE
# ============================================================

VTODO = """BEGIN:VCALENDAR
VERSION:2.0
PRODID:-//test//EN
BEGIN:VTODO
UID:abc123
DTSTAMP:20181201T140000Z
SUMMARY:Buy milk
DESCRIPTION:First line\\nsecond\\, line
DTSTART:20181202T100000Z
DUE:20181203T100000Z
COMPLETED:20181202T120000Z
STATUS:COMPLETED
PRIORITY:1
RRULE:FREQ=SECONDLY;INTERVAL=3600
CREATED:20181101T000000Z
LAST-MODIFIED:20181201T150000Z
END:VTODO
END:VCALENDAR
"""


def test_parse_vtodo_maps_all_fields():
    task = parse_task_from_vtodo(VTODO)
    assert task.uid == "abc123"
    assert task.title == "Buy milk"
    assert task.description == "First line\nsecond, line"
    assert task.start_date == datetime(2018, 12, 2, 10, 0, 0, tzinfo=timezone.utc)
    assert task.due_date == datetime(2018, 12, 3, 10, 0, 0, tzinfo=timezone.utc)
    assert task.done_at == datetime(2018, 12, 2, 12, 0, 0, tzinfo=timezone.utc)
    assert task.done is True
    assert task.priority == 8
    assert task.repeat_after == 3600
    assert task.created == datetime(2018, 11, 1, 0, 0, 0, tzinfo=timezone.utc)
    assert task.updated == datetime(2018, 12, 1, 15, 0, 0, tzinfo=timezone.utc)


def test_parse_vtodo_duration_sets_end_date():
    text = (
        "BEGIN:VCALENDAR\nVERSION:2.0\nBEGIN:VTODO\nUID:d1\nSUMMARY:Meeting\n"
        "DTSTART:20181202T100000Z\nDURATION:PT1H30M\nEND:VTODO\nEND:VCALENDAR\n"
    )
    task = parse_task_from_vtodo(text)
    assert task.end_date == datetime(2018, 12, 2, 11, 30, 0, tzinfo=timezone.utc)


def test_parse_vtodo_monthly_repeat():
    text = (
        "BEGIN:VCALENDAR\nVERSION:2.0\nBEGIN:VTODO\nUID:m1\nSUMMARY:Rent\n"
        "RRULE:FREQ=MONTHLY;BYMONTHDAY=05\nEND:VTODO\nEND:VCALENDAR\n"
    )
    task = parse_task_from_vtodo(text)
    assert task.repeat_mode == RepeatMode.MONTH.value
    assert task.repeat_after == 0


def test_parse_vtodo_invalid_priority():
    text = (
        "BEGIN:VCALENDAR\nVERSION:2.0\nBEGIN:VTODO\nUID:p1\nSUMMARY:Bad\n"
        "PRIORITY:high\nEND:VTODO\nEND:VCALENDAR\n"
    )
    with pytest.raises(InvalidData):
        parse_task_from_vtodo(text)


def test_parse_garbage_is_invalid_data():
    with pytest.raises(InvalidData):
        parse_task_from_vtodo("this is not a calendar")


def test_parse_vtodo_with_bad_date_keeps_other_fields():
    text = (
        "BEGIN:VCALENDAR\nVERSION:2.0\nBEGIN:VTODO\nUID:bad1\nSUMMARY:Broken due\n"
        "DUE:notadate\nDTSTART;VALUE=DATE:20230102\nEND:VTODO\nEND:VCALENDAR\n"
    )
    task = parse_task_from_vtodo(text)
    assert task.due_date is None
    assert task.start_date == datetime(2023, 1, 2, tzinfo=timezone.utc)
    assert task.title == "Broken due"


def test_parse_vtodo_keeps_escaped_backslash():
    text = (
        "BEGIN:VCALENDAR\nVERSION:2.0\nBEGIN:VTODO\nUID:esc1\nSUMMARY:Paths\\, again\n"
        r"DESCRIPTION:C:\\new folder\nnext line" "\n"
        "END:VTODO\nEND:VCALENDAR\n"
    )
    task = parse_task_from_vtodo(text)
    assert task.title == "Paths, again"
    assert task.description == "C:\\new folder\nnext line"


def test_parse_vtodo_ignores_alarm_properties():
    text = (
        "BEGIN:VCALENDAR\nVERSION:2.0\nBEGIN:VTODO\nUID:al1\nSUMMARY:With alarm\n"
        "BEGIN:VALARM\nTRIGGER:-PT1H\nACTION:DISPLAY\nDESCRIPTION:Reminder text\nEND:VALARM\n"
        "DUE:20181203T100000Z\nEND:VTODO\nEND:VCALENDAR\n"
    )
    task = parse_task_from_vtodo(text)
    assert task.description == ""
    assert task.due_date == datetime(2018, 12, 3, 10, 0, 0, tzinfo=timezone.utc)


def test_parse_folded_lines():
    text = (
        "BEGIN:VCALENDAR\r\nVERSION:2.0\r\nBEGIN:VTODO\r\nUID:f1\r\n"
        "SUMMARY:A very long\r\n  summary\r\nEND:VTODO\r\nEND:VCALENDAR\r\n"
    )
    assert parse_task_from_vtodo(text).title == "A very long summary"


def test_parse_caldav_time_formats():
    assert parse_caldav_time("20181201T140000Z") == T
    assert parse_caldav_time("20181201T140000") == T
    assert parse_caldav_time("20181201") == datetime(2018, 12, 1, tzinfo=timezone.utc)
    assert parse_caldav_time("") is None
    assert parse_caldav_time("yesterday") is None


def test_round_trip_preserves_task():
    task = Task(
        title="Round trip",
        description="multi\nline",
        done=True,
        done_at=datetime(2019, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
        due_date=datetime(2019, 1, 10, 8, 0, 0, tzinfo=timezone.utc),
        start_date=datetime(2019, 1, 1, 8, 0, 0, tzinfo=timezone.utc),
        end_date=datetime(2019, 1, 1, 9, 0, 0, tzinfo=timezone.utc),
        priority=5,
        repeat_after=0,
        repeat_mode=0,
        hex_color="",
        uid="rt-1",
        created=datetime(2019, 1, 1, 0, 0, 0, tzinfo=timezone.utc),
        updated=datetime(2019, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
    )
    parsed = parse_task_from_vtodo(calendar_for_tasks("My list", [task]))
    assert parsed.uid == task.uid
    assert parsed.title == task.title
    assert parsed.description == task.description
    assert parsed.done is True
    assert parsed.done_at == task.done_at
    assert parsed.due_date == task.due_date
    assert parsed.start_date == task.start_date
    assert parsed.end_date == task.end_date
    assert parsed.created == task.created
    assert parsed.updated == task.updated
    assert parsed.priority == 5


# ============================================================
# HTTP
# ============================================================

async def _list_for(db, owner):
    ns = await namespace_service.create_namespace(db, "Calendars", owner.id)
    lst = await list_service.create_list(db, ns.id, "Errands", owner.id)
    await db.commit()
    return lst


@pytest.mark.asyncio
async def test_put_get_delete_todo(client, db_session, test_user):
    lst = await _list_for(db_session, test_user)
    headers = get_auth_headers(test_user)
    url = f"/dav/lists/{lst.id}/abc123.ics"

    response = await client.put(url, content=VTODO, headers=headers)
    assert response.status_code == 201

    response = await client.get(url, headers=headers)
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/calendar")
    assert "UID:abc123\n" in response.text
    assert "SUMMARY:Buy milk\n" in response.text
    assert "X-WR-CALNAME:Errands\n" in response.text

    response = await client.put(url, content=VTODO.replace("Buy milk", "Buy oat milk"), headers=headers)
    assert response.status_code == 204

    response = await client.get(f"/dav/lists/{lst.id}", headers=headers)
    assert response.text.count("BEGIN:VTODO") == 1
    assert "SUMMARY:Buy oat milk\n" in response.text

    response = await client.delete(url, headers=headers)
    assert response.status_code == 204
    response = await client.get(url, headers=headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_put_invalid_calendar(client, db_session, test_user):
    lst = await _list_for(db_session, test_user)
    response = await client.put(
        f"/dav/lists/{lst.id}/x.ics", content="this is not a calendar", headers=get_auth_headers(test_user),
    )
    assert response.status_code == 400
    assert response.json()["code"] == 2002


@pytest.mark.asyncio
async def test_put_non_utf8_body(client, db_session, test_user):
    lst = await _list_for(db_session, test_user)
    body = b"BEGIN:VCALENDAR\nBEGIN:VTODO\nSUMMARY:\xff\xfe\nEND:VTODO\nEND:VCALENDAR\n"
    response = await client.put(f"/dav/lists/{lst.id}/u.ics", content=body, headers=get_auth_headers(test_user))
    assert response.status_code == 400
    assert response.json()["code"] == 2002


@pytest.mark.asyncio
async def test_calendar_needs_read_access(client, db_session, test_user, other_user):
    lst = await _list_for(db_session, test_user)
    response = await client.get(f"/dav/lists/{lst.id}", headers=get_auth_headers(other_user))
    assert response.status_code == 403
    response = await client.put(f"/dav/lists/{lst.id}/abc123.ics", content=VTODO, headers=get_auth_headers(other_user))
    assert response.status_code == 403
