from datetime import UTC, date, datetime

import pytest

from apps.volunteer.reports import compute_stats, fetch_timelog, minutes_to_hours
from main import db as db_obj
from models.volunteer.shift import Shift, Signup, WaitlistEntry
from tests._utils import make_user

NOW = datetime(2026, 5, 1, 12, 0, tzinfo=UTC)


def add_shift(on, start_time="10:00", end_time="14:00", max_volunteers=4, title="Stage crew"):
    shift = Shift(title, on, start_time, end_time, max_volunteers=max_volunteers)
    db_obj.session.add(shift)
    db_obj.session.commit()
    return shift


def add_signup(shift, user, worked_minutes=None, cancelled=False):
    signup = Signup(shift.id, user.id)
    signup.confirm()
    if cancelled:
        signup.cancel()
    signup.worked_minutes = worked_minutes
    db_obj.session.add(signup)
    db_obj.session.commit()
    return signup


@pytest.fixture(scope="module")
def history(db):
    """Two months of shifts, with a couple still to come relative to NOW."""
    alice = make_user("alice")
    bob = make_user("Bob")
    carol = make_user("carol")

    march = add_shift(date(2026, 3, 10))
    march_short = add_shift(date(2026, 3, 20), "09:00", "10:30")
    april = add_shift(date(2026, 4, 5), "18:00", "23:00")
    later_today = add_shift(date(2026, 5, 1), "15:00", "17:00")
    future = add_shift(date(2026, 6, 1))

    add_signup(march, alice)
    add_signup(march, bob, worked_minutes=60)
    add_signup(march, carol, cancelled=True)
    add_signup(march_short, alice)
    add_signup(april, bob)
    add_signup(april, carol, worked_minutes=0)
    add_signup(later_today, alice)
    add_signup(future, bob)

    waiting = make_user("waiting")
    db_obj.session.add(WaitlistEntry(future.id, waiting.id))
    db_obj.session.commit()

    return {
        "alice": alice,
        "bob": bob,
        "carol": carol,
        "march": march,
        "march_short": march_short,
        "april": april,
        "later_today": later_today,
        "future": future,
    }


def test_minutes_to_hours():
    assert minutes_to_hours(90) == 1.5
    assert minutes_to_hours(20) == 0.33
    assert minutes_to_hours(0) == 0


def test_timelog_only_counts_finished_confirmed_shifts(history):
    timelog = fetch_timelog(date(2026, 3, 1), date(2026, 6, 30), now=NOW)

    shift_ids = {e.shift_id for e in timelog.entries}
    assert shift_ids == {history["march"].id, history["march_short"].id, history["april"].id}
    # Carol cancelled her March shift
    assert (history["march"].id, history["carol"].id) not in {(e.shift_id, e.user_id) for e in timelog.entries}

    # Most recent shifts first
    assert timelog.entries[0].shift_id == history["april"].id


def test_timelog_totals(history):
    timelog = fetch_timelog(date(2026, 3, 1), date(2026, 6, 30), now=NOW)

    totals = {t.user_id: t.total_minutes for t in timelog.totals}
    assert totals == {
        history["alice"].id: 240 + 90,
        history["bob"].id: 60 + 300,
        history["carol"].id: 0,
    }
    # Sorted by name, ignoring case
    assert [t.volunteer_name.split()[0] for t in timelog.totals] == ["alice", "Bob", "carol"]

    entry = next(e for e in timelog.entries if e.user_id == history["bob"].id and e.shift_id == history["march"].id)
    data = entry.to_dict()
    assert data["scheduled_minutes"] == 240
    assert data["worked_minutes"] == 60
    assert data["effective_minutes"] == 60
    assert data["effective_hours"] == 1.0
    assert data["shift_date"] == "2026-03-10"


def test_timelog_date_filter(history):
    timelog = fetch_timelog(date(2026, 4, 1), date(2026, 4, 30), now=NOW)
    assert {e.shift_id for e in timelog.entries} == {history["april"].id}

    # Once the day is over, the later shift counts too
    timelog = fetch_timelog(date(2026, 5, 1), date(2026, 5, 1), now=datetime(2026, 5, 2, tzinfo=UTC))
    assert {e.shift_id for e in timelog.entries} == {history["later_today"].id}


def test_stats(history):
    stats = compute_stats(min_hours=5, date_from=date(2026, 3, 1), date_to=date(2026, 6, 30), now=NOW)

    assert [(m.month, m.minutes) for m in stats.monthly_totals] == [("2026-03", 240 + 90 + 60), ("2026-04", 300)]

    # Alice has 5.5 hours, Bob 6, Carol none
    assert [v.user_id for v in stats.active_volunteers] == [history["bob"].id, history["alice"].id]

    underfilled = {s.shift_id: s for s in stats.underfilled_shifts}
    assert underfilled[history["future"].id].vacancy == 3
    assert underfilled[history["future"].id].waitlist_count == 1
    assert underfilled[history["march"].id].vacancy == 2
    assert underfilled[history["march_short"].id].vacancy == 3
    vacancies = [s.vacancy for s in stats.underfilled_shifts]
    assert vacancies == sorted(vacancies, reverse=True)


def test_stats_ignores_full_shifts(db, history):
    full = add_shift(date(2026, 7, 1), max_volunteers=1)
    add_signup(full, history["alice"])

    stats = compute_stats(date_from=date(2026, 7, 1), date_to=date(2026, 7, 31), now=NOW)
    assert stats.underfilled_shifts == []
    assert stats.to_dict()["monthly_totals"] == []


def test_report_endpoints(app, admin, history):
    client = app.test_client(user=admin)

    rv = client.get("/volunteer/admin/timelog.json?from=2026-03-01&to=2026-04-30")
    assert rv.status_code == 200
    assert {e["shift_id"] for e in rv.json["entries"]} == {
        history["march"].id,
        history["march_short"].id,
        history["april"].id,
    }
    totals = {t["user_id"]: t["total_hours"] for t in rv.json["totals"]}
    assert totals[history["alice"].id] == 5.5

    rv = client.get("/volunteer/admin/stats.json?from=2026-03-01&to=2026-04-30&min_hours=5.5")
    assert rv.status_code == 200
    assert [v["user_id"] for v in rv.json["active_volunteers"]] == [history["bob"].id, history["alice"].id]
    assert rv.json["monthly_totals"][0] == {"month": "2026-03", "minutes": 390, "hours": 6.5}

    rv = client.get("/volunteer/admin/stats.json?min_hours=lots")
    assert rv.status_code == 400

    rv = client.get("/volunteer/admin/timelog.json?from=someday")
    assert rv.status_code == 400
