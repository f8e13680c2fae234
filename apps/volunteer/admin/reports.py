from flask import current_app as app
from flask import request
from flask_login import current_user

from models.volunteer.exc import ValidationFailed

from ...common import json_response, optional_int, request_data
from ..reminders import DEFAULT_WINDOW_MINUTES, send_upcoming_shift_reminders
from ..reports import compute_stats, fetch_timelog
from . import volunteer_admin
from .shift import parse_shift_date


def _date_filters():
    date_from = request.args.get("from")
    date_to = request.args.get("to")
    return (
        parse_shift_date(date_from) if date_from else None,
        parse_shift_date(date_to) if date_to else None,
    )


@volunteer_admin.route("/timelog.json")
@json_response
def timelog():
    date_from, date_to = _date_filters()
    return fetch_timelog(date_from, date_to).to_dict()


@volunteer_admin.route("/stats.json")
@json_response
def stats():
    date_from, date_to = _date_filters()
    min_hours = request.args.get("min_hours", app.config.get("ACTIVE_VOLUNTEER_MIN_HOURS", 4))
    try:
        min_hours = float(min_hours)
    except (TypeError, ValueError) as e:
        raise ValidationFailed("min_hours must be a number") from e
    return compute_stats(min_hours, date_from, date_to).to_dict()


@volunteer_admin.route("/reminders", methods=["POST"])
@json_response
def reminders():
    window = optional_int(request_data(), "window_minutes")
    result = send_upcoming_shift_reminders(window if window is not None else DEFAULT_WINDOW_MINUTES)
    app.logger.info(
        "%s sent reminders: sent=%s skipped=%s failures=%s",
        current_user.email,
        result.sent,
        result.skipped,
        len(result.failures),
    )
    return result.to_dict()
