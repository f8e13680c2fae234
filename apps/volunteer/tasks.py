""" Volunteer system CLI tasks """

import click
from flask import current_app as app

from main import db
from models.user import User

from . import volunteer
from .reminders import DEFAULT_WINDOW_MINUTES, send_upcoming_shift_reminders


@volunteer.cli.command("send_reminders")
@click.option("--window", default=DEFAULT_WINDOW_MINUTES, show_default=True, help="Minutes ahead to look for shifts")
def send_reminders(window):
    """Email volunteers whose shifts start soon"""
    result = send_upcoming_shift_reminders(window)
    app.logger.info("Sent %s reminders, skipped %s", result.sent, result.skipped)
    for failure in result.failures:
        app.logger.warning("Reminder for signup %s failed: %s", failure.signup_id, failure.reason)


@volunteer.cli.command("make_admin")
@click.argument("email")
@click.option("--name", default=None, help="Name for the user, if they need creating")
def make_admin(email, name):
    """Make a user a volunteer admin, creating them if needed"""
    user = User.get_by_email(email)
    if user is None:
        user = User(email.lower(), name or email.split("@")[0])
        db.session.add(user)
        app.logger.info("Created user %s", email)

    user.grant_permission("volunteer:admin")
    db.session.commit()
    app.logger.info("%s is now a volunteer admin", user.email)
