""" A middleware to export the acting user to log records.

    Werkzeug logs the request after the Flask app context has ended
    so we use Werkzeug's Local object to pass the user into the
    logging formatter. Shift operations also record which shift they
    are working on, so a sign-up race can be followed in the logs.
"""

import logging
from werkzeug.local import Local, LocalManager

local = Local()
local_manager = LocalManager([local])


class ContextFormatter(logging.Formatter):
    """ A logging formatter which inserts the acting user and shift
        into the logging record. """
    def format(self, record):
        record.user = getattr(local, 'user_id', None)
        record.shift = getattr(local, 'shift_id', None)
        return logging.Formatter.format(self, record)


def set_user_id(uid):
    """ Set the user ID for later use in logging. """
    local.user_id = uid


def set_shift_id(shift_id):
    """ Set the shift being worked on for later use in logging. """
    local.shift_id = shift_id


def create_logging_manager(app):
    app.wsgi_app = local_manager.make_middleware(app.wsgi_app)
