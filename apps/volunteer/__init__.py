from decorator import decorator
from flask import Blueprint, jsonify
from flask import current_app as app
from flask_login import current_user

from apps.common import signup_error_response
from models.volunteer.exc import SignupError

volunteer = Blueprint("volunteer", __name__)


# Refusals get a JSON body, like SignupError responses.
def require_volunteer_permission(permission):
    def call(f, *args, **kwargs):
        if current_user.is_authenticated:
            if current_user.has_permission(permission):
                return f(*args, **kwargs)
            return jsonify(error="forbidden", message="You need to be an approved volunteer"), 403
        return app.login_manager.unauthorized()

    return decorator(call)


# User means their application has been approved
v_user_required = require_volunteer_permission("volunteer:user")


volunteer.register_error_handler(SignupError, signup_error_response)


from . import (
    apply,  # noqa: F401
    schedule,  # noqa: F401
    tasks,  # noqa: F401
)
