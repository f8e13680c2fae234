from flask import Blueprint, jsonify
from flask import current_app as app
from flask_login import current_user

from apps.common import signup_error_response
from models.volunteer.exc import SignupError

volunteer_admin = Blueprint("volunteer_admin", __name__)


@volunteer_admin.before_request
def volunteer_admin_require_permission():
    """Require volunteer:admin for everything under /volunteer/admin"""
    if not current_user.is_authenticated:
        return app.login_manager.unauthorized()
    if not current_user.has_permission("volunteer:admin"):
        return jsonify(error="forbidden", message="You need to be a volunteer admin"), 403


volunteer_admin.register_error_handler(SignupError, signup_error_response)


from . import applications  # noqa: F401
from . import reports  # noqa: F401
from . import shift  # noqa: F401
from . import volunteer  # noqa: F401
