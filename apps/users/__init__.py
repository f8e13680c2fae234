from flask import Blueprint, jsonify, render_template, request, session
from flask import current_app as app
from flask_login import current_user, login_required, login_user, logout_user
from flask_mailman import EmailMessage

from models.user import User
from models.volunteer.exc import SignupError

from ..common import request_data, signup_error_response
from ..common.email import from_email

users = Blueprint("users", __name__)
users.register_error_handler(SignupError, signup_error_response)


@users.route("/login")
def login():
    if current_user.is_authenticated:
        return jsonify(user=current_user.to_dict())

    code = request.args.get("code")
    if not code:
        return jsonify(error="missing_code", message="Ask for a login link by posting your email address"), 400

    user = User.get_by_code(app.config["SECRET_KEY"], code)
    if user is None:
        return jsonify(error="invalid_code", message="Your login link was invalid or has expired"), 400

    login_user(user)
    session.permanent = True
    app.logger.info("%s logged in with a login code", user.email)
    return jsonify(user=user.to_dict())


@users.route("/login", methods=["POST"])
def login_email():
    email = (request_data().get("email") or "").strip()
    if not email:
        return jsonify(error="validation", message="An email address is required"), 400

    user = User.get_by_email(email)
    if user is not None:
        code = user.login_code(app.config["SECRET_KEY"])
        msg = EmailMessage(
            "Your volunteer shifts login link",
            from_email=from_email("VOLUNTEER_EMAIL"),
            to=[user.email],
        )
        msg.body = render_template("emails/login-code.txt", user=user, code=code)
        msg.send()
        app.logger.info("Sent login link to %s", user.email)
    else:
        app.logger.info("Login link requested for unknown address %s", email)

    # Same answer either way, so this can't be used to find out who's registered
    return jsonify(message="If that address is registered, we've sent it a login link")


@users.route("/logout")
@login_required
def logout():
    session.permanent = False
    logout_user()
    return jsonify(message="Logged out")
