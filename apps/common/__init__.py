from decorator import decorator
from flask import request
from flask import current_app as app
from flask.json import jsonify
from werkzeug.exceptions import HTTPException
from werkzeug.wrappers import Response

from models.volunteer.exc import SignupError, ValidationFailed


@decorator
def json_response(f, *args, **kwargs):
    try:
        response = f(*args, **kwargs)

    except HTTPException as e:
        data = {"error": e.name.lower().replace(" ", "_"), "message": e.description}
        return jsonify(data), e.code

    else:
        if isinstance(response, app.response_class | Response | tuple):
            return response

        return jsonify(response), 200


def signup_error_response(e: SignupError):
    app.logger.info("Refused %s %s: %s (%s)", request.method, request.path, e.message, e.kind)
    return jsonify(e.to_dict()), e.status_code


def request_data() -> dict:
    """The request's JSON object, or its form fields if it wasn't JSON."""
    data = request.get_json(silent=True)
    if data is None:
        return request.form.to_dict()
    if not isinstance(data, dict):
        raise ValidationFailed("Expected a JSON object")
    return data


def optional_int(data: dict, key: str) -> int | None:
    value = data.get(key)
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ValidationFailed(f"{key} must be a whole number") from e
