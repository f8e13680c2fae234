from flask import current_app as app


def from_email(name):
    sender_name, email = app.config[name]
    return f"{sender_name} <{email}>"
