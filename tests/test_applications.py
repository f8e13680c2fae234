import re

from models.user import User
from models.volunteer.application import ApplicationState, VolunteerApplication

login_link_re = r"(https?://[^\s/]*/login[^\s]*)"


def apply(client, **overrides):
    data = {
        "name": "Kari Nordmann",
        "email": "kari@example.org",
        "phone": "+47 22 00 00 00",
        "message": "I've run a bar before",
    }
    data.update(overrides)
    return client.post("/volunteer/apply", json=data)


def test_apply(client, db):
    rv = apply(client, email=" Applicant.One@Example.org ")
    assert rv.status_code == 201
    assert rv.json["application"]["state"] == ApplicationState.PENDING

    application = db.session.get(VolunteerApplication, rv.json["application"]["id"])
    assert application.email == "applicant.one@example.org"
    assert application.name == "Kari Nordmann"

    # One open application per address
    rv = apply(client, email="applicant.one@example.org")
    assert rv.status_code == 409
    assert rv.json["error"] == "already_applied"


def test_apply_validation(client):
    rv = apply(client, email="not an email address")
    assert rv.status_code == 400
    assert rv.json["error"] == "validation"

    rv = apply(client, email="applicant.two@example.org", message="")
    assert rv.status_code == 400

    rv = apply(client, email="applicant.two@example.org", name="  ")
    assert rv.status_code == 400


def test_approve(app, client, db, admin, outbox):
    rv = apply(client, email="applicant.three@example.org")
    application_id = rv.json["application"]["id"]
    admin_client = app.test_client(user=admin)

    rv = admin_client.get("/volunteer/admin/applications.json?state=pending")
    assert application_id in [a["id"] for a in rv.json]

    rv = admin_client.post(f"/volunteer/admin/application/{application_id}/approve")
    assert rv.status_code == 200
    assert rv.json["application"]["state"] == ApplicationState.APPROVED
    assert rv.json["emailed"] is True

    user = User.get_by_email("applicant.three@example.org")
    assert user is not None
    assert user.name == "Kari Nordmann"
    assert user.phone == "+47 22 00 00 00"
    assert user.has_permission("volunteer:user")
    assert rv.json["user"]["id"] == user.id
    assert rv.json["application"]["user_id"] == user.id

    application = db.session.get(VolunteerApplication, application_id)
    assert application.decided_by == admin
    assert application.decided_at is not None

    rv = admin_client.get("/volunteer/admin/applications.json?state=pending")
    assert application_id not in [a["id"] for a in rv.json]

    # The approval email logs them straight in
    assert outbox[-1].to == ["applicant.three@example.org"]
    match = re.search(login_link_re, outbox[-1].body)
    new_client = app.test_client()
    rv = new_client.get(match.group(0))
    assert rv.status_code == 200
    assert new_client.get("/volunteer/shifts.json").status_code == 200

    # Decisions are final, and an approved volunteer can't apply again
    rv = admin_client.post(f"/volunteer/admin/application/{application_id}/reject")
    assert rv.status_code == 409
    assert rv.json["error"] == "already_decided"

    rv = apply(client, email="applicant.three@example.org")
    assert rv.status_code == 409


def test_approve_existing_user(app, client, db, admin):
    existing = User("applicant.four@example.org", "Already Here")
    db.session.add(existing)
    db.session.commit()

    rv = apply(client, email="Applicant.Four@example.org")
    application_id = rv.json["application"]["id"]

    rv = app.test_client(user=admin).post(f"/volunteer/admin/application/{application_id}/approve")
    assert rv.status_code == 200
    assert rv.json["user"]["id"] == existing.id
    assert existing.has_permission("volunteer:user")
    assert existing.name == "Already Here"


def test_reject(app, client, db, admin, outbox):
    rv = apply(client, email="applicant.five@example.org")
    application_id = rv.json["application"]["id"]
    admin_client = app.test_client(user=admin)

    rv = admin_client.post(f"/volunteer/admin/application/{application_id}/reject")
    assert rv.status_code == 200
    assert rv.json["application"]["state"] == ApplicationState.REJECTED
    assert outbox[-1].to == ["applicant.five@example.org"]
    assert User.get_by_email("applicant.five@example.org") is None

    rv = admin_client.post(f"/volunteer/admin/application/{application_id}/approve")
    assert rv.status_code == 409
    assert User.get_by_email("applicant.five@example.org") is None

    # A rejected applicant may try again
    rv = apply(client, email="applicant.five@example.org")
    assert rv.status_code == 201


def test_application_admin_only(app, client, volunteer):
    rv = apply(client, email="applicant.six@example.org")
    application_id = rv.json["application"]["id"]

    rv = app.test_client(user=volunteer).post(f"/volunteer/admin/application/{application_id}/approve")
    assert rv.status_code == 403

    rv = client.get("/volunteer/admin/applications.json")
    assert rv.status_code == 401

    rv = app.test_client(user=volunteer).post("/volunteer/admin/application/999999/approve")
    assert rv.status_code == 403
