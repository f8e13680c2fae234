""" Several volunteers going for the same places at once.

Each thread gets its own app context, and so its own database session and
connection. The test's own session has to be committed before the threads
start: on SQLite any open transaction holds the write lock.
"""
import threading

from apps.volunteer.signups import SelfSignup, cancel_signup, count_confirmed, join_waitlist, sign_up
from models.volunteer.exc import SignupError, SignupErrorKind
from tests._utils import make_shift, make_user


def run_together(app, calls):
    """Run each callable in its own thread and app context, released at
    the same moment. Returns a list of (result, error) pairs."""
    barrier = threading.Barrier(len(calls))
    results = [None] * len(calls)

    def runner(i, call):
        with app.app_context():
            barrier.wait()
            try:
                results[i] = (call(), None)
            except SignupError as e:
                results[i] = (None, e)

    threads = [threading.Thread(target=runner, args=(i, call)) for i, call in enumerate(calls)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)
    return results


def test_simultaneous_signups_never_overfill(app, db):
    capacity = 3
    shift_id = make_shift(max_volunteers=capacity).id
    user_ids = [make_user().id for _ in range(10)]
    db.session.commit()

    results = run_together(
        app,
        [lambda user_id=user_id: sign_up(shift_id, SelfSignup(user_id)).id for user_id in user_ids],
    )

    successes = [r for r, e in results if e is None]
    failures = [e for r, e in results if e is not None]
    assert len(successes) == capacity
    assert len(failures) == len(user_ids) - capacity
    assert all(e.kind == SignupErrorKind.SHIFT_FULL for e in failures)

    assert count_confirmed(db.session, shift_id) == capacity
    db.session.commit()


def test_cancellation_racing_a_new_signup(app, db):
    shift = make_shift(max_volunteers=1)
    holder, waiting, newcomer = make_user(), make_user(), make_user()
    signup = sign_up(shift.id, SelfSignup(holder.id))
    join_waitlist(shift.id, waiting.id)

    shift_id, signup_id = shift.id, signup.id
    holder_id, waiting_id, newcomer_id = holder.id, waiting.id, newcomer.id
    db.session.commit()

    (outcome, cancel_error), (_, signup_error) = run_together(
        app,
        [
            lambda: cancel_signup(signup_id, holder_id, is_admin=False),
            lambda: sign_up(shift_id, SelfSignup(newcomer_id)).id,
        ],
    )
    assert cancel_error is None

    # Whichever order they ran in, the freed place belongs to the volunteer
    # who was already waiting for it.
    assert signup_error.kind == SignupErrorKind.SHIFT_FULL
    assert outcome.promotion.promoted_from.user_id == waiting_id
    assert count_confirmed(db.session, shift_id) == 1
    db.session.commit()
