import os

from main import create_app, db

app = create_app(dev_server=True)
# Prevent DB connections being shared with the reloader's parent process
ppid = os.getpid()


@app.before_request
def fix_shared_state():
    if os.getpid() != ppid:
        db.engine.dispose()
