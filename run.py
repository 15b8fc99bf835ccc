# Eventlet monkey patching MUST be first before any other imports
import eventlet
eventlet.monkey_patch()

from pronostics import create_app, db, socketio  # noqa: E402
from pronostics.models import Bet, Competition, CompetitionUser, Game, Team, User  # noqa: E402

app = create_app()


@app.shell_context_processor
def make_shell_context():
    return {
        "db": db,
        "User": User,
        "Team": Team,
        "Competition": Competition,
        "CompetitionUser": CompetitionUser,
        "Game": Game,
        "Bet": Bet,
    }


if __name__ == "__main__":
    socketio.run(app, host="0.0.0.0", port=5000, debug=app.config.get("DEBUG", False))
