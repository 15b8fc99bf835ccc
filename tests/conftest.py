from datetime import datetime, timedelta, timezone

import pytest

from pronostics import create_app, db, socketio
from pronostics.models import Competition, Game, Team, User
from pronostics.utils.live_sync import live_score_sync


def utcnow():
    """Naive UTC now, the form game dates are stored in"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


@pytest.fixture()
def flask_app():
    application = create_app("testing")
    with application.app_context():
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()
    live_score_sync.providers.clear()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace="/scores",
    )
    yield test_client
    if test_client.is_connected(namespace="/scores"):
        test_client.disconnect(namespace="/scores")


@pytest.fixture()
def make_user(flask_app):
    def _make_user(username, is_admin=False):
        user = User(username=username, email=f"{username}@example.com", is_admin=is_admin)
        db.session.add(user)
        db.session.commit()
        return user

    return _make_user


@pytest.fixture()
def make_team(flask_app):
    def _make_team(name, sport="FOOTBALL", short_name=None):
        team = Team(name=name, sport=sport, short_name=short_name)
        db.session.add(team)
        db.session.commit()
        return team

    return _make_team


@pytest.fixture()
def make_competition(flask_app):
    def _make_competition(name="Champions League", sport="FOOTBALL", **kwargs):
        competition = Competition(name=name, sport=sport, status="ACTIVE", **kwargs)
        db.session.add(competition)
        db.session.commit()
        return competition

    return _make_competition


@pytest.fixture()
def make_game(flask_app):
    def _make_game(competition, home, away, starts_in=timedelta(hours=2), **kwargs):
        game = Game(
            competition_id=competition.id,
            home_team_id=home.id,
            away_team_id=away.id,
            date=utcnow() + starts_in,
            **kwargs,
        )
        db.session.add(game)
        db.session.commit()
        return game

    return _make_game


@pytest.fixture()
def football_setup(make_user, make_team, make_competition, make_game):
    """A football competition with two members and one upcoming game"""
    competition = make_competition()
    psg = make_team("Paris Saint-Germain")
    inter = make_team("Inter Milan")
    alice = make_user("alice")
    bob = make_user("bob")

    competition.add_participant(alice)
    competition.add_participant(bob)
    db.session.commit()

    game = make_game(competition, psg, inter)
    return {
        "competition": competition,
        "home": psg,
        "away": inter,
        "alice": alice,
        "bob": bob,
        "game": game,
    }


@pytest.fixture()
def live_game(football_setup):
    """The football_setup game, kicked off 30 minutes ago and LIVE at 0-0"""
    game = football_setup["game"]
    game.date = game.date - timedelta(hours=2, minutes=30)
    game.status = "LIVE"
    game.live_home_score = 0
    game.live_away_score = 0
    db.session.commit()
    return game
