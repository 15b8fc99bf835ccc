from datetime import timedelta

from pronostics import db
from pronostics.models import Game
from pronostics.services.scheduler_service import SchedulerService
from pronostics.utils.live_sync import LiveScoreSync

from .test_live_sync import FakeProvider, external


class BrokenProvider(FakeProvider):
    def get_live_matches(self):
        raise RuntimeError("unexpected payload")


def make_service(flask_app, provider):
    service = SchedulerService(flask_app)
    service.live_sync = LiveScoreSync(providers={"FOOTBALL": provider})
    return service


def test_scheduler_not_started_when_disabled(flask_app):
    service = SchedulerService(flask_app)

    assert service.is_running is False
    status = service.get_status()
    assert status["jobs"] == []
    assert status["stats"]["total_syncs"] == 0


def test_force_live_sync(flask_app, live_game):
    live_game.external_id = "100"
    db.session.commit()
    service = make_service(flask_app, FakeProvider(live=[external("100", "X", "Y", 2, 0)]))

    ok, message = service.force_sync("live", "football")

    assert ok
    assert message == "Manual live sync completed"
    assert service.sync_stats["successful_syncs"] == 1
    assert service.sync_stats["games_updated"] == 1
    assert service.get_status()["stats"]["last_sync"] is not None

    db.session.expire_all()
    assert db.session.get(Game, live_game.id).current_score == (2, 0)


def test_live_sync_skipped_without_activity(flask_app):
    provider = FakeProvider(live=[external("100", "X", "Y", 2, 0)])
    service = make_service(flask_app, provider)

    service.force_sync("live", "FOOTBALL")

    assert service.sync_stats["total_syncs"] == 0


def test_failed_sync_is_recorded(flask_app, live_game):
    service = make_service(flask_app, BrokenProvider())

    ok, message = service.force_sync("live", "FOOTBALL")

    assert not ok
    assert message == "Manual sync failed: unexpected payload"
    assert service.sync_stats["failed_syncs"] == 1
    assert service.sync_stats["last_error"] == "unexpected payload"


def test_force_status_sync(flask_app, football_setup):
    game = football_setup["game"]
    game.date = game.date - timedelta(days=1)
    db.session.commit()
    service = SchedulerService(flask_app)

    ok, _ = service.force_sync("status")

    assert ok
    assert service.sync_stats["games_updated"] == 1
    db.session.expire_all()
    assert db.session.get(Game, game.id).status == "LIVE"


def test_force_daily_maintenance(flask_app, football_setup):
    ok, message = SchedulerService(flask_app).force_sync("daily")

    assert ok
    assert message == "Manual daily sync completed"


def test_unknown_sync_type(flask_app):
    ok, message = SchedulerService(flask_app).force_sync("weekly")

    assert not ok
    assert "Unknown sync type" in message


def test_force_sync_without_app():
    ok, message = SchedulerService().force_sync()

    assert not ok
    assert message == "Scheduler is not initialized"


def test_pause_and_resume_job(flask_app):
    service = SchedulerService(flask_app)
    service._add_core_jobs()

    ok, message = service.pause_job("sync_game_status")
    assert ok
    assert message == "Job sync_game_status paused"

    ok, _ = service.resume_job("sync_game_status")
    assert ok


def test_pause_unknown_job(flask_app):
    ok, message = SchedulerService(flask_app).pause_job("nope")

    assert not ok
    assert message.startswith("Failed to pause job")
