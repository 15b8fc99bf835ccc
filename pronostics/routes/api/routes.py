from datetime import date, datetime, timezone

from flask import Response, current_app, jsonify, request

from pronostics import db, limiter
from pronostics.models import Bet, Competition, Game, Team, User
from pronostics.models.bet import GAME_NOT_FOUND, NOT_PARTICIPANT
from pronostics.routes.api import bp
from pronostics.services.refresh_broadcaster import refresh_broadcaster
from pronostics.utils.cache_utils import (
    CacheManager,
    cached_route,
    invalidate_model_cache,
)
from pronostics.utils.live_sync import live_score_sync
from pronostics.utils.stats import get_user_stats


def _json_body():
    return request.get_json(silent=True) or {}


def _int_or_none(value):
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _get_user(data):
    """Resolve the acting user from a request payload"""
    user_id = _int_or_none(data.get("user_id"))
    if user_id is None:
        return None, (jsonify({"error": "user_id is required"}), 400)

    user = db.session.get(User, user_id)
    if not user:
        return None, (jsonify({"error": "User not found"}), 404)

    return user, None


def _get_admin(data):
    user, error = _get_user(data)
    if error:
        return None, error
    if not user.is_admin:
        return None, (jsonify({"error": "Admin privileges required"}), 403)
    return user, None


def _serialize_ranking(ranking):
    rows = []
    for row in ranking:
        row = dict(row)
        row["user"] = row["user"].to_dict()
        rows.append(row)
    return rows


# ----------------------------------------------------------------------
# Competitions
# ----------------------------------------------------------------------


@bp.route("/competitions")
@cached_route(timeout=300, key_prefix="Competition_list")
def competitions():
    """Get all competitions, optionally filtered by sport"""
    query = Competition.query
    sport = request.args.get("sport")
    if sport:
        query = query.filter(Competition.sport == sport.upper())

    competitions = query.order_by(Competition.start_date.desc(), Competition.id).all()
    return [competition.to_dict(include_counts=True) for competition in competitions]


@bp.route("/competitions/<int:competition_id>")
def competition_detail(competition_id):
    competition = db.get_or_404(Competition, competition_id)
    return jsonify(competition.to_dict(include_counts=True))


@bp.route("/competitions/<int:competition_id>/join", methods=["POST"])
def join_competition(competition_id):
    """Add the user to a competition"""
    competition = db.get_or_404(Competition, competition_id)

    user, error = _get_user(_json_body())
    if error:
        return error

    if not competition.is_joinable():
        return jsonify({"error": "Competition is closed"}), 400

    membership, created = competition.add_participant(user)
    if created:
        # Games already started count as forgotten bets
        competition.update_shooters()
    db.session.commit()
    invalidate_model_cache("Competition")

    return (
        jsonify(
            {
                "success": True,
                "created": created,
                "membership": membership.to_dict(),
            }
        ),
        201 if created else 200,
    )


@bp.route("/competitions/<int:competition_id>/games")
@cached_route(timeout=60, key_prefix="Game_competition")
def competition_games(competition_id):
    """Get the games of a competition, optionally filtered by status"""
    competition = db.get_or_404(Competition, competition_id)

    query = competition.games
    status = request.args.get("status")
    if status:
        query = query.filter(Game.status == status.upper())

    games = query.order_by(Game.date, Game.id).all()
    return [game.to_dict(include_bets_count=True) for game in games]


@bp.route("/competitions/<int:competition_id>/ranking")
@cached_route(timeout=60, key_prefix="Competition_ranking")
def competition_ranking(competition_id):
    """Get the ranking of a competition"""
    competition = db.get_or_404(Competition, competition_id)
    return {
        "competition": competition.to_dict(),
        "ranking": _serialize_ranking(competition.get_ranking()),
    }


@bp.route("/competitions/<int:competition_id>/ranking-evolution")
@cached_route(timeout=300, key_prefix="Competition_evolution")
def competition_ranking_evolution(competition_id):
    """Cumulative points and positions after each matchday"""
    competition = db.get_or_404(Competition, competition_id)
    return {
        "competition_id": competition.id,
        "ranking_evolution": competition.get_ranking_evolution(),
    }


@bp.route("/competitions/<int:competition_id>/players-performance")
@cached_route(timeout=300, key_prefix="Competition_performance")
def competition_players_performance(competition_id):
    competition = db.get_or_404(Competition, competition_id)
    performance = competition.get_players_performance()
    return {
        "competition_name": competition.name,
        "players_performance": performance,
        "total_games": len(performance[0]["last_games"]) if performance else 0,
    }


@bp.route(
    "/competitions/<int:competition_id>/final-winner-prediction",
    methods=["GET", "POST"],
)
def final_winner_prediction(competition_id):
    """Read or set a participant's final winner pick"""
    competition = db.get_or_404(Competition, competition_id)

    data = request.args if request.method == "GET" else _json_body()
    user, error = _get_user(data)
    if error:
        return error

    membership = competition.get_participant(user.id)
    if not membership:
        return jsonify({"error": NOT_PARTICIPANT}), 403

    if request.method == "GET":
        return jsonify(membership.to_dict())

    team_id = _int_or_none(data.get("team_id"))
    if team_id is None:
        return jsonify({"error": "team_id is required"}), 400
    if not db.session.get(Team, team_id):
        return jsonify({"error": "Team not found"}), 404

    success, message = membership.set_final_winner_prediction(team_id)
    if not success:
        return jsonify({"error": message}), 400

    db.session.commit()
    return jsonify({"success": True, "message": message, "membership": membership.to_dict()})


# ----------------------------------------------------------------------
# Games and bets
# ----------------------------------------------------------------------


@bp.route("/games/of-day")
def games_of_day():
    """Get games kicking off on a day (today by default)"""
    day = None
    raw_date = request.args.get("date")
    if raw_date:
        try:
            day = date.fromisoformat(raw_date)
        except ValueError:
            return jsonify({"error": "date must be YYYY-MM-DD"}), 400

    games = Game.get_games_of_day(day, sport=request.args.get("sport"))
    return jsonify(
        {
            "date": (day or datetime.now(timezone.utc).date()).isoformat(),
            "games": [game.to_dict(include_bets_count=True) for game in games],
        }
    )


@bp.route("/games/<int:game_id>")
def game_detail(game_id):
    game = db.get_or_404(Game, game_id)
    return jsonify(game.to_dict(include_bets_count=True))


@bp.route("/games/<int:game_id>/bets", methods=["GET"])
def game_bets(game_id):
    """Bets on a game

    Everyone's bets are public once the game has kicked off. Before that
    only the bet of ``user_id`` is returned.
    """
    game = db.get_or_404(Game, game_id)

    if game.has_started():
        bets = game.bets.order_by(Bet.created_at).all()
    else:
        user_id = _int_or_none(request.args.get("user_id"))
        if user_id is None:
            return jsonify({"game_id": game.id, "bets": [], "hidden": True})
        bets = game.bets.filter(Bet.user_id == user_id).all()

    return jsonify(
        {
            "game_id": game.id,
            "bets": [bet.to_dict() for bet in bets],
            "hidden": False,
        }
    )


@bp.route("/games/<int:game_id>/bets", methods=["POST"])
@limiter.limit("60 per minute")
def place_bet(game_id):
    """Place or update a bet"""
    data = _json_body()
    user, error = _get_user(data)
    if error:
        return error

    bet, message = Bet.place_bet(user.id, game_id, data.get("score1"), data.get("score2"))
    if bet is None:
        if message == GAME_NOT_FOUND:
            return jsonify({"error": message}), 404
        if message == NOT_PARTICIPANT:
            return jsonify({"error": message}), 403
        return jsonify({"error": message}), 400

    db.session.commit()
    invalidate_model_cache("Bet")

    return jsonify({"success": True, "message": message, "bet": bet.to_dict()})


# ----------------------------------------------------------------------
# Users
# ----------------------------------------------------------------------


@bp.route("/users/<int:user_id>/stats")
def user_stats(user_id):
    user = db.get_or_404(User, user_id)
    return jsonify(get_user_stats(user))


# ----------------------------------------------------------------------
# Live scores
# ----------------------------------------------------------------------


@bp.route("/update-live-scores", methods=["POST"])
@limiter.limit("20 per minute")
def update_live_scores():
    """Run a live score reconciliation for one sport"""
    sport = _json_body().get("sport") or request.args.get("sport") or "FOOTBALL"
    if not isinstance(sport, str):
        return jsonify({"error": "sport must be a string"}), 400

    try:
        result = live_score_sync.update_live_scores(sport)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Live score update failed: {e}", exc_info=True)
        return jsonify({"error": "Live score update failed"}), 500

    return jsonify({"success": True, **result})


@bp.route("/games/update-status", methods=["POST"])
def update_game_statuses():
    """Start games whose kickoff time has passed"""
    try:
        games = live_score_sync.update_game_statuses()
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Game status update failed: {e}", exc_info=True)
        return jsonify({"error": "Game status update failed"}), 500

    return jsonify(
        {
            "success": True,
            "updated": len(games),
            "games": [game.to_dict() for game in games],
        }
    )


@bp.route("/admin/games/<int:game_id>/score", methods=["POST"])
def manual_score_update(game_id):
    """Set the final score of a game by hand"""
    data = _json_body()
    _, error = _get_admin(data)
    if error:
        return error

    game, message = live_score_sync.manual_score_update(
        game_id,
        data.get("home_score"),
        data.get("away_score"),
        decided_by=data.get("decided_by") or "FT",
    )
    if game is None:
        status = 404 if message == GAME_NOT_FOUND else 400
        return jsonify({"error": message}), status

    return jsonify({"success": True, "message": message, "game": game.to_dict()})


# ----------------------------------------------------------------------
# Real-time refresh
# ----------------------------------------------------------------------


@bp.route("/refresh-games-cards")
def refresh_games_cards():
    """Server-Sent Events stream of refresh signals"""
    client_queue = refresh_broadcaster.subscribe()
    keepalive = current_app.config.get("SSE_KEEPALIVE_SECONDS", 20)

    return Response(
        refresh_broadcaster.stream(client_queue, keepalive_seconds=keepalive),
        mimetype="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
            "Connection": "keep-alive",
        },
    )


@bp.route("/trigger-frontend-refresh", methods=["POST"])
def trigger_frontend_refresh():
    """Ask every connected page to reload its game cards"""
    from pronostics.socketio_handlers import broadcast_refresh

    signal = refresh_broadcaster.broadcast()
    broadcast_refresh(signal)
    return jsonify({"success": True, **signal})


# ----------------------------------------------------------------------
# Monitoring
# ----------------------------------------------------------------------


@bp.route("/scheduler/status")
def scheduler_status():
    from pronostics.services.scheduler_service import scheduler_service
    from pronostics.socketio_handlers import get_connection_stats

    status = scheduler_service.get_status()
    status["providers"] = [
        provider.get_rate_limit_status()
        for provider in live_score_sync.providers.values()
    ]
    status["cache"] = CacheManager.get_cache_stats()
    status["socketio"] = get_connection_stats()
    status["sse_clients"] = refresh_broadcaster.connected_clients
    return jsonify(status)


@bp.route("/admin/scheduler/sync", methods=["POST"])
def scheduler_force_sync():
    """Run a scheduler job now: live, status or daily"""
    from pronostics.services.scheduler_service import scheduler_service

    data = _json_body()
    _, error = _get_admin(data)
    if error:
        return error

    sport = data.get("sport") or "FOOTBALL"
    if not isinstance(sport, str):
        return jsonify({"error": "sport must be a string"}), 400

    success, message = scheduler_service.force_sync(data.get("type") or "live", sport)
    if not success:
        return jsonify({"success": False, "error": message}), 400
    return jsonify({"success": True, "message": message})


@bp.route("/admin/scheduler/jobs/<job_id>/<action>", methods=["POST"])
def scheduler_job_action(job_id, action):
    """Pause or resume a background job"""
    from pronostics.services.scheduler_service import scheduler_service

    _, error = _get_admin(_json_body())
    if error:
        return error

    if action == "pause":
        success, message = scheduler_service.pause_job(job_id)
    elif action == "resume":
        success, message = scheduler_service.resume_job(job_id)
    else:
        return jsonify({"error": f"Unknown action: {action}"}), 404

    if not success:
        return jsonify({"success": False, "error": message}), 400
    return jsonify({"success": True, "message": message})
