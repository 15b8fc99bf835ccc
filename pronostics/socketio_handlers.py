"""
SocketIO Event Handlers for Real-time Updates

Clients connect to the ``/scores`` namespace, may join ``game_<id>`` rooms
for per-game updates and ``user_bets_<id>`` rooms for their bet results.
Every client receives the global ``refresh_games`` signal.
"""

import logging

from flask import request
from flask_socketio import emit, join_room, leave_room

from pronostics import db, socketio
from pronostics.models import Bet, Game

logger = logging.getLogger(__name__)

NAMESPACE = "/scores"

# Track connected clients and their subscriptions
connected_users = {}


@socketio.on("connect", namespace=NAMESPACE)
def on_connect():
    """Handle client connection to scores namespace"""
    try:
        client_id = request.sid
        connected_users[client_id] = {"user_id": None, "subscriptions": set()}
        logger.info(f"Client connected to /scores: {client_id}")

        live_games = Game.get_live_games()
        emit("live_games_data", {"games": [game.to_dict() for game in live_games]})

    except Exception as e:
        logger.error(f"Error in scores connect: {e}")


@socketio.on("disconnect", namespace=NAMESPACE)
def on_disconnect():
    """Handle client disconnection from scores namespace"""
    try:
        client_id = request.sid
        if client_id in connected_users:
            logger.info(f"Client disconnected from /scores: {client_id}")
            del connected_users[client_id]
    except Exception as e:
        logger.error(f"Error in scores disconnect: {e}")


@socketio.on("subscribe_game", namespace=NAMESPACE)
def on_subscribe_game(data):
    """Subscribe to updates for a specific game"""
    try:
        client_id = request.sid
        game_id = (data or {}).get("game_id")

        if client_id in connected_users and game_id:
            room_name = f"game_{game_id}"

            # Already subscribed
            if room_name in connected_users[client_id]["subscriptions"]:
                return

            connected_users[client_id]["subscriptions"].add(room_name)
            join_room(room_name)

            game = db.session.get(Game, game_id)
            if game:
                emit("game_update", game.to_dict())

            logger.debug(f"Client {client_id} subscribed to game {game_id}")
    except Exception as e:
        logger.error(f"Error in subscribe_game: {e}")


@socketio.on("unsubscribe_game", namespace=NAMESPACE)
def on_unsubscribe_game(data):
    """Unsubscribe from updates for a specific game"""
    try:
        client_id = request.sid
        game_id = (data or {}).get("game_id")

        if client_id in connected_users and game_id:
            connected_users[client_id]["subscriptions"].discard(f"game_{game_id}")
            leave_room(f"game_{game_id}")

            logger.debug(f"Client {client_id} unsubscribed from game {game_id}")
    except Exception as e:
        logger.error(f"Error in unsubscribe_game: {e}")


@socketio.on("subscribe_user_bets", namespace=NAMESPACE)
def on_subscribe_user_bets(data):
    """Subscribe to bet results of a user"""
    try:
        client_id = request.sid
        user_id = (data or {}).get("user_id")

        if client_id in connected_users and user_id:
            connected_users[client_id]["user_id"] = user_id
            connected_users[client_id]["subscriptions"].add(f"user_bets_{user_id}")
            join_room(f"user_bets_{user_id}")

            logger.debug(f"Client {client_id} subscribed to bets of user {user_id}")
    except Exception as e:
        logger.error(f"Error in subscribe_user_bets: {e}")


# Broadcast functions (called from live score sync and the API)
def broadcast_score_update(game):
    """Broadcast score update to subscribers"""
    try:
        socketio.emit(
            "score_update", game.to_dict(), room=f"game_{game.id}", namespace=NAMESPACE
        )
        logger.debug(f"Broadcasted score update for game {game.id}")

    except Exception as e:
        logger.error(f"Error broadcasting score update: {e}")


def broadcast_game_final(game):
    """Broadcast when a game becomes final, with each bettor's result"""
    try:
        socketio.emit(
            "game_final", game.to_dict(), room=f"game_{game.id}", namespace=NAMESPACE
        )

        # Bets are already scored by the time this runs
        bets = Bet.query.filter_by(game_id=game.id).all()
        for bet in bets:
            socketio.emit(
                "bet_result",
                {
                    "bet_id": bet.id,
                    "game_id": bet.game_id,
                    "points": bet.points,
                    "is_exact": bet.is_exact,
                },
                room=f"user_bets_{bet.user_id}",
                namespace=NAMESPACE,
            )

        logger.info(f"Broadcasted game final for game {game.id}, notified {len(bets)} bets")

    except Exception as e:
        logger.error(f"Error broadcasting game final: {e}")
        db.session.rollback()


def broadcast_refresh(signal):
    """Relay a refresh signal to every Socket.IO client"""
    try:
        socketio.emit(
            "refresh_games",
            {
                "type": "refresh_games",
                "timestamp": signal.get("timestamp"),
                "signal_id": signal.get("signal_id"),
            },
            namespace=NAMESPACE,
        )
    except Exception as e:
        logger.error(f"Error broadcasting refresh signal: {e}")


def get_connection_stats():
    """Get connection statistics"""
    return {
        "total_connections": len(connected_users),
        "total_subscriptions": sum(
            len(u["subscriptions"]) for u in connected_users.values()
        ),
    }
