from datetime import datetime, timezone

from pronostics import db
from pronostics.utils.scoring import (
    DEFAULT_CLOSE_SCORE_TOLERANCE,
    get_scoring_system_for_sport,
)

from .game import FINISHED, LIVE

UPCOMING = "UPCOMING"
ACTIVE = "ACTIVE"
COMPLETED = "COMPLETED"


class Competition(db.Model):
    __tablename__ = "competitions"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text)
    logo_url = db.Column(db.String(500))

    sport = db.Column(db.String(20), nullable=False, default="FOOTBALL", index=True)
    status = db.Column(db.String(20), nullable=False, default=UPCOMING)

    start_date = db.Column(db.Date)
    end_date = db.Column(db.Date)

    # Rugby only: per-side points tolerance for a "very close" prediction
    close_score_tolerance = db.Column(db.Integer)

    # Participants may pick the winner of the final for a bonus
    has_final_winner_prediction = db.Column(db.Boolean, default=False)
    final_winner_bonus = db.Column(db.Integer, default=5)

    winner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    # External ID for API integration
    external_id = db.Column(db.String(50), index=True)

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    games = db.relationship(
        "Game", backref="competition", lazy="dynamic", cascade="all, delete-orphan"
    )
    participants = db.relationship(
        "CompetitionUser",
        backref="competition",
        lazy="dynamic",
        cascade="all, delete-orphan",
    )
    winner = db.relationship("User", foreign_keys=[winner_id])

    def __repr__(self):
        return f"<Competition {self.name} ({self.sport})>"

    @property
    def scoring_system(self):
        return get_scoring_system_for_sport(self.sport)

    @property
    def effective_tolerance(self):
        """Close-score tolerance, falling back to the configured default"""
        if self.close_score_tolerance is not None:
            return self.close_score_tolerance
        try:
            from flask import current_app

            return current_app.config.get(
                "RUGBY_CLOSE_SCORE_TOLERANCE", DEFAULT_CLOSE_SCORE_TOLERANCE
            )
        except RuntimeError:
            # Outside an application context
            return DEFAULT_CLOSE_SCORE_TOLERANCE

    def is_joinable(self):
        """Users may join upcoming and active competitions"""
        return self.status != COMPLETED

    def is_participant(self, user_id):
        return self.participants.filter_by(user_id=user_id).first() is not None

    def get_participant(self, user_id):
        return self.participants.filter_by(user_id=user_id).first()

    def add_participant(self, user):
        """
        Add a user to the competition.

        Returns:
            (membership, created) - created is False when already a member
        """
        from .competition_user import CompetitionUser

        existing = self.get_participant(user.id)
        if existing:
            return existing, False

        membership = CompetitionUser(competition_id=self.id, user_id=user.id)
        db.session.add(membership)
        return membership, True

    def get_started_games(self):
        """Games that count for shooters: LIVE or FINISHED"""
        from .game import Game

        return self.games.filter(Game.status.in_([LIVE, FINISHED])).all()

    def get_final_game(self):
        """The final is the last game of the competition by kickoff date"""
        from .game import Game

        return self.games.order_by(Game.date.desc(), Game.id.desc()).first()

    def update_shooters(self):
        """
        Recount forgotten bets for every participant.

        shooters = started games - bets placed on those games
        """
        from .bet import Bet

        started_game_ids = [game.id for game in self.get_started_games()]
        total = len(started_game_ids)

        updated = 0
        for membership in self.participants.all():
            bets_placed = 0
            if started_game_ids:
                bets_placed = Bet.query.filter(
                    Bet.user_id == membership.user_id,
                    Bet.game_id.in_(started_game_ids),
                ).count()
            shooters = total - bets_placed
            if membership.shooters != shooters:
                membership.shooters = shooters
                updated += 1

        return updated

    def award_final_winner_points(self):
        """
        Give the final-winner bonus to participants who picked the winner.

        Points are set, not added, so calling this again is harmless.

        Returns:
            Number of participants awarded the bonus, None when the
            final is not decided yet
        """
        if not self.has_final_winner_prediction:
            return None

        final_game = self.get_final_game()
        if not final_game or not final_game.is_final:
            return None

        winner_team_id = final_game.winning_team_id
        awarded = 0
        for membership in self.participants.all():
            if winner_team_id and membership.final_winner_team_id == winner_team_id:
                membership.final_winner_points = self.final_winner_bonus or 0
                awarded += 1
            else:
                membership.final_winner_points = 0

        return awarded

    def get_ranking(self):
        """
        Get the competition ranking.

        Sorted by total points, then exact scores (descending), then
        shooters (ascending). Rows with identical keys share a rank.
        """
        from .bet import Bet
        from .game import Game

        ranking = []
        for membership in self.participants.all():
            user = membership.user
            bets = (
                Bet.query.join(Game)
                .filter(Bet.user_id == user.id, Game.competition_id == self.id)
                .all()
            )
            scored_bets = [bet for bet in bets if bet.game.is_final]

            exact_scores = sum(1 for bet in scored_bets if bet.result == "exact")
            correct_outcomes = sum(1 for bet in scored_bets if bet.result == "correct")
            bet_points = sum(bet.points or 0 for bet in scored_bets)
            winning_bets = exact_scores + correct_outcomes

            ranking.append(
                {
                    "user_id": user.id,
                    "user": user,
                    "total_points": bet_points + (membership.final_winner_points or 0),
                    "bet_points": bet_points,
                    "final_winner_points": membership.final_winner_points or 0,
                    "exact_scores": exact_scores,
                    "correct_outcomes": correct_outcomes,
                    "bets_placed": len(bets),
                    "scored_bets": len(scored_bets),
                    "shooters": membership.shooters or 0,
                    "accuracy": (
                        round(winning_bets / len(scored_bets) * 100, 1)
                        if scored_bets
                        else 0.0
                    ),
                }
            )

        ranking.sort(
            key=lambda x: (
                -x["total_points"],
                -x["exact_scores"],
                x["shooters"],
                x["user"].username.lower(),
            )
        )

        previous_key = None
        for position, entry in enumerate(ranking, start=1):
            key = (entry["total_points"], entry["exact_scores"], entry["shooters"])
            if key != previous_key:
                rank = position
                previous_key = key
            entry["rank"] = rank

        return ranking

    def get_ranking_evolution(self, max_matchdays=20):
        """
        Cumulative bet points and position of every participant after each
        matchday, a matchday being a UTC calendar day with LIVE or FINISHED
        games. Only the last max_matchdays are returned, totals still count
        from the first game.
        """
        from .bet import Bet
        from .game import Game

        games = (
            self.games.filter(Game.status.in_([LIVE, FINISHED]))
            .order_by(Game.date.asc(), Game.id.asc())
            .all()
        )
        if not games:
            return []

        users = {membership.user_id: membership.user for membership in self.participants}

        bets_by_game = {}
        if users:
            bets = Bet.query.filter(
                Bet.game_id.in_([game.id for game in games]),
                Bet.user_id.in_(list(users)),
            ).all()
            for bet in bets:
                bets_by_game.setdefault(bet.game_id, []).append(bet)

        matchdays = {}
        for game in games:
            matchdays.setdefault(game.date.date(), []).append(game)

        totals = dict.fromkeys(users, 0)
        evolution = []
        for day in sorted(matchdays):
            for game in matchdays[day]:
                for bet in bets_by_game.get(game.id, []):
                    totals[bet.user_id] += bet.points or 0

            ordered = sorted(
                users.values(), key=lambda user: (-totals[user.id], user.username.lower())
            )
            rankings = []
            previous_points = None
            for position, user in enumerate(ordered, start=1):
                if totals[user.id] != previous_points:
                    rank = position
                    previous_points = totals[user.id]
                rankings.append(
                    {
                        "user_id": user.id,
                        "user_name": user.full_name,
                        "profile_picture_url": user.profile_picture_url,
                        "position": rank,
                        "total_points": totals[user.id],
                    }
                )

            last_game = matchdays[day][-1]
            evolution.append(
                {
                    "date": last_game.date.replace(tzinfo=timezone.utc).isoformat(),
                    "rankings": rankings,
                }
            )

        return evolution[-max_matchdays:]

    def get_players_performance(self, last_games=10):
        """Each participant's result on the last finished games, newest first"""
        from .bet import Bet
        from .game import Game

        games = (
            self.games.filter(Game.status == FINISHED)
            .order_by(Game.date.desc(), Game.id.desc())
            .limit(last_games)
            .all()
        )

        bets = {}
        if games:
            for bet in Bet.query.filter(Bet.game_id.in_([game.id for game in games])):
                bets[(bet.user_id, bet.game_id)] = bet

        performance = []
        for membership in self.participants:
            user = membership.user
            rows = []
            for game in games:
                bet = bets.get((user.id, game.id))
                rows.append(
                    {
                        "game_id": game.id,
                        "date": game.date.replace(tzinfo=timezone.utc).isoformat(),
                        "home_team": game.home_team.name,
                        "away_team": game.away_team.name,
                        "actual_score": [game.home_score, game.away_score],
                        "predicted_score": [bet.score1, bet.score2] if bet else None,
                        "points": bet.points if bet else None,
                        "result": bet.result if bet else "no_bet",
                    }
                )
            performance.append({"user": user.to_dict(), "last_games": rows})

        return performance

    def to_dict(self, include_counts=False):
        """Convert competition to dictionary for API responses"""
        data = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "logo_url": self.logo_url,
            "sport": self.sport,
            "status": self.status,
            "scoring_system": self.scoring_system,
            "close_score_tolerance": self.effective_tolerance,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "has_final_winner_prediction": bool(self.has_final_winner_prediction),
            "winner_id": self.winner_id,
        }

        if include_counts:
            data["participants_count"] = self.participants.count()
            data["games_count"] = self.games.count()

        return data
