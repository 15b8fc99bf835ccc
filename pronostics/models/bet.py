from datetime import datetime, timezone

from pronostics import db
from pronostics.utils.scoring import EXACT_SCORE_POINTS

MIN_BET_SCORE = 0
MAX_BET_SCORE = 99

GAME_NOT_FOUND = "Game not found"
NOT_PARTICIPANT = "User is not part of this competition"


class Bet(db.Model):
    __tablename__ = "bets"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    game_id = db.Column(db.Integer, db.ForeignKey("games.id"), nullable=False)

    # Predicted score: score1 is the home team, score2 the away team
    score1 = db.Column(db.Integer, nullable=False)
    score2 = db.Column(db.Integer, nullable=False)

    # Calculated once the game is finished
    points = db.Column(db.Integer, nullable=False, default=0)

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.UniqueConstraint("game_id", "user_id", name="unique_game_user_bet"),
        db.Index("idx_bet_user", "user_id"),
        db.Index("idx_bet_game", "game_id"),
    )

    def __repr__(self):
        return f"<Bet user_id={self.user_id} game_id={self.game_id} {self.score1}-{self.score2}>"

    @property
    def is_exact(self):
        return (
            self.game is not None
            and self.game.is_final
            and self.score1 == self.game.home_score
            and self.score2 == self.game.away_score
        )

    @property
    def is_scored(self):
        return self.game is not None and self.game.is_final

    @property
    def result(self):
        """
        exact, correct or wrong for a scored bet, None before the game ends.

        A bet counts as exact when it earned the top score, which includes
        rugby predictions inside the close-score tolerance.
        """
        if not self.is_scored:
            return None
        if self.points == EXACT_SCORE_POINTS:
            return "exact"
        if (self.points or 0) > 0:
            return "correct"
        return "wrong"

    def update_result(self):
        """Recompute points from the game's final score"""
        if not self.game:
            return

        from pronostics.utils.scoring import calculate_bet_score

        self.points = calculate_bet_score(self)

    @staticmethod
    def validate_scores(score1, score2):
        """Check both predicted scores are integers in 0..99"""
        for value in (score1, score2):
            if isinstance(value, bool) or not isinstance(value, int):
                return False, "Scores must be integers"
            if value < MIN_BET_SCORE:
                return False, "Scores cannot be negative"
            if value > MAX_BET_SCORE:
                return False, f"Scores cannot exceed {MAX_BET_SCORE}"
        return True, "Valid scores"

    @staticmethod
    def place_bet(user_id, game_id, score1, score2, now=None):
        """
        Create or update a user's bet on a game.

        Returns:
            (bet, message) - bet is None when the bet was rejected
        """
        from .game import Game

        valid, message = Bet.validate_scores(score1, score2)
        if not valid:
            return None, message

        game = db.session.get(Game, game_id)
        if not game:
            return None, GAME_NOT_FOUND

        if not game.competition.is_participant(user_id):
            return None, NOT_PARTICIPANT

        if not game.is_bettable(now):
            if game.has_started(now):
                return None, "Game has already started"
            return None, f"Game is {game.status.lower()}, bets are closed"

        existing_bet = Bet.query.filter_by(game_id=game_id, user_id=user_id).first()
        if existing_bet:
            existing_bet.score1 = score1
            existing_bet.score2 = score2
            return existing_bet, "Bet updated successfully"

        bet = Bet(user_id=user_id, game_id=game_id, score1=score1, score2=score2, points=0)
        db.session.add(bet)
        return bet, "Bet placed successfully"

    @staticmethod
    def recalculate_for_game(game_id, commit=False):
        """
        Rescore every bet on a game.

        Returns:
            (bets_rescored, competition_id)
        """
        from .game import Game

        game = db.session.get(Game, game_id)
        if not game:
            return 0, None

        bets = game.bets.all()
        for bet in bets:
            bet.update_result()

        if commit:
            db.session.commit()

        return len(bets), game.competition_id

    def to_dict(self, include_game=False):
        """Convert bet to dictionary for API responses"""
        data = {
            "id": self.id,
            "user_id": self.user_id,
            "game_id": self.game_id,
            "score1": self.score1,
            "score2": self.score2,
            "points": self.points,
            "is_exact": self.is_exact,
            "result": self.result,
            "user": (
                {
                    "id": self.user.id,
                    "name": self.user.full_name,
                    "profile_picture_url": self.user.profile_picture_url,
                }
                if self.user
                else None
            ),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

        if include_game:
            data["game"] = self.game.to_dict() if self.game else None

        return data
