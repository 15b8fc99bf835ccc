from datetime import datetime, timezone

from pronostics import db


class CompetitionUser(db.Model):
    __tablename__ = "competition_users"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    competition_id = db.Column(
        db.Integer, db.ForeignKey("competitions.id"), nullable=False
    )

    # Bets forgotten on games that already kicked off
    shooters = db.Column(db.Integer, default=0)

    # Final winner prediction
    final_winner_team_id = db.Column(
        db.Integer, db.ForeignKey("teams.id"), nullable=True
    )
    final_winner_points = db.Column(db.Integer, default=0)

    joined_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    final_winner_team = db.relationship("Team", foreign_keys=[final_winner_team_id])

    __table_args__ = (
        db.UniqueConstraint("competition_id", "user_id", name="unique_competition_user"),
        db.Index("idx_competition_users_user", "user_id"),
    )

    def __repr__(self):
        return f"<CompetitionUser user_id={self.user_id} competition_id={self.competition_id}>"

    def set_final_winner_prediction(self, team_id):
        """
        Record the team the user expects to win the final.

        Returns:
            (success, message)
        """
        competition = self.competition
        if not competition.has_final_winner_prediction:
            return False, "Final winner prediction is not available for this competition"

        final_game = competition.get_final_game()
        if final_game and final_game.has_started():
            return False, "The final has already started"

        from .game import Game

        plays_in_competition = (
            competition.games.filter(
                db.or_(Game.home_team_id == team_id, Game.away_team_id == team_id)
            ).first()
            is not None
        )
        if not plays_in_competition:
            return False, "Team does not play in this competition"

        self.final_winner_team_id = team_id
        return True, "Final winner prediction saved"

    def to_dict(self):
        """Convert membership to dictionary for API responses"""
        return {
            "user_id": self.user_id,
            "competition_id": self.competition_id,
            "username": self.user.username if self.user else None,
            "shooters": self.shooters or 0,
            "final_winner_team": (
                self.final_winner_team.to_dict() if self.final_winner_team else None
            ),
            "final_winner_points": self.final_winner_points or 0,
            "joined_at": self.joined_at.isoformat() if self.joined_at else None,
        }
