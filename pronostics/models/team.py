from datetime import datetime, timezone

from pronostics import db


class Team(db.Model):
    __tablename__ = "teams"

    id = db.Column(db.Integer, primary_key=True)

    # Team identification
    name = db.Column(db.String(100), nullable=False)
    short_name = db.Column(db.String(50))
    sport = db.Column(db.String(20), nullable=False, default="FOOTBALL", index=True)

    # External ID for API integration
    external_id = db.Column(db.String(50), index=True)

    # Visual elements
    logo_url = db.Column(db.String(500))

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    home_games = db.relationship(
        "Game",
        foreign_keys="Game.home_team_id",
        backref=db.backref("home_team", lazy="joined"),
        lazy="dynamic",
    )
    away_games = db.relationship(
        "Game",
        foreign_keys="Game.away_team_id",
        backref=db.backref("away_team", lazy="joined"),
        lazy="dynamic",
    )

    __table_args__ = (
        db.UniqueConstraint("name", "sport", name="unique_team_name_sport"),
    )

    def __repr__(self):
        return f"<Team {self.name} ({self.sport})>"

    def to_dict(self):
        """Convert team to dictionary for API responses"""
        return {
            "id": self.id,
            "name": self.name,
            "short_name": self.short_name,
            "sport": self.sport,
            "logo_url": self.logo_url,
        }
