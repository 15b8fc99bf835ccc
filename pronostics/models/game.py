from datetime import datetime, time, timedelta, timezone

from pronostics import db
from pronostics.utils.scoring import get_outcome

UPCOMING = "UPCOMING"
LIVE = "LIVE"
FINISHED = "FINISHED"
CANCELLED = "CANCELLED"
RESCHEDULED = "RESCHEDULED"

GAME_STATUSES = (UPCOMING, LIVE, FINISHED, CANCELLED, RESCHEDULED)


def _as_utc(value):
    """Treat timezone-naive datetimes as UTC"""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _utcnow():
    return datetime.now(timezone.utc)


def _naive_utc(value):
    """Convert to UTC and drop tzinfo, the form stored in the database"""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class Game(db.Model):
    __tablename__ = "games"

    id = db.Column(db.Integer, primary_key=True)

    competition_id = db.Column(
        db.Integer, db.ForeignKey("competitions.id"), nullable=False
    )

    # Teams
    home_team_id = db.Column(db.Integer, db.ForeignKey("teams.id"), nullable=False)
    away_team_id = db.Column(db.Integer, db.ForeignKey("teams.id"), nullable=False)

    # Kickoff time (UTC)
    date = db.Column(db.DateTime, nullable=False)

    status = db.Column(db.String(20), nullable=False, default=UPCOMING, index=True)

    # Final scores, only set once the game is finished
    home_score = db.Column(db.Integer)
    away_score = db.Column(db.Integer)

    # Live scores, updated while the game is in progress
    live_home_score = db.Column(db.Integer)
    live_away_score = db.Column(db.Integer)
    elapsed_minute = db.Column(db.Integer)

    # External API integration
    external_id = db.Column(db.String(50), index=True)
    external_status = db.Column(db.String(20))
    status_detail = db.Column(db.String(100))
    decided_by = db.Column(db.String(10))  # FT, AET or PEN
    last_sync_at = db.Column(db.DateTime)
    finished_at = db.Column(db.DateTime)

    # Timestamps
    created_at = db.Column(db.DateTime, default=_utcnow)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow)

    # Relationships
    bets = db.relationship(
        "Bet", backref="game", lazy="dynamic", cascade="all, delete-orphan"
    )

    __table_args__ = (
        db.Index("idx_game_competition_date", "competition_id", "date"),
        db.Index("idx_game_status_date", "status", "date"),
        db.CheckConstraint("home_team_id != away_team_id", name="different_teams"),
    )

    def __repr__(self):
        home = self.home_team.name if self.home_team else "TBD"
        away = self.away_team.name if self.away_team else "TBD"
        return f"<Game {home} vs {away} [{self.status}]>"

    @property
    def is_final(self):
        return self.status == FINISHED

    @property
    def is_live(self):
        return self.status == LIVE

    @property
    def sport(self):
        return self.competition.sport if self.competition else None

    @property
    def current_score(self):
        """Final score once finished, live score otherwise"""
        if self.is_final:
            return self.home_score, self.away_score
        return self.live_home_score, self.live_away_score

    @property
    def outcome(self):
        """HOME, AWAY or DRAW for a finished game, None otherwise"""
        if not self.is_final or self.home_score is None or self.away_score is None:
            return None
        return get_outcome(self.home_score, self.away_score)

    @property
    def winning_team_id(self):
        outcome = self.outcome
        if outcome == "HOME":
            return self.home_team_id
        if outcome == "AWAY":
            return self.away_team_id
        return None

    def has_started(self, now=None):
        """Check if the game has kicked off"""
        if not self.date:
            return False
        now = _as_utc(now) if now else _utcnow()
        return now >= _as_utc(self.date)

    def is_bettable(self, now=None):
        """Bets are accepted on upcoming games until kickoff"""
        return self.status == UPCOMING and not self.has_started(now)

    def mark_live(self, now=None):
        """Move an upcoming game to LIVE with a 0-0 live score"""
        self.status = LIVE
        if self.live_home_score is None:
            self.live_home_score = 0
        if self.live_away_score is None:
            self.live_away_score = 0
        self.last_sync_at = now or _utcnow()

    def apply_live_score(
        self, home_score, away_score, external_status=None, elapsed_minute=None, now=None
    ):
        """
        Record a live score reported by a provider.

        A None score keeps the current value (the provider has nothing yet).

        Returns:
            True if either live score changed
        """
        new_home = self.live_home_score if home_score is None else home_score
        new_away = self.live_away_score if away_score is None else away_score

        score_changed = (
            new_home != self.live_home_score or new_away != self.live_away_score
        )

        self.live_home_score = new_home
        self.live_away_score = new_away
        if external_status:
            self.external_status = external_status
        if elapsed_minute is not None:
            self.elapsed_minute = elapsed_minute
        self.last_sync_at = now or _utcnow()

        return score_changed

    def finish(self, home_score, away_score, decided_by="FT", now=None):
        """Mark the game finished with its final score"""
        now = now or _utcnow()
        self.status = FINISHED
        self.home_score = home_score
        self.away_score = away_score
        self.live_home_score = home_score
        self.live_away_score = away_score
        self.decided_by = decided_by
        self.finished_at = now
        self.last_sync_at = now

    def get_bets_count(self):
        return self.bets.count()

    @staticmethod
    def _by_sport(query, sport):
        from .competition import Competition

        if sport:
            query = query.join(Competition).filter(Competition.sport == sport.upper())
        return query

    @staticmethod
    def get_live_games(sport=None):
        """Get all LIVE games, optionally for one sport"""
        query = Game._by_sport(Game.query.filter(Game.status == LIVE), sport)
        return query.order_by(Game.date).all()

    @staticmethod
    def get_games_to_start(now=None, sport=None):
        """Upcoming games whose kickoff time has passed"""
        now = now or _utcnow()
        query = Game.query.filter(
            Game.status == UPCOMING, Game.date <= _naive_utc(now)
        )
        return Game._by_sport(query, sport).order_by(Game.date).all()

    @staticmethod
    def get_stale_live_games(cutoff, sport=None):
        """LIVE games that kicked off before cutoff"""
        query = Game.query.filter(
            Game.status == LIVE, Game.date < _naive_utc(cutoff)
        )
        return Game._by_sport(query, sport).order_by(Game.date).all()

    @staticmethod
    def get_games_of_day(day=None, sport=None):
        """Get all games kicking off on a given UTC day"""
        day = day or _utcnow().date()
        start = datetime.combine(day, time.min)
        end = start + timedelta(days=1)
        query = Game.query.filter(Game.date >= start, Game.date < end)
        return Game._by_sport(query, sport).order_by(Game.date).all()

    def to_dict(self, include_bets_count=False):
        """Convert game to dictionary for API responses"""
        data = {
            "id": self.id,
            "competition_id": self.competition_id,
            "date": _as_utc(self.date).isoformat() if self.date else None,
            "home_team": self.home_team.to_dict() if self.home_team else None,
            "away_team": self.away_team.to_dict() if self.away_team else None,
            "status": self.status,
            "home_score": self.home_score,
            "away_score": self.away_score,
            "live_home_score": self.live_home_score,
            "live_away_score": self.live_away_score,
            "elapsed_minute": self.elapsed_minute,
            "external_status": self.external_status,
            "decided_by": self.decided_by,
            "last_sync_at": (
                _as_utc(self.last_sync_at).isoformat() if self.last_sync_at else None
            ),
            "finished_at": (
                _as_utc(self.finished_at).isoformat() if self.finished_at else None
            ),
            "is_bettable": self.is_bettable(),
        }

        if include_bets_count:
            data["bets_count"] = self.get_bets_count()

        return data
