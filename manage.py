#!/usr/bin/env python3
"""
Pronostics Management CLI

This script provides command-line management functionality for the Pronostics application.
"""

import logging
import os

# The CLI runs jobs by hand, the background scheduler belongs to the web process
os.environ.setdefault("SCHEDULER_ENABLED", "False")

import click  # noqa: E402
from flask.cli import with_appcontext  # noqa: E402
from sqlalchemy import text  # noqa: E402
from sqlalchemy.exc import IntegrityError, SQLAlchemyError  # noqa: E402

from pronostics import create_app, db  # noqa: E402
from pronostics.models import Bet, Competition, Game, User  # noqa: E402
from pronostics.models.game import FINISHED, LIVE  # noqa: E402
from pronostics.utils.live_sync import SPORTS, live_score_sync  # noqa: E402

app = create_app()


@click.group()
def cli():
    """Pronostics Management CLI"""
    pass


# Live score commands
@cli.group()
def sync():
    """Live score synchronization commands"""
    pass


@sync.command()
@click.option(
    "--sport",
    type=click.Choice(SPORTS + ("ALL",), case_sensitive=False),
    default="ALL",
    help="Sport to reconcile",
)
@with_appcontext
def live(sport):
    """Reconcile live games with the score provider"""
    sports = SPORTS if sport.upper() == "ALL" else (sport.upper(),)

    for current_sport in sports:
        try:
            click.echo(f"Updating live {current_sport.lower()} scores...")
            result = live_score_sync.update_live_scores(current_sport)

            click.echo(
                f"✅ {len(result['updated_games'])} games updated "
                f"({result['matched_games']} matched / "
                f"{result['external_matches_found']} external, "
                f"{result['total_live_games']} live)"
            )
            for record in result["updated_games"]:
                click.echo(
                    f"  - {record['home_team']} vs {record['away_team']}: "
                    f"{record['old_score']} -> {record['new_score']} [{record['status']}]"
                )
            if result["attribution"]:
                click.echo(f"  {result['attribution']}")

        except SQLAlchemyError as e:
            db.session.rollback()
            click.echo(f"❌ Database error updating {current_sport} scores: {str(e)}")
            logging.error(f"Live sync failed - SQL error: {e}")
        except Exception as e:
            db.session.rollback()
            click.echo(f"❌ Error updating {current_sport} scores: {str(e)}")
            logging.error(f"Live sync failed - unexpected error: {e}")


@sync.command()
@with_appcontext
def statuses():
    """Start games whose kickoff time has passed"""
    try:
        games = live_score_sync.update_game_statuses()
        click.echo(f"✅ {len(games)} games moved to LIVE")
        for game in games:
            click.echo(f"  - {game.home_team.name} vs {game.away_team.name}")

    except Exception as e:
        db.session.rollback()
        click.echo(f"❌ Error updating game statuses: {str(e)}")


# Scoring commands
@cli.group()
def scores():
    """Bet scoring commands"""
    pass


@scores.command()
@click.argument("game_id", type=int, required=False)
@click.option("--competition", "competition_id", type=int, help="Rescore a whole competition")
@with_appcontext
def recalculate(game_id, competition_id):
    """Recompute bet points for a game or a competition"""
    if not game_id and not competition_id:
        click.echo("❌ Give a GAME_ID or --competition")
        return

    try:
        if game_id:
            game_ids = [game_id]
        else:
            competition = db.session.get(Competition, competition_id)
            if not competition:
                click.echo(f"❌ Competition {competition_id} not found!")
                return
            game_ids = [
                game.id for game in competition.games.filter(Game.status == FINISHED).all()
            ]

        total = 0
        competitions = set()
        for current_id in game_ids:
            bets_updated, comp_id = Bet.recalculate_for_game(current_id)
            total += bets_updated
            if comp_id:
                competitions.add(comp_id)

        for comp_id in competitions:
            competition = db.session.get(Competition, comp_id)
            competition.update_shooters()
            competition.award_final_winner_points()

        db.session.commit()
        click.echo(f"✅ Recalculated {total} bets across {len(game_ids)} games")

    except SQLAlchemyError as e:
        db.session.rollback()
        click.echo(f"❌ Database error recalculating bets: {str(e)}")
        logging.error(f"Bet recalculation failed - SQL error: {e}")


# Competition commands
@cli.group()
def competition():
    """Competition management commands"""
    pass


@competition.command()
@click.argument("competition_id", type=int, required=False)
@with_appcontext
def shooters(competition_id):
    """Recount forgotten bets"""
    try:
        if competition_id:
            competitions = [db.session.get(Competition, competition_id)]
            if competitions[0] is None:
                click.echo(f"❌ Competition {competition_id} not found!")
                return
        else:
            competitions = Competition.query.all()

        for current in competitions:
            updated = current.update_shooters()
            click.echo(f"✅ {current.name}: {updated} participants updated")

        db.session.commit()

    except SQLAlchemyError as e:
        db.session.rollback()
        click.echo(f"❌ Database error updating shooters: {str(e)}")
        logging.error(f"Shooters update failed - SQL error: {e}")


@competition.command("list")
@with_appcontext
def list_competitions():
    """List all competitions"""
    competitions = Competition.query.order_by(Competition.id).all()

    if not competitions:
        click.echo("No competitions found.")
        return

    click.echo("Competitions:")
    for current in competitions:
        click.echo(
            f"  [{current.id}] {current.name} ({current.sport}, {current.status}) - "
            f"{current.participants.count()} participants, {current.games.count()} games"
        )


@competition.command()
@click.argument("competition_id", type=int)
@with_appcontext
def ranking(competition_id):
    """Print the ranking of a competition"""
    current = db.session.get(Competition, competition_id)
    if not current:
        click.echo(f"❌ Competition {competition_id} not found!")
        return

    click.echo(f"🏆 {current.name}")
    for row in current.get_ranking():
        click.echo(
            f"  {row['rank']:>3}. {row['user'].full_name:<20} {row['total_points']:>4} pts "
            f"({row['exact_scores']} exact, {row['shooters']} shooters)"
        )


# User Management Commands
@cli.group()
def user():
    """User management commands"""
    pass


@user.command()
@click.argument("username")
@click.argument("email")
@click.option("--display-name", help="Name shown in rankings")
@with_appcontext
def create_admin(username, email, display_name=None):
    """Create an admin user"""
    try:
        existing = User.query.filter(
            (User.username == username) | (User.email == email)
        ).first()

        if existing:
            click.echo(
                f"❌ User with username '{username}' or email '{email}' already exists!"
            )
            return

        db.session.add(
            User(
                username=username,
                email=email,
                display_name=display_name,
                is_active=True,
                is_admin=True,
            )
        )
        db.session.commit()

        click.echo(f"✅ Created admin user '{username}' ({email})")

    except IntegrityError as e:
        db.session.rollback()
        click.echo(f"❌ User '{username}' already exists!")
        logging.error(f"Admin creation failed - integrity error: {e}")


# Database Commands
@cli.group()
def db_cmd():
    """Database commands"""
    pass


@db_cmd.command()
@with_appcontext
def init_db():
    """Initialize database tables"""
    try:
        db.create_all()
        click.echo("✅ Database tables created successfully!")
    except SQLAlchemyError as e:
        click.echo(f"❌ Error initializing database: {str(e)}")


@db_cmd.command()
@with_appcontext
def reset():
    """⚠️  DANGER: Drop and recreate all tables"""
    if not click.confirm("This will DELETE ALL DATA. Are you sure?"):
        click.echo("Cancelled.")
        return

    try:
        db.drop_all()
        db.create_all()
        click.echo("✅ Database reset successfully!")
    except SQLAlchemyError as e:
        click.echo(f"❌ Error resetting database: {str(e)}")


@cli.command()
@with_appcontext
def status():
    """Show application status"""
    click.echo("⚽ Pronostics Application Status")
    click.echo("=" * 40)

    try:
        db.session.execute(text("SELECT 1"))
        click.echo("✅ Database: Connected")
    except SQLAlchemyError as e:
        click.echo(f"❌ Database: Error - {str(e)}")
        return

    for key, label in (("FOOTBALL_DATA_API_KEY", "Football"), ("RUGBY_API_KEY", "Rugby")):
        if app.config.get(key):
            click.echo(f"✅ {label} provider: configured")
        else:
            click.echo(f"⚠️  {label} provider: no API key")

    user_count = User.query.filter_by(is_active=True).count()
    click.echo(f"👥 Active Users: {user_count}")

    competition_count = Competition.query.filter(Competition.status != "COMPLETED").count()
    click.echo(f"🏆 Running Competitions: {competition_count}")

    live_count = Game.query.filter_by(status=LIVE).count()
    final_count = Game.query.filter_by(status=FINISHED).count()
    click.echo(f"🏟️  Games: {live_count} live, {final_count}/{Game.query.count()} finished")


if __name__ == "__main__":
    with app.app_context():
        cli()
