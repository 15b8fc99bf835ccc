"""
Pronostics Automatic Sync Scheduler Service

Background jobs, run with APScheduler:
- live score reconciliation, one job per sport
- kickoff detection (UPCOMING -> LIVE)
- daily maintenance (shooters and final-winner bonus recount)
"""

import atexit
import logging
from datetime import datetime, timezone

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from pronostics import db
from pronostics.models import Competition, Game
from pronostics.utils.cache_utils import invalidate_model_cache
from pronostics.utils.live_sync import SPORTS, live_score_sync

logger = logging.getLogger(__name__)


class SchedulerService:
    """Manages automatic background scheduling for live score syncing"""

    def __init__(self, app=None):
        self.scheduler = None
        self.app = app
        self.live_sync = live_score_sync
        self.is_running = False
        self.sync_stats = {
            "last_sync": None,
            "total_syncs": 0,
            "successful_syncs": 0,
            "failed_syncs": 0,
            "last_error": None,
            "games_updated": 0,
        }

        if app:
            self.init_app(app)

    def init_app(self, app):
        """Initialize scheduler with Flask app"""
        self.app = app
        self.scheduler = BackgroundScheduler(daemon=True, timezone="UTC")

        atexit.register(self.shutdown)

        if app.config.get("SCHEDULER_ENABLED", True):
            self.start()

    def start(self):
        """Start the background scheduler"""
        if self.is_running:
            return

        try:
            self.scheduler.remove_all_jobs()
            self._add_core_jobs()
            self.scheduler.start()
            self.is_running = True

            logger.info("Scheduler started successfully")

        except Exception as e:
            logger.error(f"Failed to start scheduler: {e}")
            raise

    def stop(self):
        """Stop the background scheduler"""
        if not self.is_running:
            return

        try:
            self.scheduler.shutdown(wait=False)
            self.is_running = False
            logger.info("Scheduler stopped")

        except Exception as e:
            logger.error(f"Error stopping scheduler: {e}")

    def shutdown(self):
        """Graceful shutdown"""
        self.stop()

    def _add_core_jobs(self):
        """Add core scheduled jobs"""
        live_interval = self.app.config.get("LIVE_SYNC_INTERVAL_SECONDS", 60)
        status_interval = self.app.config.get("STATUS_SYNC_INTERVAL_SECONDS", 60)

        for sport in SPORTS:
            self.scheduler.add_job(
                func=self._sync_live_games,
                args=[sport],
                trigger=IntervalTrigger(seconds=live_interval),
                id=f"sync_live_{sport.lower()}",
                name=f"Sync Live {sport.title()} Scores",
                max_instances=1,
                coalesce=True,
                misfire_grace_time=30,
            )

        self.scheduler.add_job(
            func=self._sync_game_status,
            trigger=IntervalTrigger(seconds=status_interval),
            id="sync_game_status",
            name="Start Games At Kickoff",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=30,
        )

        # Daily maintenance (3 AM UTC)
        self.scheduler.add_job(
            func=self._daily_maintenance,
            trigger=CronTrigger(hour=3, minute=0),
            id="daily_maintenance",
            name="Daily Maintenance",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=3600,
        )

        logger.info("Core scheduled jobs added")

    def _has_activity(self, sport):
        """Only call the provider when something is live or kicks off today"""
        return bool(Game.get_live_games(sport) or Game.get_games_of_day(sport=sport))

    def _sync_live_games(self, sport):
        """Reconcile live games of one sport with its provider"""
        with self.app.app_context():
            try:
                if not self._has_activity(sport):
                    return

                result = self.live_sync.update_live_scores(sport)
                updates = len(result["updated_games"])

                if result["has_updates"]:
                    logger.info(
                        f"{sport}: {updates} games updated "
                        f"({result['matched_games']}/{result['external_matches_found']} matches)"
                    )

                self._update_stats(True, updates)

            except Exception as e:
                db.session.rollback()
                self._update_stats(False)
                self.sync_stats["last_error"] = str(e)
                logger.error(f"Error in {sport} live games sync: {e}", exc_info=True)

    def _sync_game_status(self):
        """Move games whose kickoff has passed to LIVE"""
        with self.app.app_context():
            try:
                games = self.live_sync.update_game_statuses()
                if games:
                    logger.info(f"Started {len(games)} games")
                self._update_stats(True, len(games))

            except Exception as e:
                db.session.rollback()
                self._update_stats(False)
                self.sync_stats["last_error"] = str(e)
                logger.error(f"Error in game status sync: {e}", exc_info=True)

    def _daily_maintenance(self):
        """Recount shooters and final-winner bonuses of running competitions"""
        with self.app.app_context():
            try:
                logger.info("Running daily maintenance...")

                competitions = Competition.query.filter(
                    Competition.status != "COMPLETED"
                ).all()

                shooters_updated = 0
                for competition in competitions:
                    shooters_updated += competition.update_shooters()
                    competition.award_final_winner_points()

                db.session.commit()
                invalidate_model_cache("Competition")

                self._cleanup_old_data()
                self._update_stats(True)
                logger.info(
                    f"Daily maintenance completed: {len(competitions)} competitions, "
                    f"{shooters_updated} shooter counts changed"
                )

            except Exception as e:
                db.session.rollback()
                self._update_stats(False)
                self.sync_stats["last_error"] = str(e)
                logger.error(f"Error in daily maintenance: {e}", exc_info=True)

    def _update_stats(self, success, games_updated=0):
        """Update sync statistics"""
        self.sync_stats["last_sync"] = datetime.now(timezone.utc)
        self.sync_stats["total_syncs"] += 1

        if success:
            self.sync_stats["successful_syncs"] += 1
            self.sync_stats["games_updated"] += games_updated
            self.sync_stats["last_error"] = None
        else:
            self.sync_stats["failed_syncs"] += 1

    def _cleanup_old_data(self):
        """Reset sync stats periodically"""
        if self.sync_stats["total_syncs"] > 10000:
            self.sync_stats = {
                "last_sync": self.sync_stats["last_sync"],
                "total_syncs": 0,
                "successful_syncs": 0,
                "failed_syncs": 0,
                "last_error": None,
                "games_updated": 0,
            }

    def get_status(self):
        """Get scheduler status information"""
        jobs = []
        if self.scheduler and self.is_running:
            for job in self.scheduler.get_jobs():
                next_run = job.next_run_time
                jobs.append(
                    {
                        "id": job.id,
                        "name": job.name,
                        "next_run": next_run.isoformat() if next_run else None,
                        "trigger": str(job.trigger),
                    }
                )

        stats = dict(self.sync_stats)
        if stats["last_sync"]:
            stats["last_sync"] = stats["last_sync"].isoformat()

        return {"is_running": self.is_running, "jobs": jobs, "stats": stats}

    def force_sync(self, sync_type="live", sport="FOOTBALL"):
        """Manually trigger a sync"""
        if self.app is None:
            return False, "Scheduler is not initialized"

        failed_before = self.sync_stats["failed_syncs"]
        try:
            if sync_type == "live":
                self._sync_live_games(sport.upper())
            elif sync_type == "status":
                self._sync_game_status()
            elif sync_type == "daily":
                self._daily_maintenance()
            else:
                raise ValueError(f"Unknown sync type: {sync_type}")

            # Job errors are caught and counted by the job itself
            if self.sync_stats["failed_syncs"] > failed_before:
                return False, f"Manual sync failed: {self.sync_stats['last_error']}"
            return True, f"Manual {sync_type} sync completed"

        except Exception as e:
            return False, f"Manual sync failed: {e}"

    def pause_job(self, job_id):
        """Pause a specific job"""
        try:
            self.scheduler.pause_job(job_id)
            return True, f"Job {job_id} paused"
        except Exception as e:
            return False, f"Failed to pause job: {e}"

    def resume_job(self, job_id):
        """Resume a specific job"""
        try:
            self.scheduler.resume_job(job_id)
            return True, f"Job {job_id} resumed"
        except Exception as e:
            return False, f"Failed to resume job: {e}"


# Global scheduler instance
scheduler_service = SchedulerService()
