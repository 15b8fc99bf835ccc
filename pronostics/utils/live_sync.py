"""
Live score reconciliation.

Pulls live and finished matches from the sport's provider, matches them
to our games and updates scores. Finished games get their bets rescored,
the competition shooters recounted and the final-winner bonus awarded.

Writes happen in two phases, like the scheduler jobs: game rows are
committed first, bet points and competition totals second.
"""

from datetime import datetime, timedelta, timezone

from flask import current_app

from pronostics import db
from pronostics.models import Bet, Game
from pronostics.models.game import CANCELLED, FINISHED, LIVE, RESCHEDULED, UPCOMING
from pronostics.utils.cache_utils import invalidate_model_cache
from pronostics.utils.logging_config import ContextualLogger
from pronostics.utils.score_providers import ProviderError, get_provider_for_sport
from pronostics.utils.team_matching import find_best_team_match

SPORTS = ("FOOTBALL", "RUGBY")


def _utcnow():
    return datetime.now(timezone.utc)


class LiveScoreSync:
    """Reconciles our games with an external live score feed"""

    def __init__(self, providers=None):
        # sport -> provider, built from the app config on first use
        self.providers = dict(providers or {})

    def get_provider(self, sport):
        sport = sport.upper()
        if sport not in self.providers:
            self.providers[sport] = get_provider_for_sport(sport, current_app.config)
        return self.providers[sport]

    def max_live_duration(self, sport):
        if sport.upper() == "RUGBY":
            hours = current_app.config.get("RUGBY_LIVE_GAME_MAX_DURATION_HOURS", 4)
        else:
            hours = current_app.config.get("LIVE_GAME_MAX_DURATION_HOURS", 3)
        return timedelta(hours=hours)

    # ------------------------------------------------------------------
    # Live scores
    # ------------------------------------------------------------------

    def update_live_scores(self, sport="FOOTBALL", now=None):
        """
        Reconcile LIVE games of a sport with the provider.

        Returns:
            dict with updated_games, total_live_games, external_matches_found,
            processed_matches, matched_games, has_updates, last_sync, attribution
        """
        sport = sport.upper()
        if sport not in SPORTS:
            raise ValueError(f"Unsupported sport: {sport}")

        now = now or _utcnow()
        log = ContextualLogger(__name__, {"sport": sport})
        provider = self.get_provider(sport)

        live_games = Game.get_live_games(sport)
        external_matches = self._fetch_external_matches(provider, now, log, live_games)

        updated_games = []
        finished_games = []
        processed_game_ids = set()
        processed_matches = 0
        matched_games = 0

        try:
            # PHASE 1: game rows
            for match in external_matches:
                processed_matches += 1
                try:
                    game, method = self._find_game(match, live_games, sport)
                    if not game:
                        log.debug(
                            f"No game for {match.home_name} vs {match.away_name} ({match.external_id})"
                        )
                        continue
                    if game.id in processed_game_ids:
                        continue
                    if game.is_final:
                        log.debug(f"Game {game.id} already finished, ignoring provider update")
                        continue

                    processed_game_ids.add(game.id)
                    matched_games += 1

                    record = self._apply_match(game, match, method, now)
                    if record:
                        updated_games.append(record)
                        if record["finished"]:
                            finished_games.append(game)

                except Exception as e:
                    log.error(
                        f"Error processing match {match.external_id} "
                        f"({match.home_name} vs {match.away_name}): {e}",
                        exc_info=True,
                    )

            for game, record in self._auto_finish_stale_games(sport, now, processed_game_ids):
                updated_games.append(record)
                finished_games.append(game)

            if updated_games:
                db.session.commit()
                invalidate_model_cache("Game")
                log.info(f"Phase 1: updated {len(updated_games)} games")

            # PHASE 2: bet points, shooters, final winner
            if finished_games:
                self._finalize_games(finished_games, log)

        except Exception:
            db.session.rollback()
            raise

        has_updates = bool(updated_games)
        if has_updates:
            self._publish(Game.query.filter(
                Game.id.in_([record["game_id"] for record in updated_games])
            ).all())

        return {
            "sport": sport,
            "updated_games": updated_games,
            "total_live_games": len(live_games),
            "external_matches_found": len(external_matches),
            "processed_matches": processed_matches,
            "matched_games": matched_games,
            "has_updates": has_updates,
            "last_sync": now.isoformat(),
            "attribution": provider.attribution,
        }

    def _fetch_external_matches(self, provider, now, log, live_games=()):
        """
        Live matches plus today's finished ones, finished entries winning.

        LIVE games with an external id missing from both lists are fetched
        one by one, they may have finished on another day or dropped out of
        the live feed.
        """
        matches = {}

        try:
            for match in provider.get_live_matches():
                matches[self._match_key(match)] = match
        except ProviderError as e:
            log.warning(f"Live matches unavailable: {e}")

        try:
            for match in provider.get_finished_matches(now.date()):
                matches[self._match_key(match)] = match
        except ProviderError as e:
            log.warning(f"Finished matches unavailable: {e}")

        known_ids = {match.external_id for match in matches.values() if match.external_id}
        for game in live_games:
            if not game.external_id or game.external_id in known_ids:
                continue
            try:
                match = provider.get_match(game.external_id)
            except ProviderError as e:
                log.warning(f"Match {game.external_id} unavailable: {e}")
                continue
            if match:
                matches[self._match_key(match)] = match

        log.info(f"{len(matches)} external matches from {provider.name}")
        return list(matches.values())

    @staticmethod
    def _match_key(match):
        if match.external_id:
            return match.external_id
        return f"{match.home_name}|{match.away_name}"

    def _find_game(self, match, live_games, sport):
        """
        Find our game for an external match.

        External id first, then both team names against the LIVE games.

        Returns:
            (game, method) or (None, None)
        """
        if match.external_id:
            query = Game.query.filter(Game.external_id == match.external_id)
            game = Game._by_sport(query, sport).first()
            if game:
                return game, "external_id"

        if not live_games or not match.home_name or not match.away_name:
            return None, None

        teams = {}
        for game in live_games:
            teams[game.home_team.id] = game.home_team
            teams[game.away_team.id] = game.away_team

        home = find_best_team_match(match.home_name, teams.values())
        away = find_best_team_match(match.away_name, teams.values())
        if not home or not away:
            return None, None

        for game in live_games:
            if game.home_team_id == home["team"].id and game.away_team_id == away["team"].id:
                if not game.external_id and match.external_id:
                    game.external_id = match.external_id
                return game, f"{home['method']}/{away['method']}"

        return None, None

    def _apply_match(self, game, match, method, now):
        """
        Copy an external match onto a game.

        Returns:
            change record, or None when nothing relevant happened
        """
        old_status = game.status
        old_score = list(game.current_score)

        if match.status in (CANCELLED, RESCHEDULED):
            if game.status == match.status:
                return None
            game.status = match.status
            game.external_status = match.external_status
            game.last_sync_at = now
            return self._record(game, match, method, old_status, old_score, False)

        if match.status not in (LIVE, FINISHED):
            return None

        if game.status == UPCOMING:
            game.mark_live(now)

        score_changed = game.apply_live_score(
            match.home_score,
            match.away_score,
            external_status=match.external_status,
            elapsed_minute=match.elapsed,
            now=now,
        )

        finished = False
        if match.status == FINISHED:
            home_score, away_score = self._final_score(game, match.home_score, match.away_score)
            game.finish(home_score, away_score, decided_by=match.decided_by or "FT", now=now)
            finished = True

        if not (score_changed or finished or old_status != game.status):
            return None

        return self._record(game, match, method, old_status, old_score, finished)

    @staticmethod
    def _final_score(game, home_score, away_score):
        """Reported score, else what we already hold, else 0"""
        if home_score is None:
            home_score = game.home_score if game.home_score is not None else game.live_home_score
        if away_score is None:
            away_score = game.away_score if game.away_score is not None else game.live_away_score
        return home_score or 0, away_score or 0

    @staticmethod
    def _record(game, match, method, old_status, old_score, finished, auto_finished=False):
        return {
            "game_id": game.id,
            "home_team": game.home_team.name if game.home_team else None,
            "away_team": game.away_team.name if game.away_team else None,
            "old_status": old_status,
            "status": game.status,
            "old_score": old_score,
            "new_score": list(game.current_score),
            "external_id": match.external_id if match else game.external_id,
            "external_status": game.external_status,
            "elapsed_minute": game.elapsed_minute,
            "match_method": method,
            "finished": finished,
            "auto_finished": auto_finished,
        }

    def _auto_finish_stale_games(self, sport, now, processed_game_ids):
        """Finish LIVE games that have been running longer than any real game"""
        cutoff = now - self.max_live_duration(sport)
        log = ContextualLogger(__name__, {"sport": sport})

        results = []
        for game in Game.get_stale_live_games(cutoff, sport):
            if game.id in processed_game_ids:
                continue

            old_score = list(game.current_score)
            home_score, away_score = self._final_score(game, None, None)
            game.finish(home_score, away_score, decided_by="FT", now=now)
            processed_game_ids.add(game.id)

            log.warning(
                f"Auto-finished stale game {game.id} at {home_score}-{away_score} "
                f"(kickoff {game.date})"
            )
            results.append(
                (game, self._record(game, None, "auto_finish", LIVE, old_score, True, True))
            )

        return results

    def _finalize_games(self, games, log):
        """Rescore bets and refresh competition totals for finished games"""
        total_bets = 0
        competitions = {}
        for game in games:
            bets_updated, _ = Bet.recalculate_for_game(game.id)
            total_bets += bets_updated
            competitions[game.competition_id] = game.competition

        for competition in competitions.values():
            competition.update_shooters()
            awarded = competition.award_final_winner_points()
            if awarded is not None:
                log.info(
                    f"Final of {competition.name} decided: {awarded} correct winner predictions"
                )

        db.session.commit()
        invalidate_model_cache("Bet")
        invalidate_model_cache("Competition")

        log.info(
            f"Phase 2: recalculated {total_bets} bets across {len(games)} finished games"
        )

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    def update_game_statuses(self, now=None, sport=None):
        """
        Move UPCOMING games whose kickoff has passed to LIVE.

        Returns:
            List of games that changed
        """
        now = now or _utcnow()
        log = ContextualLogger(__name__, {"sport": sport or "ALL"})

        games = Game.get_games_to_start(now, sport)
        if not games:
            return []

        try:
            competitions = {}
            for game in games:
                game.mark_live(now)
                competitions[game.competition_id] = game.competition

            db.session.commit()

            # Games that kicked off now count towards shooters
            for competition in competitions.values():
                competition.update_shooters()
            db.session.commit()

        except Exception:
            db.session.rollback()
            raise

        invalidate_model_cache("Game")
        log.info(f"{len(games)} games moved to LIVE")
        self._publish(games)
        return games

    # ------------------------------------------------------------------
    # Manual updates
    # ------------------------------------------------------------------

    def manual_score_update(self, game_id, home_score, away_score, decided_by="FT", now=None):
        """
        Set a game's final score by hand and rescore its bets.

        Returns:
            (game, message) - game is None when the update was rejected
        """
        from pronostics.utils.scoring import InvalidScoreError, _check_score

        try:
            _check_score(home_score, "home_score")
            _check_score(away_score, "away_score")
        except InvalidScoreError as e:
            return None, str(e)

        game = db.session.get(Game, game_id)
        if not game:
            return None, "Game not found"

        log = ContextualLogger(__name__, {"sport": game.sport, "game_id": game.id})
        now = now or _utcnow()

        try:
            game.finish(home_score, away_score, decided_by=decided_by or "FT", now=now)
            db.session.commit()
            self._finalize_games([game], log)
        except Exception:
            db.session.rollback()
            raise

        invalidate_model_cache("Game")
        log.info(f"Manual score update: {home_score}-{away_score}")
        self._publish([game])
        return game, "Score updated successfully"

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def _publish(self, games):
        """Push score updates and a refresh signal to connected clients"""
        try:
            from pronostics.services.refresh_broadcaster import refresh_broadcaster
            from pronostics.socketio_handlers import (
                broadcast_game_final,
                broadcast_refresh,
                broadcast_score_update,
            )

            for game in games:
                broadcast_score_update(game)
                if game.is_final:
                    broadcast_game_final(game)

            signal = refresh_broadcaster.broadcast()
            broadcast_refresh(signal)

        except Exception as e:
            current_app.logger.error(f"Error publishing score updates: {e}")


# Shared instance used by the scheduler, the API and the CLI
live_score_sync = LiveScoreSync()
