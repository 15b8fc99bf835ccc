"""
Scoring Engine for the Pronostics application

This module handles scoring calculations for individual bets.
For aggregated statistics and rankings, see Competition.get_ranking()
in pronostics/models/competition.py and pronostics/utils/stats.py
"""

FOOTBALL = "FOOTBALL"
RUGBY = "RUGBY"

FOOTBALL_STANDARD = "FOOTBALL_STANDARD"
RUGBY_PROXIMITY = "RUGBY_PROXIMITY"

EXACT_SCORE_POINTS = 3
CORRECT_OUTCOME_POINTS = 1
WRONG_OUTCOME_POINTS = 0

# Per-side points tolerance for a rugby "very close" prediction
DEFAULT_CLOSE_SCORE_TOLERANCE = 3

HOME = "HOME"
AWAY = "AWAY"
DRAW = "DRAW"


class InvalidScoreError(ValueError):
    """Raised when a score is not a non-negative integer"""


def _check_score(value, label):
    # bool is an int subclass, but True-False is not a score
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidScoreError(f"{label} must be an integer, got {value!r}")
    if value < 0:
        raise InvalidScoreError(f"{label} cannot be negative, got {value}")


def get_outcome(home_score, away_score):
    """Return the coarse result of a score: HOME, AWAY or DRAW"""
    if home_score > away_score:
        return HOME
    if home_score < away_score:
        return AWAY
    return DRAW


def get_scoring_system_for_sport(sport):
    """Map a competition sport to its scoring system (football rules by default)"""
    if sport and sport.upper() == RUGBY:
        return RUGBY_PROXIMITY
    return FOOTBALL_STANDARD


def calculate_bet_points(
    predicted_home,
    predicted_away,
    actual_home,
    actual_away,
    sport=FOOTBALL,
    close_score_tolerance=DEFAULT_CLOSE_SCORE_TOLERANCE,
):
    """
    Calculate the points earned by a prediction.

    Returns:
        3 for an exact score
        3 for a rugby prediction with the right outcome and both team scores
          within close_score_tolerance of the actual ones
        1 for the right outcome (home win, away win or draw)
        0 otherwise

    Raises:
        InvalidScoreError: if any score is not a non-negative integer
    """
    _check_score(predicted_home, "predicted_home")
    _check_score(predicted_away, "predicted_away")
    _check_score(actual_home, "actual_home")
    _check_score(actual_away, "actual_away")

    if predicted_home == actual_home and predicted_away == actual_away:
        return EXACT_SCORE_POINTS

    if get_outcome(predicted_home, predicted_away) != get_outcome(
        actual_home, actual_away
    ):
        return WRONG_OUTCOME_POINTS

    if get_scoring_system_for_sport(sport) == RUGBY_PROXIMITY:
        tolerance = (
            DEFAULT_CLOSE_SCORE_TOLERANCE
            if close_score_tolerance is None
            else close_score_tolerance
        )
        if (
            abs(predicted_home - actual_home) <= tolerance
            and abs(predicted_away - actual_away) <= tolerance
        ):
            return EXACT_SCORE_POINTS

    return CORRECT_OUTCOME_POINTS


def calculate_bet_score(bet):
    """
    Calculate score for a single stored bet.

    Args:
        bet: Bet object with game and game.competition relationships loaded

    Returns:
        Points for the bet, 0 while the game has no final score
    """
    game = bet.game
    if not game or not game.is_final:
        return 0
    if game.home_score is None or game.away_score is None:
        return 0

    competition = game.competition
    return calculate_bet_points(
        bet.score1,
        bet.score2,
        game.home_score,
        game.away_score,
        sport=competition.sport if competition else FOOTBALL,
        close_score_tolerance=(
            competition.effective_tolerance if competition else None
        ),
    )
