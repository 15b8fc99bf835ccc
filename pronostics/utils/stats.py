"""
User statistics across competitions
"""

from pronostics.models import Bet, CompetitionUser, Game


def _longest_run(values):
    """Length of the longest run of truthy values"""
    longest = 0
    current = 0
    for value in values:
        if value:
            current += 1
            longest = max(longest, current)
        else:
            current = 0
    return longest


def _summarize(bets):
    scored = [bet for bet in bets if bet.game.is_final]
    exact_scores = sum(1 for bet in scored if bet.result == "exact")
    correct_outcomes = sum(1 for bet in scored if bet.result == "correct")
    winning = exact_scores + correct_outcomes

    return {
        "bets_placed": len(bets),
        "scored_bets": len(scored),
        "points": sum(bet.points or 0 for bet in scored),
        "exact_scores": exact_scores,
        "correct_outcomes": correct_outcomes,
        "wrong_predictions": len(scored) - winning,
        "accuracy": round(winning / len(scored) * 100, 1) if scored else 0.0,
    }


def get_user_stats(user):
    """Get betting stats for a user, overall and per competition

    Streaks follow kickoff order: ``longest_streak`` counts consecutive
    scored bets that earned points, ``exact_score_streak`` consecutive
    exact scores.
    """
    bets = (
        Bet.query.join(Game)
        .filter(Bet.user_id == user.id)
        .order_by(Game.date.asc(), Game.id.asc())
        .all()
    )
    scored = [bet for bet in bets if bet.game.is_final]

    memberships = CompetitionUser.query.filter_by(user_id=user.id).all()
    final_winner_points = sum(m.final_winner_points or 0 for m in memberships)

    total = _summarize(bets)
    total["final_winner_points"] = final_winner_points
    total["total_points"] = total["points"] + final_winner_points
    total["shooters"] = sum(m.shooters or 0 for m in memberships)
    total["longest_streak"] = _longest_run(bet.points > 0 for bet in scored)
    total["exact_score_streak"] = _longest_run(bet.result == "exact" for bet in scored)

    competitions = []
    for membership in memberships:
        competition_bets = [
            bet for bet in bets if bet.game.competition_id == membership.competition_id
        ]
        summary = _summarize(competition_bets)
        summary.update(
            {
                "competition_id": membership.competition_id,
                "competition_name": membership.competition.name,
                "sport": membership.competition.sport,
                "shooters": membership.shooters or 0,
                "final_winner_points": membership.final_winner_points or 0,
                "total_points": summary["points"] + (membership.final_winner_points or 0),
            }
        )
        competitions.append(summary)

    return {
        "user": user.to_dict(),
        "total": total,
        "competitions": competitions,
    }
