from datetime import timedelta

from pronostics import db
from pronostics.models import Bet, CompetitionUser, Game
from pronostics.models.bet import GAME_NOT_FOUND, NOT_PARTICIPANT

from .conftest import utcnow


def test_place_bet_creates_then_updates(football_setup):
    alice, game = football_setup["alice"], football_setup["game"]

    bet, message = Bet.place_bet(alice.id, game.id, 2, 1)
    db.session.commit()
    assert bet is not None
    assert message == "Bet placed successfully"

    bet, message = Bet.place_bet(alice.id, game.id, 0, 0)
    db.session.commit()
    assert message == "Bet updated successfully"
    assert Bet.query.filter_by(user_id=alice.id).count() == 1
    assert (bet.score1, bet.score2) == (0, 0)


def test_place_bet_rejects_invalid_scores(football_setup):
    alice, game = football_setup["alice"], football_setup["game"]

    for scores in [(-1, 0), (100, 0), ("2", 1), (1.5, 0), (None, 1)]:
        bet, _ = Bet.place_bet(alice.id, game.id, *scores)
        assert bet is None


def test_place_bet_requires_participant(football_setup, make_user):
    outsider = make_user("carol")
    bet, message = Bet.place_bet(outsider.id, football_setup["game"].id, 1, 0)
    assert bet is None
    assert message == NOT_PARTICIPANT


def test_place_bet_unknown_game(football_setup):
    bet, message = Bet.place_bet(football_setup["alice"].id, 9999, 1, 0)
    assert bet is None
    assert message == GAME_NOT_FOUND


def test_place_bet_closed_after_kickoff(football_setup):
    game = football_setup["game"]
    game.date = utcnow() - timedelta(minutes=1)
    db.session.commit()

    bet, message = Bet.place_bet(football_setup["alice"].id, game.id, 1, 0)
    assert bet is None
    assert message == "Game has already started"


def test_place_bet_closed_when_not_upcoming(football_setup):
    game = football_setup["game"]
    game.status = "CANCELLED"
    db.session.commit()

    bet, message = Bet.place_bet(football_setup["alice"].id, game.id, 1, 0)
    assert bet is None
    assert "bets are closed" in message


def test_game_live_and_finish(football_setup):
    game = football_setup["game"]

    game.mark_live()
    assert game.is_live
    assert game.current_score == (0, 0)

    assert game.apply_live_score(1, None, external_status="IN_PLAY", elapsed_minute=30)
    assert game.current_score == (1, 0)
    assert not game.apply_live_score(1, 0)

    game.finish(2, 1, decided_by="AET")
    assert game.is_final
    assert game.outcome == "HOME"
    assert game.winning_team_id == football_setup["home"].id
    assert game.decided_by == "AET"


def test_update_result_scores_bets(football_setup):
    alice, bob, game = football_setup["alice"], football_setup["bob"], football_setup["game"]
    Bet.place_bet(alice.id, game.id, 2, 1)
    Bet.place_bet(bob.id, game.id, 0, 1)
    db.session.commit()

    game.finish(2, 1)
    count, competition_id = Bet.recalculate_for_game(game.id, commit=True)

    assert count == 2
    assert competition_id == football_setup["competition"].id
    points = {bet.user_id: bet.points for bet in game.bets}
    assert points == {alice.id: 3, bob.id: 0}

    # Rescoring never accumulates
    Bet.recalculate_for_game(game.id, commit=True)
    assert {bet.user_id: bet.points for bet in game.bets} == points


def test_unfinished_game_bets_score_zero(football_setup):
    alice, game = football_setup["alice"], football_setup["game"]
    bet, _ = Bet.place_bet(alice.id, game.id, 0, 0)
    db.session.commit()

    bet.update_result()
    assert bet.points == 0
    assert not bet.is_scored


def test_rugby_competition_tolerance(make_competition, make_team, make_user, make_game):
    competition = make_competition(name="Top 14", sport="RUGBY", close_score_tolerance=2)
    toulouse = make_team("Stade Toulousain", sport="RUGBY")
    racing = make_team("Racing 92", sport="RUGBY")
    user = make_user("dave")
    competition.add_participant(user)
    db.session.commit()

    game = make_game(competition, toulouse, racing)
    bet, _ = Bet.place_bet(user.id, game.id, 20, 15)
    db.session.commit()

    game.finish(22, 17)
    bet.update_result()
    assert bet.points == 3

    game.finish(23, 17)
    bet.update_result()
    assert bet.points == 1


def test_effective_tolerance_falls_back_to_config(make_competition):
    competition = make_competition(sport="RUGBY")
    assert competition.effective_tolerance == 3


def test_add_participant_is_idempotent(make_competition, make_user):
    competition = make_competition()
    user = make_user("erin")

    _, created = competition.add_participant(user)
    db.session.commit()
    assert created

    _, created = competition.add_participant(user)
    assert not created
    assert competition.participants.count() == 1


def test_update_shooters(football_setup, make_game):
    competition = football_setup["competition"]
    alice, bob = football_setup["alice"], football_setup["bob"]
    game = football_setup["game"]
    other = make_game(
        competition, football_setup["away"], football_setup["home"], starts_in=timedelta(days=1)
    )

    Bet.place_bet(alice.id, game.id, 1, 0)
    db.session.commit()

    game.mark_live()
    db.session.commit()
    competition.update_shooters()
    db.session.commit()

    members = {m.user_id: m.shooters for m in competition.participants}
    assert members == {alice.id: 0, bob.id: 1}

    # Upcoming games never count
    assert other.status == "UPCOMING"


def test_ranking_order_and_ties(football_setup, make_user, make_game):
    competition = football_setup["competition"]
    alice, bob = football_setup["alice"], football_setup["bob"]
    carol = make_user("carol")
    competition.add_participant(carol)
    db.session.commit()

    game = football_setup["game"]
    Bet.place_bet(alice.id, game.id, 2, 1)  # exact
    Bet.place_bet(bob.id, game.id, 3, 1)  # outcome
    Bet.place_bet(carol.id, game.id, 3, 1)  # outcome
    db.session.commit()

    game.finish(2, 1)
    Bet.recalculate_for_game(game.id, commit=True)

    ranking = competition.get_ranking()
    assert [row["user"].username for row in ranking] == ["alice", "bob", "carol"]
    assert [row["rank"] for row in ranking] == [1, 2, 2]
    assert ranking[0]["total_points"] == 3
    assert ranking[0]["exact_scores"] == 1
    assert ranking[1]["correct_outcomes"] == 1
    assert ranking[0]["accuracy"] == 100.0


def test_ranking_breaks_ties_on_shooters(football_setup):
    competition = football_setup["competition"]
    alice, bob = football_setup["alice"], football_setup["bob"]

    memberships = {m.user_id: m for m in competition.participants}
    memberships[alice.id].shooters = 2
    memberships[bob.id].shooters = 0
    db.session.commit()

    ranking = competition.get_ranking()
    assert [row["user_id"] for row in ranking] == [bob.id, alice.id]
    assert [row["rank"] for row in ranking] == [1, 2]


def test_final_winner_prediction(football_setup):
    competition = football_setup["competition"]
    competition.has_final_winner_prediction = True
    db.session.commit()

    membership = competition.get_participant(football_setup["alice"].id)
    success, _ = membership.set_final_winner_prediction(football_setup["home"].id)
    assert success
    db.session.commit()

    game = football_setup["game"]
    game.finish(1, 0)
    assert competition.award_final_winner_points() == 1
    db.session.commit()

    assert membership.final_winner_points == 5
    bob_membership = CompetitionUser.query.filter_by(user_id=football_setup["bob"].id).first()
    assert bob_membership.final_winner_points == 0

    # Set, not added
    competition.award_final_winner_points()
    assert membership.final_winner_points == 5

    ranking = competition.get_ranking()
    alice_row = next(row for row in ranking if row["user_id"] == football_setup["alice"].id)
    assert alice_row["total_points"] == 5


def test_final_winner_prediction_rejected(football_setup, make_team):
    competition = football_setup["competition"]
    membership = competition.get_participant(football_setup["alice"].id)

    success, message = membership.set_final_winner_prediction(football_setup["home"].id)
    assert not success
    assert "not available" in message

    competition.has_final_winner_prediction = True
    stranger = make_team("Real Madrid")
    success, message = membership.set_final_winner_prediction(stranger.id)
    assert not success
    assert "does not play" in message

    football_setup["game"].date = utcnow() - timedelta(minutes=5)
    success, message = membership.set_final_winner_prediction(football_setup["home"].id)
    assert not success
    assert "already started" in message


def test_final_not_decided_yet(football_setup):
    competition = football_setup["competition"]
    competition.has_final_winner_prediction = True
    assert competition.award_final_winner_points() is None


def test_games_of_day(football_setup, make_game):
    competition = football_setup["competition"]
    make_game(competition, football_setup["away"], football_setup["home"], starts_in=timedelta(days=3))

    games = Game.get_games_of_day(football_setup["game"].date.date())
    assert games == [football_setup["game"]]
