from __future__ import annotations

import unittest
from datetime import datetime, timezone

from errors import BetNotFoundError, InsufficientBalanceError, UserNotFoundError
from models import BetStatus, MatchStatus
from storage import MemStorage, seed_default_user


class MemStorageTests(unittest.TestCase):
    def setUp(self) -> None:
        self.storage = MemStorage()
        self.user = self.storage.create_user("user", "password", 50.0)
        self.match = self.storage.create_match(
            league_id=3,
            start_time=datetime(2024, 3, 9, 15, 0, tzinfo=timezone.utc),
            home_team_name="Universitatea Craiova",
            away_team_name="Farul",
        )

    def test_ids_are_sequential(self) -> None:
        first = self.storage.create_market(self.match.id, "1", 1.9)
        second = self.storage.create_market(self.match.id, "X", 3.4)
        self.assertEqual((first.id, second.id), (1, 2))

    def test_update_match_status_keeps_unspecified_scores(self) -> None:
        self.storage.update_match_status(self.match.id, MatchStatus.LIVE, 1, 0, 1, 0)
        updated = self.storage.update_match_status(self.match.id, MatchStatus.FINISHED, away_score=2)
        self.assertEqual(updated.status, MatchStatus.FINISHED)
        self.assertEqual((updated.home_score, updated.away_score), (1, 2))
        self.assertEqual((updated.ht_home_score, updated.ht_away_score), (1, 0))

    def test_update_unknown_match_returns_none(self) -> None:
        self.assertIsNone(self.storage.update_match_status(99, MatchStatus.LIVE))

    def test_delete_match_cascades_markets(self) -> None:
        market = self.storage.create_market(self.match.id, "1", 1.9)
        self.assertTrue(self.storage.delete_match(self.match.id))
        self.assertIsNone(self.storage.get_market(market.id))
        self.assertFalse(self.storage.delete_match(self.match.id))

    def test_delete_bet_cascades_selections(self) -> None:
        market = self.storage.create_market(self.match.id, "1", 1.9)
        bet = self.storage.create_bet(self.user.id, 5.0, 1.9, 9.5, [(market.id, 1.9)])
        self.assertEqual(len(self.storage.get_bet_selections(bet.id)), 1)
        self.assertTrue(self.storage.delete_bet(bet.id))
        self.assertEqual(self.storage.get_bet_selections(bet.id), [])

    def test_toggle_market_lock(self) -> None:
        market = self.storage.create_market(self.match.id, "1", 1.9)
        self.assertTrue(self.storage.toggle_market_lock(market.id, True).is_locked)
        self.assertIsNone(self.storage.toggle_market_lock(404, True))

    def test_transition_is_compare_and_swap(self) -> None:
        bet = self.storage.create_bet(self.user.id, 5.0, 2.0, 10.0, [])
        self.assertTrue(self.storage.transition_bet_status(bet.id, BetStatus.PENDING, BetStatus.WON))
        self.assertFalse(self.storage.transition_bet_status(bet.id, BetStatus.PENDING, BetStatus.LOST))
        self.assertEqual(self.storage.get_bet(bet.id).status, BetStatus.WON)

    def test_transition_unknown_bet(self) -> None:
        with self.assertRaises(BetNotFoundError):
            self.storage.transition_bet_status(7, BetStatus.PENDING, BetStatus.WON)

    def test_adjust_balance(self) -> None:
        self.assertEqual(self.storage.adjust_user_balance(self.user.id, 25.0).balance, 75.0)
        self.assertEqual(self.storage.adjust_user_balance(self.user.id, -75.0).balance, 0.0)

    def test_debit_below_zero_is_refused(self) -> None:
        with self.assertRaises(InsufficientBalanceError):
            self.storage.adjust_user_balance(self.user.id, -50.01)
        self.assertEqual(self.storage.get_user(self.user.id).balance, 50.0)

    def test_adjust_unknown_user(self) -> None:
        with self.assertRaises(UserNotFoundError):
            self.storage.adjust_user_balance(12, 1.0)

    def test_transaction_rolls_back_on_error(self) -> None:
        with self.assertRaises(RuntimeError):
            with self.storage.transaction():
                self.storage.adjust_user_balance(self.user.id, 100.0)
                self.storage.create_market(self.match.id, "1", 1.9)
                raise RuntimeError("boom")
        self.assertEqual(self.storage.get_user(self.user.id).balance, 50.0)
        self.assertEqual(self.storage.get_markets_by_match_id(self.match.id), [])
        # id counters roll back too
        self.assertEqual(self.storage.create_market(self.match.id, "1", 1.9).id, 1)

    def test_transaction_commits(self) -> None:
        with self.storage.transaction():
            self.storage.adjust_user_balance(self.user.id, 10.0)
        self.assertEqual(self.storage.get_user(self.user.id).balance, 60.0)

    def test_leagues_by_country(self) -> None:
        liga = self.storage.create_league("Liga 1", "Romania")
        self.storage.create_league("Primeira Liga", "Portugal", is_active=False)

        self.assertEqual(self.storage.get_league(liga.id), liga)
        self.assertEqual([league.name for league in self.storage.get_leagues_by_country("Romania")], ["Liga 1"])
        self.assertEqual(len(self.storage.get_leagues()), 2)
        self.assertIsNone(self.storage.get_league(42))

    def test_teams_by_country_and_logo(self) -> None:
        team = self.storage.create_team("Farul Constanta", "FAR", "Romania", league="Liga 1")
        self.storage.create_team("Benfica", "SLB", "Portugal")

        self.assertEqual([t.short_name for t in self.storage.get_teams_by_country("Romania")], ["FAR"])
        updated = self.storage.update_team_logo(team.id, "farul.png")
        self.assertEqual(self.storage.get_team(team.id).logo, "farul.png")
        self.assertEqual(updated.league, "Liga 1")
        self.assertIsNone(self.storage.update_team_logo(99, "x.png"))

    def test_rollback_covers_leagues(self) -> None:
        with self.assertRaises(RuntimeError):
            with self.storage.transaction():
                self.storage.create_league("Liga 2", "Romania")
                raise RuntimeError("boom")
        self.assertEqual(self.storage.get_leagues(), [])

    def test_seed_default_user_is_idempotent(self) -> None:
        storage = MemStorage()
        first = seed_default_user(storage, 10000.0)
        second = seed_default_user(storage, 10000.0)
        self.assertEqual(first.id, second.id)
        self.assertEqual(first.balance, 10000.0)


if __name__ == "__main__":
    unittest.main()
