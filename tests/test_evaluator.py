from __future__ import annotations

import unittest
from datetime import datetime, timezone
from unittest import mock

import evaluator
from evaluator import SUPPORTED_MARKETS, aggregate_bet, evaluate, is_push, settle_market
from models import Bet, BetSelection, BetStatus, Market, MarketType, Match, MatchStatus, Outcome

# (tag, full-time, half-time, wins)
RULE_CASES = [
    ("1", (2, 1), (0, 0), True),
    ("1", (1, 1), (0, 0), False),
    ("1", (0, 1), (0, 0), False),
    ("X", (2, 2), (1, 1), True),
    ("X", (1, 0), (0, 0), False),
    ("2", (0, 1), (0, 0), True),
    ("2", (1, 0), (0, 0), False),
    ("2", (0, 0), (0, 0), False),
    ("OVER_1_5", (1, 1), (0, 0), True),
    ("OVER_1_5", (1, 0), (0, 0), False),
    ("UNDER_1_5", (1, 0), (0, 0), True),
    ("UNDER_1_5", (1, 1), (0, 0), False),
    ("OVER_2_5", (2, 1), (0, 0), True),
    ("OVER_2_5", (1, 1), (0, 0), False),
    ("UNDER_2_5", (1, 1), (0, 0), True),
    ("UNDER_2_5", (3, 0), (0, 0), False),
    ("OVER_3_5", (3, 1), (0, 0), True),
    ("OVER_3_5", (2, 1), (0, 0), False),
    ("UNDER_3_5", (2, 1), (0, 0), True),
    ("UNDER_3_5", (2, 2), (0, 0), False),
    ("BTTS_YES", (1, 1), (0, 0), True),
    ("BTTS_YES", (1, 0), (0, 0), False),
    ("BTTS_NO", (0, 0), (0, 0), True),
    ("BTTS_NO", (3, 0), (0, 0), True),
    ("BTTS_NO", (2, 2), (0, 0), False),
    ("DNB_1", (1, 0), (0, 0), True),
    ("DNB_1", (1, 1), (0, 0), False),
    ("DNB_1", (0, 1), (0, 0), False),
    ("DNB_2", (0, 1), (0, 0), True),
    ("DNB_2", (1, 1), (0, 0), False),
    ("DC_1X", (1, 1), (0, 0), True),
    ("DC_1X", (1, 0), (0, 0), True),
    ("DC_1X", (0, 1), (0, 0), False),
    ("DC_12", (1, 0), (0, 0), True),
    ("DC_12", (0, 1), (0, 0), True),
    ("DC_12", (2, 2), (0, 0), False),
    ("DC_X2", (1, 1), (0, 0), True),
    ("DC_X2", (0, 1), (0, 0), True),
    ("DC_X2", (1, 0), (0, 0), False),
    ("HT_1", (3, 1), (1, 0), True),
    ("HT_1", (3, 1), (0, 0), False),
    ("HT_X", (3, 1), (0, 0), True),
    ("HT_X", (3, 1), (1, 0), False),
    ("HT_2", (1, 2), (0, 1), True),
    ("HT_2", (1, 2), (1, 0), False),
    ("HT_OVER_0_5", (3, 1), (1, 0), True),
    ("HT_OVER_0_5", (3, 1), (0, 0), False),
    ("HT_UNDER_0_5", (3, 1), (0, 0), True),
    ("HT_UNDER_0_5", (3, 1), (0, 1), False),
    ("HT_OVER_1_5", (3, 1), (1, 1), True),
    ("HT_OVER_1_5", (3, 1), (1, 0), False),
    ("HT_UNDER_1_5", (3, 1), (1, 0), True),
    ("HT_UNDER_1_5", (3, 1), (2, 0), False),
    ("HT_BTTS_YES", (2, 2), (1, 1), True),
    ("HT_BTTS_YES", (2, 2), (1, 0), False),
    ("HT_BTTS_NO", (2, 2), (1, 0), True),
    ("HT_BTTS_NO", (2, 2), (1, 1), False),
    ("HANDICAP_1_MINUS_1", (2, 0), (0, 0), True),
    ("HANDICAP_1_MINUS_1", (2, 1), (0, 0), False),
    ("HANDICAP_1_MINUS_1", (1, 0), (0, 0), False),
    ("HANDICAP_1_MINUS_2", (3, 0), (0, 0), True),
    ("HANDICAP_1_MINUS_2", (3, 1), (0, 0), False),
    ("HANDICAP_2_MINUS_1", (0, 2), (0, 0), True),
    ("HANDICAP_2_MINUS_1", (1, 2), (0, 0), False),
    ("HANDICAP_2_MINUS_2", (0, 3), (0, 0), True),
    ("HANDICAP_2_MINUS_2", (0, 2), (0, 0), False),
    ("WIN_BOTH_HALVES_1", (2, 0), (1, 0), True),
    ("WIN_BOTH_HALVES_1", (2, 1), (1, 0), False),
    ("WIN_BOTH_HALVES_2", (0, 2), (0, 1), True),
    ("WIN_BOTH_HALVES_2", (1, 2), (0, 1), False),
    ("WIN_EITHER_HALF_1", (2, 1), (1, 0), True),
    ("WIN_EITHER_HALF_1", (1, 1), (0, 1), True),
    ("WIN_EITHER_HALF_1", (1, 1), (1, 1), False),
    ("WIN_EITHER_HALF_1", (0, 1), (0, 0), False),
    ("WIN_EITHER_HALF_2", (1, 1), (1, 0), True),
    ("WIN_EITHER_HALF_2", (2, 2), (1, 1), False),
]


class EvaluateTests(unittest.TestCase):
    def test_rule_table(self) -> None:
        for tag, ft, ht, wins in RULE_CASES:
            with self.subTest(tag=tag, ft=ft, ht=ht):
                expected = Outcome.WIN if wins else Outcome.LOSE
                self.assertEqual(evaluate(tag, ft[0], ft[1], ht[0], ht[1]), expected)

    def test_every_enumerated_tag_has_a_case(self) -> None:
        covered = {tag for tag, _, _, _ in RULE_CASES}
        self.assertEqual(covered, set(SUPPORTED_MARKETS))

    def test_accepts_enum_members(self) -> None:
        self.assertEqual(evaluate(MarketType.HOME, 2, 1), Outcome.WIN)
        self.assertEqual(evaluate(MarketType.DC_X2, 2, 1), Outcome.LOSE)

    def test_unknown_market_always_loses(self) -> None:
        for ft in [(0, 0), (1, 0), (0, 1), (2, 2), (3, 1)]:
            with self.subTest(ft=ft):
                self.assertEqual(evaluate("FOOBAR", ft[0], ft[1]), Outcome.LOSE)
                self.assertFalse(is_push("FOOBAR", ft[0], ft[1]))

    def test_stored_but_unsettled_tags_lose(self) -> None:
        self.assertEqual(evaluate("CORRECT_SCORE", 2, 1), Outcome.LOSE)
        self.assertEqual(evaluate("CUSTOM", 2, 1), Outcome.LOSE)

    def test_half_time_defaults_to_goalless(self) -> None:
        self.assertEqual(evaluate("HT_X", 3, 1), Outcome.WIN)
        # 2nd half taken as the full match: 1-0 home
        self.assertEqual(evaluate("WIN_EITHER_HALF_1", 1, 0), Outcome.WIN)

    def test_win_both_halves_second_half_subtraction(self) -> None:
        # HT 1-0, FT 2-1: second half is 1-1, so home did not win it
        self.assertEqual(evaluate("WIN_BOTH_HALVES_1", 2, 1, 1, 0), Outcome.LOSE)
        self.assertEqual(evaluate("WIN_EITHER_HALF_1", 2, 1, 1, 0), Outcome.WIN)


class PushTests(unittest.TestCase):
    def test_draw_no_bet_pushes_on_draw(self) -> None:
        for tag in ("DNB_1", "DNB_2"):
            for ft in [(0, 0), (1, 1), (2, 2)]:
                with self.subTest(tag=tag, ft=ft):
                    self.assertTrue(is_push(tag, ft[0], ft[1]))
                    self.assertEqual(settle_market(tag, ft[0], ft[1]), Outcome.PUSH)

    def test_draw_no_bet_does_not_push_on_decided_match(self) -> None:
        self.assertFalse(is_push("DNB_1", 1, 0))
        self.assertEqual(settle_market("DNB_1", 1, 0), Outcome.WIN)
        self.assertEqual(settle_market("DNB_2", 1, 0), Outcome.LOSE)

    def test_no_other_market_pushes(self) -> None:
        for tag in SUPPORTED_MARKETS:
            if tag in ("DNB_1", "DNB_2"):
                continue
            for ft in [(0, 0), (1, 1), (2, 2), (2, 1), (1, 0), (0, 2)]:
                with self.subTest(tag=tag, ft=ft):
                    self.assertFalse(is_push(tag, ft[0], ft[1]))

    def test_handicap_on_exact_line_loses(self) -> None:
        self.assertEqual(settle_market("HANDICAP_1_MINUS_1", 2, 1), Outcome.LOSE)
        self.assertEqual(settle_market("HANDICAP_2_MINUS_2", 0, 2), Outcome.LOSE)


def _match(match_id: int, home: int | None, away: int | None, ht: tuple[int, int] | None = None,
           status: MatchStatus = MatchStatus.FINISHED) -> Match:
    return Match(
        id=match_id,
        league_id=1,
        start_time=datetime(2024, 5, 1, tzinfo=timezone.utc),
        home_team_name="Home",
        away_team_name="Away",
        status=status,
        home_score=home,
        away_score=away,
        ht_home_score=ht[0] if ht else None,
        ht_away_score=ht[1] if ht else None,
    )


def _legs(*specs: tuple[int, str]) -> list:
    legs = []
    for i, (match_id, tag) in enumerate(specs, start=1):
        market = Market(id=i, match_id=match_id, type=tag, odds=1.5)
        legs.append((BetSelection(id=i, bet_id=1, market_id=market.id, odds=1.5), market))
    return legs


def _bet(status: BetStatus = BetStatus.PENDING) -> Bet:
    return Bet(id=1, user_id=1, stake=10.0, total_odds=2.25, potential_win=22.5, status=status)


class AggregateBetTests(unittest.TestCase):
    def test_all_legs_won(self) -> None:
        status = aggregate_bet(_bet(), _legs((1, "1"), (1, "OVER_2_5")), _match(1, 3, 1))
        self.assertEqual(status, BetStatus.WON)

    def test_push_with_other_legs_won(self) -> None:
        status = aggregate_bet(_bet(), _legs((1, "DNB_1"), (1, "BTTS_YES")), _match(1, 1, 1))
        self.assertEqual(status, BetStatus.PUSH)

    def test_loss_beats_push(self) -> None:
        status = aggregate_bet(_bet(), _legs((1, "DNB_1"), (1, "OVER_2_5")), _match(1, 1, 1))
        self.assertEqual(status, BetStatus.LOST)

    def test_first_loss_short_circuits(self) -> None:
        with mock.patch("evaluator.settle_market_for_match", wraps=evaluator.settle_market_for_match) as spy:
            status = aggregate_bet(_bet(), _legs((1, "OVER_1_5"), (1, "1")), _match(1, 0, 0))
        self.assertEqual(status, BetStatus.LOST)
        self.assertEqual(spy.call_count, 1)

    def test_settled_bet_is_left_alone(self) -> None:
        for status in (BetStatus.WON, BetStatus.LOST, BetStatus.PUSH):
            with self.subTest(status=status):
                self.assertIsNone(aggregate_bet(_bet(status), _legs((1, "X")), _match(1, 0, 0)))

    def test_bet_without_legs_on_match_is_left_alone(self) -> None:
        self.assertIsNone(aggregate_bet(_bet(), _legs((2, "1")), _match(1, 2, 0)))

    def test_other_match_legs_ignored_by_default(self) -> None:
        # leg on match 2 would lose, but only match 1 is evaluated
        status = aggregate_bet(_bet(), _legs((1, "1"), (2, "2")), _match(1, 2, 0))
        self.assertEqual(status, BetStatus.WON)

    def test_require_all_legs_waits_for_unfinished_match(self) -> None:
        status = aggregate_bet(
            _bet(), _legs((1, "1"), (2, "2")), _match(1, 2, 0),
            finished_matches={}, require_all_legs=True,
        )
        self.assertIsNone(status)

    def test_require_all_legs_settles_once_all_finished(self) -> None:
        status = aggregate_bet(
            _bet(), _legs((1, "1"), (2, "2")), _match(2, 0, 1),
            finished_matches={1: _match(1, 2, 0)}, require_all_legs=True,
        )
        self.assertEqual(status, BetStatus.WON)

    def test_require_all_legs_loses_early(self) -> None:
        status = aggregate_bet(
            _bet(), _legs((1, "1"), (2, "2")), _match(1, 0, 0),
            finished_matches={}, require_all_legs=True,
        )
        self.assertEqual(status, BetStatus.LOST)

    def test_require_all_legs_ignores_live_match(self) -> None:
        live = _match(2, 0, 1, status=MatchStatus.LIVE)
        status = aggregate_bet(
            _bet(), _legs((1, "1"), (2, "2")), _match(1, 2, 0),
            finished_matches={2: live}, require_all_legs=True,
        )
        self.assertIsNone(status)


if __name__ == "__main__":
    unittest.main()
