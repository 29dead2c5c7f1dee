from __future__ import annotations

import io
import json
import unittest
from contextlib import redirect_stdout
from unittest import mock

import main
from errors import ResultFeedError
from models import FixtureScore


@mock.patch("main.setup_logging")
class MainTests(unittest.TestCase):
    def run_main(self, *argv):
        out = io.StringIO()
        with mock.patch("sys.argv", ["sportsbook-settle", *argv]), redirect_stdout(out):
            main.main()
        return json.loads(out.getvalue())

    def test_score_argument(self, _logging):
        result = self.run_main("--market", "dnb_1", "--market", "HT_1", "--score", "1:1", "--ht", "1-0")

        self.assertEqual(result["score"], "1-1")
        dnb, ht = result["results"]
        self.assertEqual((dnb["market"], dnb["push"], dnb["outcome"]), ("DNB_1", True, "PUSH"))
        self.assertEqual(ht["outcome"], "WIN")

    def test_score_from_feed(self, _logging):
        with mock.patch("main.APISportsClient") as client_cls:
            client_cls.return_value.get_final_score.return_value = FixtureScore(9, "FT", 0, 2, 0, 1)
            result = self.run_main("--market", "2", "--fixture-id", "9", "--base-url", "https://feed.test")

        self.assertEqual((result["score"], result["ht"]), ("0-2", "0-1"))
        self.assertEqual(result["results"][0]["outcome"], "WIN")

    def test_feed_error_exits_cleanly(self, _logging):
        with mock.patch("main.APISportsClient") as client_cls:
            client_cls.return_value.get_final_score.side_effect = ResultFeedError("Fixture 9 not finalized yet")
            with mock.patch("sys.stderr", new_callable=io.StringIO) as err, self.assertRaises(SystemExit) as ctx:
                self.run_main("--market", "1", "--fixture-id", "9", "--base-url", "https://feed.test")

        self.assertEqual(ctx.exception.code, 1)
        self.assertIn("not finalized", err.getvalue())

    @mock.patch.dict("os.environ", {}, clear=True)
    def test_missing_feed_config_exits_cleanly(self, _logging):
        with mock.patch("sys.stderr", new_callable=io.StringIO) as err, self.assertRaises(SystemExit) as ctx:
            self.run_main("--market", "1", "--fixture-id", "9")

        self.assertEqual(ctx.exception.code, 1)
        self.assertIn("base_url", err.getvalue())


if __name__ == "__main__":
    unittest.main()
