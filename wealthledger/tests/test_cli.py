"""Tests for the command-line entry point."""

import json
from datetime import date

import pytest

from wealthledger import db
from wealthledger.main import main
from wealthledger.models import TransactionType


def _run(capsys, *argv):
    main(list(argv))
    return json.loads(capsys.readouterr().out)


class TestCommands:

    def test_tax(self, capsys, equity_fund, make_txn):
        make_txn(equity_fund, TransactionType.BUY, date(2023, 1, 1), 100000, units=10, price_per_unit_paise=10000)
        db.execute_sell(equity_fund.id, 1, date(2023, 6, 1), 10, 11000)

        result = _run(capsys, "tax", "--owner", "1", "--fy-start", "2023-04-01", "--fy-end", "2024-03-31")

        assert result['fy'] == "2023-24"
        assert result['equity_stcg_paise'] == 10000

    def test_reconstruct_and_history(self, capsys, fixed_deposit):
        assert _run(capsys, "reconstruct", "--owner", "1", "--month", "2024-01", "--month", "2024-02") == {
            'months_processed': 2,
        }
        history = _run(capsys, "history", "--owner", "1")
        assert [h['year_month'] for h in history] == ["2024-01", "2024-02"]

    def test_rate(self, capsys):
        result = _run(capsys, "rate", "--type", "gold", "--value", "9")
        assert result['rate_gold'] == 9.0

    def test_xirr_without_investments(self, capsys):
        assert _run(capsys, "xirr", "--type", "shares", "--owner", "1") == {'investment_type': 'shares', 'xirr': None}


class TestErrors:

    def test_invalid_rate_exits_1(self, capsys):
        with pytest.raises(SystemExit) as excinfo:
            main(["rate", "--type", "fd", "--value", "lots"])
        assert excinfo.value.code == 1
        assert "must be a number" in capsys.readouterr().err

    def test_missing_goal_exits_1(self, capsys):
        with pytest.raises(SystemExit) as excinfo:
            main(["simulate", "--goal", "42"])
        assert excinfo.value.code == 1
        assert "Goal 42 not found" in capsys.readouterr().err

    def test_bad_date_rejected_by_parser(self):
        with pytest.raises(SystemExit) as excinfo:
            main(["tax", "--fy-start", "April"])
        assert excinfo.value.code == 2
