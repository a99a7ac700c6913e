"""Tests for the JSON API."""

import asyncio
import threading
from datetime import date

import pytest

from wealthledger import db
from wealthledger.jobs import SnapshotJob
from wealthledger.models import TransactionType
from wealthledger.webapp import create_app


@pytest.fixture
def release():
    event = threading.Event()
    yield event
    event.set()


@pytest.fixture
def job(release):
    async def runner(owner_id, on_progress=None):
        while not release.is_set():
            await asyncio.sleep(0.01)
        return 3

    return SnapshotJob(runner=runner)


@pytest.fixture
def client(job):
    app = create_app(job=job)
    app.config['TESTING'] = True
    return app.test_client()


class TestInvestments:
    """Investment lookups and sells."""

    def test_missing_investment_is_404(self, client):
        response = client.get('/api/investments/999')
        assert response.status_code == 404
        assert "999" in response.get_json()['error']

    def test_list_filters_by_owner(self, client, fixed_deposit):
        response = client.get('/api/investments?owner_id=2')
        assert response.get_json() == []
        response = client.get('/api/investments?owner_id=1&type=fd')
        assert [inv['id'] for inv in response.get_json()] == [fixed_deposit.id]

    def test_unknown_type_is_400(self, client):
        assert client.get('/api/xirr/crypto').status_code == 400

    def test_sell(self, client, equity_fund, make_txn):
        make_txn(equity_fund, TransactionType.BUY, date(2023, 1, 1), 100000, units=10, price_per_unit_paise=10000)

        response = client.post(f'/api/investments/{equity_fund.id}/sell', json={
            'date': '2024-01-01', 'units': 4, 'price_per_unit_paise': 12000,
        })

        assert response.status_code == 201
        body = response.get_json()
        assert body['transaction']['amount_paise'] == 48000
        assert [a['units_sold'] for a in body['allocations']] == [4]
        assert db.get_total_units(equity_fund.id) == 6

    def test_sell_requires_units(self, client, equity_fund):
        response = client.post(f'/api/investments/{equity_fund.id}/sell', json={
            'date': '2024-01-01', 'units': 0, 'price_per_unit_paise': 12000,
        })
        assert response.status_code == 400

    def test_sell_bad_date(self, client, equity_fund):
        response = client.post(f'/api/investments/{equity_fund.id}/sell', json={
            'date': 'yesterday', 'units': 1, 'price_per_unit_paise': 12000,
        })
        assert response.status_code == 400
        assert "date" in response.get_json()['error']

    def test_dashboard(self, client, fixed_deposit):
        body = client.get('/api/dashboard?owner_id=1').get_json()
        assert body['stats']['investment_count'] == 1


class TestSnapshotJobRoutes:
    """Background generation and its status cell."""

    def test_no_status_yet(self, client):
        response = client.get('/api/snapshots/job-status')
        assert response.status_code == 200
        assert response.get_json() is None

    def test_second_generate_conflicts(self, client, release):
        first = client.post('/api/snapshots/generate', json={'owner_id': 1})
        assert first.status_code == 202
        assert first.get_json() == {'status': 'started'}

        second = client.post('/api/snapshots/generate', json={'owner_id': 1})
        assert second.status_code == 409
        assert second.get_json()['error'] == 'already_running'

        status = client.get('/api/snapshots/job-status').get_json()
        assert status['status'] == 'running'
        assert status['owner_id'] == 1

    def test_generate_requires_owner(self, client):
        assert client.post('/api/snapshots/generate', json={}).status_code == 400

    def test_calculate_and_history(self, client, fixed_deposit):
        response = client.post('/api/snapshots/calculate', json={'owner_id': 1, 'year_month': '2024-05'})
        assert response.get_json()['monthly_snapshots'] == 1

        history = client.get('/api/snapshots/history?owner_id=1').get_json()
        assert [h['year_month'] for h in history] == ['2024-05']
        detail = client.get('/api/snapshots/detail/2024-05?owner_id=1').get_json()
        assert len(detail) == 1

        cleared = client.delete('/api/snapshots?owner_id=1').get_json()
        assert cleared['success']
        assert client.get('/api/snapshots/list?owner_id=1').get_json() == []


class TestGoalsAndTax:
    """Goal linking errors and the capital gains report."""

    def test_goal_assignment_conflict(self, client, fixed_deposit):
        first = db.create_goal(1, "House", 100 * 100000 * 100, date(2030, 1, 1))
        second = db.create_goal(1, "Car", 10 * 100000 * 100, date(2027, 1, 1))

        ok = client.post(f'/api/goals/{first}/investments', json={'investment_id': fixed_deposit.id})
        assert ok.get_json() == {'success': True}

        conflict = client.post(f'/api/goals/{second}/investments', json={
            'investment_id': fixed_deposit.id, 'allocation_percent': 50,
        })
        assert conflict.status_code == 400
        assert conflict.get_json()['goal_id'] == first

    def test_missing_goal_is_404(self, client):
        assert client.get('/api/goals/77').status_code == 404

    def test_capital_gains(self, client, equity_fund, make_txn):
        make_txn(equity_fund, TransactionType.BUY, date(2023, 1, 1), 100000, units=10, price_per_unit_paise=10000)
        db.execute_sell(equity_fund.id, 1, date(2023, 6, 1), 10, 12000)

        response = client.get('/api/tax/capital-gains?fy_start=2023-04-01&fy_end=2024-03-31&owner_id=1')

        body = response.get_json()
        assert body['fy'] == "2023-24"
        assert body['equity_stcg_paise'] == 20000
        assert body['total_tax_paise'] == 4000
