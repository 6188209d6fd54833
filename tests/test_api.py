"""Tests for the internal API — /analyze, /backtest, /backtests and /session."""

from dataclasses import replace
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from marketlens.analysis.settings import DEFAULT_SETTINGS
from marketlens.api.routers import configure_routers
from marketlens.main import app
from marketlens.repos.backtest_repo import BacktestRepo
from marketlens.repos.db import init_db

client = TestClient(app)


# ── Helpers ──────────────────────────────────────────────────────────────


def _zigzag_records(n):
    """Candle dicts (no volume) for a +4% / −2.5% alternating uptrend, hourly."""
    records = []
    prev = close = 100.0
    for i in range(n):
        if i:
            close = prev * (1.04 if i % 2 == 1 else 0.975)
        records.append(
            {
                "timestamp": f"2024-01-{1 + i // 24:02d}T{i % 24:02d}:00:00Z",
                "open": prev,
                "high": max(prev, close) * 1.002,
                "low": min(prev, close) * 0.998,
                "close": close,
            }
        )
        prev = close
    return records


@pytest.fixture
def repo(tmp_path):
    db_path = str(tmp_path / "api.db")
    init_db(db_path)
    repo = BacktestRepo(db_path)
    configure_routers(backtest_repo=repo)
    yield repo
    configure_routers(backtest_repo=None)


# ── Tests ────────────────────────────────────────────────────────────────


class TestHealth:
    def test_health(self):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


class TestAnalyzeEndpoint:
    def test_uptrend_analysis(self):
        resp = client.post("/analyze", json={"candles": _zigzag_records(30)})
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert data["candles"] == 30
        assert data["signals"]["recommendation"] == "BULLISH"
        assert data["patterns"]["market_regime"]["regime"] == "strong_uptrend"
        assert set(data["indicators"]) == {"ema9", "ema21", "rsi", "bollinger"}
        assert len(data["support_resistance"]["support"]) == 1

    def test_too_few_candles(self):
        resp = client.post("/analyze", json={"candles": _zigzag_records(5)})
        data = resp.json()
        assert data["status"] == "error"
        assert "Need at least 21" in data["errors"][0]

    def test_missing_candles(self):
        data = client.post("/analyze", json={}).json()
        assert data["status"] == "error"
        assert data["errors"] == ["candles must be a non-empty list"]

    def test_bad_policy(self):
        body = {"candles": _zigzag_records(30), "mr_strong_trend_policy": "ignore"}
        data = client.post("/analyze", json=body).json()
        assert data["status"] == "error"
        assert "mr_strong_trend_policy" in data["errors"][0]

    def test_block_policy(self):
        body = {"candles": _zigzag_records(30), "mr_strong_trend_policy": "block"}
        data = client.post("/analyze", json=body).json()
        assert data["signals"]["mean_reversion"] == 0

    def test_null_price_rejected(self):
        records = _zigzag_records(24)
        records[22]["close"] = None
        data = client.post("/analyze", json={"candles": records}).json()
        assert data["status"] == "error"
        assert "has no close price" in data["errors"][0]
        assert "signals" not in data


class TestBacktestEndpoint:
    def test_run_persisted_and_listed(self, repo):
        resp = client.post(
            "/backtest",
            json={"candles": _zigzag_records(100), "strategy": "momentum", "label": "api"},
        )
        data = resp.json()
        assert data["status"] == "ok"
        assert data["run_id"] >= 1
        assert data["candle_count"] == 100
        assert len(data["trades"]) == data["stats"]["total_trades"]

        runs = client.get("/backtests").json()["runs"]
        assert [r["id"] for r in runs] == [data["run_id"]]
        assert runs[0]["label"] == "api"

        ledger = client.get(f"/backtests/{data['run_id']}/trades").json()
        assert ledger["run"]["id"] == data["run_id"]
        assert len(ledger["trades"]) == data["stats"]["total_trades"]

    def test_persist_false(self, repo):
        body = {"candles": _zigzag_records(100), "persist": False}
        data = client.post("/backtest", json=body).json()
        assert data["status"] == "ok"
        assert data["run_id"] is None
        assert repo.get_runs() == []

    def test_validation_errors(self):
        body = {"candles": _zigzag_records(100), "strategy": "scalp", "signal_threshold": 150}
        data = client.post("/backtest", json=body).json()
        assert data["status"] == "error"
        assert len(data["errors"]) == 2

    def test_too_few_candles(self):
        data = client.post("/backtest", json={"candles": _zigzag_records(40)}).json()
        assert data["status"] == "error"
        assert "55" in data["errors"][0]

    def test_unknown_run(self, repo):
        data = client.get("/backtests/999/trades").json()
        assert data["status"] == "error"

    def test_no_repo_configured(self):
        configure_routers(backtest_repo=None)
        assert client.get("/backtests").json() == {"runs": []}

    def test_uses_repo_duck_type(self):
        fake = MagicMock()
        fake.insert_run.return_value = 7
        configure_routers(backtest_repo=fake)
        try:
            data = client.post("/backtest", json={"candles": _zigzag_records(60)}).json()
        finally:
            configure_routers(backtest_repo=None)
        assert data["run_id"] == 7
        fake.insert_run.assert_called_once()


class TestCompareEndpoint:
    def test_ranking(self):
        data = client.post(
            "/backtest/compare", json={"candles": _zigzag_records(100)},
        ).json()
        assert data["status"] == "ok"
        assert {r["strategy"] for r in data["ranking"]} == {"momentum", "mean_reversion"}
        assert data["best"] == data["ranking"][0]["strategy"]


class TestLongIndicatorSettings:
    @pytest.fixture(autouse=True)
    def _slow_ema(self):
        configure_routers(settings=replace(DEFAULT_SETTINGS, ema_slow=50))
        yield
        configure_routers()

    def test_backtest(self):
        body = {"candles": _zigzag_records(100), "persist": False}
        data = client.post("/backtest", json=body).json()
        assert data["status"] == "ok"
        assert data["candle_count"] == 100

    def test_backtest_too_short(self):
        data = client.post("/backtest", json={"candles": _zigzag_records(60)}).json()
        assert data["status"] == "error"
        assert "74" in data["errors"][0]

    def test_compare(self):
        data = client.post("/backtest/compare", json={"candles": _zigzag_records(100)}).json()
        assert data["status"] == "ok"
        assert len(data["ranking"]) == 2


class TestSessionEndpoint:
    def test_explicit_time(self):
        data = client.get("/session", params={"at": "2024-01-15T08:30:00Z"}).json()
        assert data["active_killzone"] == "London Open Killzone"
        assert data["score_modifier"] == 15
        assert data["optimal_trade_window"] is True

    def test_now(self):
        data = client.get("/session").json()
        assert "current_session" in data

    def test_invalid_time(self):
        data = client.get("/session", params={"at": "yesterday"}).json()
        assert data["status"] == "error"
