"""
Tests for the cost ledger and budgets
"""

import pytest

from arbiter.cost import AlertType, Budget, CostFilter, CostLedger


@pytest.fixture
def ledger(clock):
    return CostLedger(clock=clock)


@pytest.fixture
def budgeted(ledger):
    ledger.set_budget(Budget(id="daily", name="Daily", limit=1.0, warning_threshold=80.0))
    return ledger


class TestRecording:
    def test_record_fields(self, ledger, clock):
        record = ledger.record(
            "alpha",
            cost=0.02,
            input_tokens=800,
            output_tokens=200,
            model="alpha-1",
            project_id="acme",
            user_id="u1",
            metadata={"decision_id": "d1"},
        )
        assert record.timestamp == clock()
        assert record.tokens == 1000
        assert record.metadata == {"decision_id": "d1"}
        assert len(ledger) == 1

    def test_negative_cost_rejected(self, ledger):
        with pytest.raises(ValueError):
            ledger.record("alpha", cost=-0.01)

    def test_max_records(self, clock):
        ledger = CostLedger(max_records=3, clock=clock)
        for i in range(5):
            ledger.record("alpha", cost=float(i))
        assert [r.cost for r in ledger.export_records()] == [2.0, 3.0, 4.0]

    def test_totals_and_filters(self, ledger, clock):
        ledger.record("alpha", cost=0.01, project_id="acme")
        clock.advance(10)
        ledger.record("beta", cost=0.05, project_id="acme")
        ledger.record("beta", cost=0.02, user_id="u2")

        assert ledger.total_cost() == pytest.approx(0.08)
        assert ledger.total_cost(CostFilter(provider="beta")) == pytest.approx(0.07)
        assert ledger.total_cost(CostFilter(start_time=clock())) == pytest.approx(0.07)
        assert ledger.total_cost(CostFilter(min_cost=0.02)) == pytest.approx(0.07)
        assert ledger.cost_by_provider() == pytest.approx({"alpha": 0.01, "beta": 0.07})
        assert ledger.cost_by_project() == pytest.approx({"acme": 0.06})

    def test_report(self, budgeted):
        budgeted.record("alpha", cost=0.25, input_tokens=100, output_tokens=50)
        budgeted.record("alpha", cost=0.25, input_tokens=100, output_tokens=50)

        report = budgeted.get_report()
        assert report.total_cost == pytest.approx(0.5)
        assert report.total_requests == 2
        assert report.total_tokens == 300
        assert report.by_provider["alpha"].average_cost == pytest.approx(0.25)
        assert report.budgets[0].remaining == pytest.approx(0.5)
        assert report.to_dict()["by_provider"]["alpha"]["requests"] == 2


class TestBudgets:
    def test_check_budget(self, budgeted):
        budgeted.record("alpha", cost=0.3)
        status = budgeted.check_budget("daily")
        assert status.within_limit
        assert status.spent == pytest.approx(0.3)
        assert status.remaining == pytest.approx(0.7)
        assert status.percentage == pytest.approx(30.0)

    def test_unknown_budget(self, ledger):
        with pytest.raises(KeyError):
            ledger.check_budget("nope")

    def test_limit_must_be_positive(self, ledger):
        with pytest.raises(ValueError):
            ledger.set_budget(Budget(id="b", name="b", limit=0))

    def test_one_warning_then_one_exceeded(self, budgeted):
        for _ in range(12):
            budgeted.record("alpha", cost=0.1)

        alerts = budgeted.get_alerts()
        assert [a.type for a in alerts] == [AlertType.WARNING, AlertType.EXCEEDED]
        assert alerts[0].percentage == pytest.approx(80.0)
        assert alerts[1].percentage == pytest.approx(100.0)
        assert budgeted.exceeded_budgets()[0].budget_id == "daily"

    def test_acknowledged_alert_can_fire_again(self, budgeted):
        for _ in range(8):
            budgeted.record("alpha", cost=0.1)
        [warning] = budgeted.get_alerts()
        assert budgeted.acknowledge_alert(warning.id)

        budgeted.record("alpha", cost=0.01)
        assert len(budgeted.get_alerts(acknowledged=False)) == 1
        assert len(budgeted.get_alerts()) == 2

    def test_alert_window_expiry(self, budgeted, clock):
        for _ in range(8):
            budgeted.record("alpha", cost=0.1)
        clock.advance(3600)
        budgeted.record("alpha", cost=0.01)
        assert len(budgeted.get_alerts()) == 2

    def test_scoped_budget(self, ledger):
        ledger.set_budget(Budget(id="beta-only", name="Beta", limit=0.1, provider="beta"))
        ledger.record("alpha", cost=1.0)
        assert ledger.check_budget("beta-only").within_limit
        assert ledger.get_alerts() == []

        ledger.record("beta", cost=0.1)
        assert not ledger.check_budget("beta-only").within_limit

    def test_inactive_budget_never_alerts(self, ledger):
        ledger.set_budget(Budget(id="off", name="Off", limit=0.1, active=False))
        ledger.record("alpha", cost=1.0)
        assert ledger.get_alerts() == []
        assert ledger.exceeded_budgets() == []

    def test_listener_errors_are_contained(self, budgeted):
        received = []

        def broken(alert):
            raise RuntimeError("listener down")

        budgeted.add_alert_listener(broken)
        budgeted.add_alert_listener(received.append)
        budgeted.record("alpha", cost=0.9)

        assert [a.type for a in received] == [AlertType.WARNING]


class TestManagement:
    def test_load_records_raises_no_alerts(self, budgeted, clock):
        source = CostLedger(clock=clock)
        source.record("alpha", cost=2.0)

        budgeted.load_records(source.export_records())
        assert budgeted.total_cost() == pytest.approx(2.0)
        assert budgeted.get_alerts() == []

    def test_clear_keeps_budgets(self, budgeted):
        budgeted.record("alpha", cost=0.5)
        budgeted.clear()
        assert len(budgeted) == 0
        assert budgeted.get_budget("daily") is not None

    def test_stats(self, budgeted):
        budgeted.record("alpha", cost=0.9)
        stats = budgeted.get_stats()
        assert stats["records"] == 1
        assert stats["budgets"] == 1
        assert stats["unacknowledged_alerts"] == 1
