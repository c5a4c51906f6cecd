"""
Tests for position entities and core/services/position_valuation_service.py
"""
import pytest

from position_monitor.core.domain.entities.alert_rule_entity import AlertRule
from position_monitor.core.domain.entities.position_entity import Position
from position_monitor.core.domain.enums.position_enums import (
    ConditionType,
    PositionSide,
    PositionStatus,
)
from position_monitor.core.services.position_valuation_service import PositionValuationService

svc = PositionValuationService


class TestStoredDocumentMapping:
    """Dashboard documents map onto the domain entities."""

    def test_legacy_trade_document(self):
        """BUY/SELL, entry_amount and empty targets are normalised."""
        p = Position.model_validate({
            "_id": "abc",
            "pair": "ETH/USDT",
            "type": "SELL",
            "entry_price": 2000,
            "entry_amount": 25,
            "leverage": None,
            "take_profit": 0,
            "stop_loss": "",
            "status": "ACTIVE",
        })
        assert p.id == "abc"
        assert p.side == PositionSide.SHORT
        assert p.margin == 25
        assert p.leverage == 1
        assert p.take_profit is None
        assert p.stop_loss is None
        assert p.is_active

    def test_with_updates_applies_known_fields_only(self, make_position):
        """Unknown keys such as closed_at are ignored on the entity copy."""
        p = make_position()
        updated = p.with_updates({"status": "CLOSED", "current_price": 101.0, "closed_at": "x"})
        assert updated.status == PositionStatus.CLOSED
        assert updated.current_price == 101.0
        assert p.status == PositionStatus.ACTIVE

    def test_alert_rule_legacy_fields(self):
        """trade_id becomes position_id; condition type is case-insensitive."""
        rule = AlertRule.model_validate({
            "_id": "r9",
            "trade_id": 42,
            "name": "",
            "condition_type": "PL_USD",
            "condition_value": -20,
        })
        assert rule.id == "r9"
        assert rule.position_id == "42"
        assert rule.name == "Alert"
        assert rule.condition_type == ConditionType.PL_USD
        assert rule.is_armed


class TestValuate:
    """P/L arithmetic."""

    def test_long_in_profit(self, make_position):
        """LONG 100 -> 110 with 50 x 4 is +10% / +20."""
        v = svc.valuate(make_position(), 110.0)
        assert v.pl_percent == pytest.approx(10.0)
        assert v.pl_usd == pytest.approx(20.0)
        assert v.price == 110.0

    def test_short_in_profit(self, make_position):
        """SHORT 100 -> 90 with 50 x 4 is +10% / +20."""
        v = svc.valuate(make_position(side="SHORT", take_profit=90, stop_loss=105), 90.0)
        assert v.pl_percent == pytest.approx(10.0)
        assert v.pl_usd == pytest.approx(20.0)

    def test_short_in_loss(self, make_position):
        v = svc.valuate(make_position(side="SHORT", take_profit=90, stop_loss=105), 104.0)
        assert v.pl_percent == pytest.approx(-4.0)
        assert v.pl_usd == pytest.approx(-8.0)

    def test_zero_entry_price_yields_zero(self, make_position):
        """An entry price of 0 does not divide by zero."""
        v = svc.valuate(make_position(entry_price=0), 123.0)
        assert v.pl_percent == 0.0
        assert v.pl_usd == 0.0

    def test_as_update_fields(self, make_position):
        update = svc.valuate(make_position(), 105.0).as_update()
        assert set(update) == {"current_price", "profit_loss_percentage", "profit_loss_usd"}
        assert update["current_price"] == 105.0


class TestPriceResolution:
    """Stream price, then persisted current_price, then entry price."""

    def test_stream_price_wins(self, make_position, tick):
        p = make_position(current_price=101.0)
        prices = {"BTC/USDT": tick("BTC/USDT", 103.0)}
        assert svc.stream_price(p, prices) == 103.0
        assert svc.known_price(p, prices) == 103.0
        assert svc.latest_price(p, prices) == 103.0

    def test_falls_back_to_current_price(self, make_position):
        p = make_position(current_price=101.0)
        assert svc.stream_price(p, {}) is None
        assert svc.known_price(p, {}) == 101.0

    def test_latest_falls_back_to_entry(self, make_position):
        p = make_position()
        assert svc.known_price(p, {}) is None
        assert svc.latest_price(p, {}) == 100.0


class TestDetectCrossing:
    """TP/SL detection with the 1 bp tolerance band."""

    def test_long_tp_within_tolerance(self, make_position):
        """99.99 counts as reaching a take profit of 100."""
        p = make_position(entry_price=90, take_profit=100, stop_loss=None)
        assert svc.detect_crossing(p, 99.99) == PositionStatus.TAKE_PROFIT_HIT

    def test_long_tp_outside_tolerance(self, make_position):
        p = make_position(entry_price=90, take_profit=100, stop_loss=None)
        assert svc.detect_crossing(p, 99.98) is None

    def test_long_sl(self, make_position):
        p = make_position()
        assert svc.detect_crossing(p, 95.0) == PositionStatus.STOP_LOSS_HIT
        assert svc.detect_crossing(p, 94.0) == PositionStatus.STOP_LOSS_HIT
        assert svc.detect_crossing(p, 96.0) is None

    def test_short_targets(self, make_position):
        p = make_position(side="SHORT", take_profit=90, stop_loss=105)
        assert svc.detect_crossing(p, 90.005) == PositionStatus.TAKE_PROFIT_HIT
        assert svc.detect_crossing(p, 104.99) == PositionStatus.STOP_LOSS_HIT
        assert svc.detect_crossing(p, 100.0) is None

    def test_take_profit_wins_when_both_hit(self, make_position):
        p = make_position(take_profit=100, stop_loss=101)
        assert svc.detect_crossing(p, 100.5) == PositionStatus.TAKE_PROFIT_HIT

    def test_no_targets_never_crosses(self, make_position):
        p = make_position(take_profit=None, stop_loss=None)
        assert svc.detect_crossing(p, 1_000_000.0) is None


class TestProgressAndSummary:

    def test_progress_toward_take_profit(self, make_position):
        assert svc.progress_to_target(make_position(), 107.0) == pytest.approx(70.0)

    def test_progress_toward_stop_loss(self, make_position):
        assert svc.progress_to_target(make_position(), 96.5) == pytest.approx(70.0)

    def test_progress_without_target_is_zero(self, make_position):
        assert svc.progress_to_target(make_position(take_profit=None), 107.0) == 0.0

    def test_open_pl_ignores_inactive(self, make_position, tick):
        positions = [
            make_position(id="a"),
            make_position(id="b", pair="ETH/USDT", side="SHORT", take_profit=90, stop_loss=110),
            make_position(id="c", status="CLOSED"),
        ]
        prices = {"BTC/USDT": tick("BTC/USDT", 105.0), "ETH/USDT": tick("ETH/USDT", 95.0)}
        # +10 on each open position
        assert svc.open_pl_usd(positions, prices) == pytest.approx(20.0)
