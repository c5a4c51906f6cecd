"""
Pytest configuration and shared fakes for the position monitor tests.
"""

import time
from datetime import datetime
from typing import Any, Dict, List, Optional

import pytest

from position_monitor.core.domain.entities.alert_rule_entity import AlertRule
from position_monitor.core.domain.entities.notification_entity import Notification
from position_monitor.core.domain.entities.position_entity import Position
from position_monitor.core.domain.entities.price_tick_entity import PriceTick
from position_monitor.core.domain.exceptions import InvalidDocumentError, PersistenceError
from position_monitor.core.ports.navigator import Navigator
from position_monitor.core.ports.system_notifier import SystemNotifier
from position_monitor.core.repositories.alert_rule_repository import AlertRuleRepository
from position_monitor.core.repositories.position_repository import PositionRepository


class FakePositionRepository(PositionRepository):
    """In-memory positions; `fail_next` makes the next N writes raise PersistenceError."""

    def __init__(self, positions: Optional[List[Position]] = None):
        self.positions: Dict[str, Position] = {p.id: p for p in (positions or [])}
        self.updates: List[tuple] = []
        self.fail_next = 0
        self.fail_lists = False
        self.corrupt_ids: set = set()

    async def ensure_indexes(self) -> None:
        return None

    async def list_active(self) -> List[Position]:
        if self.fail_lists:
            raise PersistenceError("list_active", None, "store offline")
        return [p for p in self.positions.values() if p.is_active]

    async def get_by_id(self, position_id: str) -> Optional[Position]:
        if position_id in self.corrupt_ids:
            raise InvalidDocumentError("positions", position_id, "entry_price missing")
        return self.positions.get(position_id)

    async def update_partial(self, position_id: str, fields: Dict[str, Any]) -> None:
        if self.fail_next > 0:
            self.fail_next -= 1
            raise PersistenceError("update_partial", position_id, "store offline")
        self.updates.append((position_id, dict(fields)))
        if position_id in self.positions:
            self.positions[position_id] = self.positions[position_id].with_updates(fields)

    def status_writes(self, position_id: str) -> List[Dict[str, Any]]:
        return [f for pid, f in self.updates if pid == position_id and "status" in f]


class FakeAlertRuleRepository(AlertRuleRepository):

    def __init__(self, rules: Optional[List[AlertRule]] = None):
        self.rules: Dict[str, AlertRule] = {r.id: r for r in (rules or [])}
        self.deactivations: List[tuple] = []
        self.fail_next = 0

    async def ensure_indexes(self) -> None:
        return None

    async def list_active_rules(self) -> List[AlertRule]:
        return [r for r in self.rules.values() if r.is_armed]

    async def deactivate(self, rule_id: str, triggered_at: datetime) -> None:
        if self.fail_next > 0:
            self.fail_next -= 1
            raise PersistenceError("deactivate", rule_id, "store offline")
        self.deactivations.append((rule_id, triggered_at))
        if rule_id in self.rules:
            self.rules[rule_id] = self.rules[rule_id].model_copy(
                update={"is_active": False, "triggered_at": triggered_at}
            )


class RecordingNavigator(Navigator):

    def __init__(self):
        self.visited: List[str] = []

    def go_to_position(self, position_id: str) -> None:
        self.visited.append(position_id)


class RecordingNotifier(SystemNotifier):

    def __init__(self, enabled: bool = True, fail: bool = False):
        self._enabled = enabled
        self.fail = fail
        self.sent: List[Notification] = []

    @property
    def enabled(self) -> bool:
        return self._enabled

    async def notify(self, notification: Notification) -> None:
        if self.fail:
            raise RuntimeError("push service down")
        self.sent.append(notification)


@pytest.fixture
def make_position():
    def _make(**overrides) -> Position:
        doc = {
            "id": "p1",
            "pair": "BTC/USDT",
            "side": "LONG",
            "entry_price": 100.0,
            "margin": 50.0,
            "leverage": 4,
            "take_profit": 110.0,
            "stop_loss": 95.0,
            "status": "ACTIVE",
        }
        doc.update(overrides)
        return Position.model_validate(doc)
    return _make


@pytest.fixture
def make_rule():
    def _make(**overrides) -> AlertRule:
        doc = {
            "id": "r1",
            "position_id": "p1",
            "name": "Watch BTC",
            "condition_type": "pl_percentage",
            "condition_value": 5.0,
            "is_active": True,
            "triggered_at": None,
        }
        doc.update(overrides)
        return AlertRule.model_validate(doc)
    return _make


@pytest.fixture
def tick():
    def _tick(pair: str, price: float) -> PriceTick:
        return PriceTick(
            symbol=pair,
            price=price,
            high=price,
            low=price,
            change24h=0.0,
            change24h_abs=0.0,
            received_at=int(time.time() * 1000),
        )
    return _tick


@pytest.fixture
def position_repo_factory():
    return FakePositionRepository


@pytest.fixture
def rule_repo_factory():
    return FakeAlertRuleRepository


@pytest.fixture
def navigator():
    return RecordingNavigator()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def notifier_factory():
    return RecordingNotifier
