"""
Tests for core/usecases/monitor_thresholds_use_case.py
"""
import asyncio

from position_monitor.core.domain.entities.notification_entity import Notification
from position_monitor.core.domain.enums.position_enums import NotificationKind, PositionStatus
from position_monitor.core.services.notification_manager import NotificationManager
from position_monitor.core.usecases.monitor_thresholds_use_case import MonitorThresholdsUseCase


def _monitor(repo, bg_delay: float = 30.0):
    manager = NotificationManager(dismiss_after_sec=60)
    monitor = MonitorThresholdsUseCase(repo, manager, background_update_delay_sec=bg_delay)
    return monitor, manager


class TestTriggers:
    """TP/SL crossings are persisted and notified exactly once."""

    def test_single_trigger_across_passes(self, make_position, position_repo_factory, tick):
        async def scenario():
            position = make_position()
            repo = position_repo_factory([position])
            monitor, manager = _monitor(repo)
            prices = {"BTC/USDT": tick("BTC/USDT", 111.0)}

            assert await monitor.execute_once([position], prices) == 1
            assert monitor.is_in_flight("p1")
            # overlapping pass while the write is pending
            assert await monitor.execute_once([position], prices) == 0
            await monitor.wait_idle()

            # stale snapshot still says ACTIVE
            assert await monitor.execute_once([position], prices) == 0
            await monitor.wait_idle()

            writes = repo.status_writes("p1")
            assert len(writes) == 1
            assert writes[0]["status"] == "TAKE_PROFIT_HIT"
            assert writes[0]["current_price"] == 111.0
            assert monitor.is_terminal("p1")
            assert not monitor.is_in_flight("p1")

            n = manager.get(Notification.tp_sl_id("p1", PositionStatus.TAKE_PROFIT_HIT))
            assert n is not None
            assert n.kind == NotificationKind.TP_SL
            assert n.title == "Take Profit hit!"
            assert n.payload["position"]["status"] == "TAKE_PROFIT_HIT"

            await monitor.teardown()
            await manager.teardown()

        asyncio.run(scenario())

    def test_stop_loss_trigger(self, make_position, position_repo_factory, tick):
        async def scenario():
            position = make_position()
            repo = position_repo_factory([position])
            monitor, manager = _monitor(repo)

            await monitor.execute_once([position], {"BTC/USDT": tick("BTC/USDT", 94.0)})
            await monitor.wait_idle()

            assert repo.status_writes("p1")[0]["status"] == "STOP_LOSS_HIT"
            assert manager.get("position-p1-STOP_LOSS_HIT").title == "Stop Loss hit!"
            await monitor.teardown()
            await manager.teardown()

        asyncio.run(scenario())

    def test_failed_write_is_retried(self, make_position, position_repo_factory, tick):
        """A failed trigger write clears in-flight so the next pass tries again."""
        async def scenario():
            position = make_position()
            repo = position_repo_factory([position])
            repo.fail_next = 1
            monitor, manager = _monitor(repo)
            prices = {"BTC/USDT": tick("BTC/USDT", 111.0)}

            await monitor.execute_once([position], prices)
            await monitor.wait_idle()
            assert not monitor.is_in_flight("p1")
            assert not monitor.is_terminal("p1")
            assert repo.status_writes("p1") == []
            assert manager.active() == []

            assert await monitor.execute_once([position], prices) == 1
            await monitor.wait_idle()
            assert len(repo.status_writes("p1")) == 1
            assert len(manager.active()) == 1
            await monitor.teardown()
            await manager.teardown()

        asyncio.run(scenario())

    def test_no_stream_price_is_skipped(self, make_position, position_repo_factory):
        """The persisted current_price is never used to detect a crossing."""
        async def scenario():
            position = make_position(current_price=120.0)
            repo = position_repo_factory([position])
            monitor, manager = _monitor(repo)

            assert await monitor.execute_once([position], {}) == 0
            assert monitor.pending_timers == 0
            assert repo.updates == []
            await monitor.teardown()

        asyncio.run(scenario())

    def test_inactive_positions_are_ignored(self, make_position, position_repo_factory, tick):
        async def scenario():
            position = make_position(status="STOP_LOSS_HIT")
            repo = position_repo_factory([position])
            monitor, manager = _monitor(repo)

            assert await monitor.execute_once([position], {"BTC/USDT": tick("BTC/USDT", 200.0)}) == 0
            assert monitor.pending_timers == 0
            await monitor.teardown()

        asyncio.run(scenario())

    def test_mark_terminal_stops_watching(self, make_position, position_repo_factory, tick):
        async def scenario():
            position = make_position()
            repo = position_repo_factory([position])
            monitor, manager = _monitor(repo)
            prices = {"BTC/USDT": tick("BTC/USDT", 105.0)}

            await monitor.execute_once([position], prices)
            assert monitor.has_background_update("p1")

            monitor.mark_terminal("p1")
            assert not monitor.has_background_update("p1")
            prices["BTC/USDT"] = tick("BTC/USDT", 111.0)
            assert await monitor.execute_once([position], prices) == 0

            monitor.release_terminal("p1")
            assert await monitor.execute_once([position], prices) == 1
            await monitor.wait_idle()
            await monitor.teardown()
            await manager.teardown()

        asyncio.run(scenario())


class TestBackgroundUpdates:
    """Non-triggering positions get one delayed revaluation write."""

    def test_one_timer_per_position(self, make_position, position_repo_factory, tick):
        async def scenario():
            position = make_position()
            repo = position_repo_factory([position])
            monitor, _ = _monitor(repo)
            prices = {"BTC/USDT": tick("BTC/USDT", 105.0)}

            for _ in range(5):
                await monitor.execute_once([position], prices)
            assert monitor.pending_timers == 1
            await monitor.teardown()

        asyncio.run(scenario())

    def test_persists_latest_price_when_due(self, make_position, position_repo_factory, tick):
        async def scenario():
            position = make_position()
            repo = position_repo_factory([position])
            monitor, _ = _monitor(repo, bg_delay=0.05)
            prices = {"BTC/USDT": tick("BTC/USDT", 105.0)}

            await monitor.execute_once([position], prices)
            prices["BTC/USDT"] = tick("BTC/USDT", 106.0)
            await asyncio.sleep(0.15)
            await monitor.wait_idle()

            assert len(repo.updates) == 1
            pid, fields = repo.updates[0]
            assert pid == "p1"
            assert "status" not in fields
            assert fields["current_price"] == 106.0
            assert fields["profit_loss_usd"] > 0
            assert not monitor.has_background_update("p1")
            assert not monitor.is_in_flight("p1")

            # next pass schedules the following update
            await monitor.execute_once([position], prices)
            assert monitor.has_background_update("p1")
            await monitor.teardown()

        asyncio.run(scenario())

    def test_trigger_cancels_background_update(self, make_position, position_repo_factory, tick):
        async def scenario():
            position = make_position()
            repo = position_repo_factory([position])
            monitor, manager = _monitor(repo, bg_delay=0.05)
            prices = {"BTC/USDT": tick("BTC/USDT", 105.0)}

            await monitor.execute_once([position], prices)
            prices["BTC/USDT"] = tick("BTC/USDT", 112.0)
            await monitor.execute_once([position], prices)
            await monitor.wait_idle()
            assert not monitor.has_background_update("p1")

            await asyncio.sleep(0.1)
            await monitor.wait_idle()
            assert len(repo.updates) == 1
            assert repo.updates[0][1]["status"] == "TAKE_PROFIT_HIT"
            await monitor.teardown()
            await manager.teardown()

        asyncio.run(scenario())

    def test_positions_leaving_the_set_lose_their_timer(self, make_position, position_repo_factory, tick):
        async def scenario():
            position = make_position()
            monitor, _ = _monitor(position_repo_factory([position]))
            prices = {"BTC/USDT": tick("BTC/USDT", 105.0)}

            await monitor.execute_once([position], prices)
            assert monitor.pending_timers == 1
            await monitor.execute_once([], prices)
            assert monitor.pending_timers == 0
            await monitor.teardown()

        asyncio.run(scenario())

    def test_teardown_leaves_no_timers(self, make_position, position_repo_factory, tick):
        """Three watched positions, then teardown: zero pending timers."""
        async def scenario():
            positions = [
                make_position(id="a"),
                make_position(id="b", pair="ETH/USDT"),
                make_position(id="c", pair="SOL/USDT"),
            ]
            monitor, _ = _monitor(position_repo_factory(positions))
            prices = {p.pair: tick(p.pair, 101.0) for p in positions}

            await monitor.execute_once(positions, prices)
            assert monitor.pending_timers == 3

            await monitor.teardown()
            assert monitor.pending_timers == 0
            assert not monitor.is_terminal("a")

        asyncio.run(scenario())
