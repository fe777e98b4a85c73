"""End-to-end tests for the sale monitor over the in-memory node."""

import pytest

from crowdwatch.core.exceptions import BindingError, QueryError
from crowdwatch.infrastructure.blockchain import ManagerState
from crowdwatch.services.sale_monitor import SubscriptionState
from crowdwatch.services.notifications import TelegramCommandPoller
from crowdwatch.services.sale_monitor.monitor import SaleMonitor


@pytest.fixture
def monitor(settings, node, dispatcher):
    """Monitor wired to the fake node and in-memory sender."""
    return SaleMonitor(settings, connection_factory=node.connect, dispatcher=dispatcher)


def _subscribed(monitor, generation):
    return (
        monitor.connection.state == ManagerState.OPEN
        and monitor.subscriber.state == SubscriptionState.SUBSCRIBED
        and monitor.subscriber.handle.generation == generation
    )


class TestSaleMonitorSetup:
    """Tests for startup validation."""

    def test_bad_contract_address(self, settings, node, dispatcher):
        """Test a malformed contract address is fatal."""
        bad = settings.model_copy(update={"contract_address": "0xnot-an-address"})
        with pytest.raises(BindingError):
            SaleMonitor(bad, connection_factory=node.connect, dispatcher=dispatcher)

    def test_missing_event(self, settings, node, dispatcher):
        """Test an event the ABI does not declare is fatal."""
        bad = settings.model_copy(update={"purchase_event_name": "Nope"})
        with pytest.raises(BindingError):
            SaleMonitor(bad, connection_factory=node.connect, dispatcher=dispatcher)

    def test_missing_abi(self, settings, node, dispatcher, tmp_path):
        """Test a missing ABI file is fatal."""
        bad = settings.model_copy(update={"abi_dir": tmp_path})
        with pytest.raises(BindingError):
            SaleMonitor(bad, connection_factory=node.connect, dispatcher=dispatcher)


class TestSaleMonitor:
    """Tests for purchase forwarding across reconnects."""

    @pytest.mark.asyncio
    async def test_purchase_notified(self, monitor, node, sender, purchase_log, wait_until):
        """Test a purchase ends up as one formatted notification."""
        await monitor.start()
        await wait_until(lambda: _subscribed(monitor, 1))

        node.current.push(purchase_log(value=500000000000000000, amount=100000000))
        await wait_until(lambda: len(sender.sent) == 1)

        assert "0.5 BNB" in sender.sent[0]
        assert "100 TKN" in sender.sent[0]
        await monitor.stop()

    @pytest.mark.asyncio
    async def test_two_reconnects_then_one_event(
        self, monitor, node, sender, purchase_log, wait_until
    ):
        """Test one event after two reconnects is notified exactly once."""
        await monitor.start()
        await wait_until(lambda: _subscribed(monitor, 1))
        node.current.drop()
        await wait_until(lambda: _subscribed(monitor, 2))
        node.current.drop()
        await wait_until(lambda: _subscribed(monitor, 3))

        node.current.push(purchase_log())
        await wait_until(lambda: monitor.subscriber.stats.events_delivered == 1)
        await monitor.dispatcher.drain()

        assert len(sender.sent) == 1
        assert len(node.connections) == 3
        assert all(len(c.subscriptions) == 1 for c in node.connections)
        await monitor.stop()

    @pytest.mark.asyncio
    async def test_old_subscription_ignored(
        self, monitor, node, sender, purchase_log, wait_until
    ):
        """Test payloads tagged with a previous generation's id are dropped."""
        await monitor.start()
        await wait_until(lambda: _subscribed(monitor, 1))
        old_id = node.current.subscriptions[0]
        node.current.drop()
        await wait_until(lambda: _subscribed(monitor, 2))

        node.current.push(purchase_log(log_index=0), subscription_id=old_id)
        node.current.push(purchase_log(log_index=1))
        await wait_until(lambda: monitor.subscriber.stats.events_delivered == 1)
        await monitor.dispatcher.drain()

        assert len(sender.sent) == 1
        assert monitor.subscriber.stats.stale_skipped == 1
        await monitor.stop()

    @pytest.mark.asyncio
    async def test_order_preserved(self, monitor, node, sender, purchase_log, wait_until):
        """Test notifications follow event arrival order."""
        await monitor.start()
        await wait_until(lambda: _subscribed(monitor, 1))

        for amount in (1000000, 2000000, 3000000):
            node.current.push(purchase_log(amount=amount, log_index=amount))
        await wait_until(lambda: len(sender.sent) == 3)

        assert "1 TKN" in sender.sent[0]
        assert "2 TKN" in sender.sent[1]
        assert "3 TKN" in sender.sent[2]
        await monitor.stop()

    @pytest.mark.asyncio
    async def test_failed_subscribe_retried(self, monitor, node, wait_until):
        """Test a rejected subscription leads to a reconnect."""
        node.fail_subscribe = True
        await monitor.start()
        await wait_until(lambda: len(node.connections) >= 2)
        node.fail_subscribe = False
        await wait_until(lambda: monitor.subscriber.state == SubscriptionState.SUBSCRIBED)

        assert monitor.connection.state == ManagerState.OPEN
        await monitor.stop()

    @pytest.mark.asyncio
    async def test_purchase_guide(self, monitor, sender):
        """Test the guide is published with the contract address."""
        await monitor.dispatcher.start()

        assert monitor.publish_purchase_guide() is True
        await monitor.dispatcher.drain()

        assert monitor.contract_address in sender.sent[0]
        await monitor.dispatcher.stop()

    @pytest.mark.asyncio
    async def test_health(self, monitor, wait_until):
        """Test the health snapshot."""
        await monitor.start()
        await wait_until(lambda: _subscribed(monitor, 1))

        health = monitor.health()
        assert health["connection"]["state"] == "open"
        assert health["connection"]["generation"] == 1
        assert health["subscription"]["state"] == "subscribed"
        assert health["notifications"]["channel"] == "memory"
        await monitor.stop()

    @pytest.mark.asyncio
    async def test_stop(self, monitor, wait_until, sender):
        """Test stop closes the connection and the dispatcher."""
        await monitor.start()
        await wait_until(lambda: _subscribed(monitor, 1))

        await monitor.stop()

        assert monitor.connection.state == ManagerState.CLOSED
        assert monitor.subscriber.state == SubscriptionState.UNSUBSCRIBED
        assert sender.closed is True

    @pytest.mark.asyncio
    async def test_failing_status_read_isolated(
        self, monitor, node, sender, purchase_log, wait_until
    ):
        """Test a reverting status read does not stop purchase delivery."""
        node.failing_calls = {"rate"}
        await monitor.start()
        await wait_until(lambda: _subscribed(monitor, 1))

        with pytest.raises(QueryError):
            await monitor.status.rate()

        node.current.push(purchase_log(value=500000000000000000, amount=100000000))
        await wait_until(lambda: len(sender.sent) == 1)

        assert "0.5 BNB" in sender.sent[0]
        assert monitor.connection.state == ManagerState.OPEN
        assert monitor.connection.generation == 1
        await monitor.stop()


class TestSaleMonitorCommands:
    """Tests for the bot chat command replies."""

    def test_no_poller_without_telegram(self, monitor):
        """Test commands are not polled when Telegram is not configured."""
        assert monitor.command_poller is None

    def test_poller_built_when_configured(self, settings, node, dispatcher):
        """Test the poller answers the four commands when Telegram is set up."""
        configured = settings.model_copy(
            update={"telegram_bot_token": "123:abc", "telegram_chat_id": "-100"}
        )
        monitor = SaleMonitor(configured, connection_factory=node.connect, dispatcher=dispatcher)

        assert isinstance(monitor.command_poller, TelegramCommandPoller)
        assert set(monitor.command_poller.commands) == {"/start", "/help", "/guide", "/status"}

    def test_poller_disabled_by_setting(self, settings, node, dispatcher):
        """Test chat commands can be switched off."""
        configured = settings.model_copy(
            update={
                "telegram_bot_token": "123:abc",
                "telegram_chat_id": "-100",
                "telegram_commands_enabled": False,
            }
        )
        monitor = SaleMonitor(configured, connection_factory=node.connect, dispatcher=dispatcher)
        assert monitor.command_poller is None

    @pytest.mark.asyncio
    async def test_static_replies(self, monitor):
        """Test /start, /help and /guide replies."""
        handlers = monitor.command_handlers()

        assert "/help" in await handlers["/start"]()
        help_text = await handlers["/help"]()
        assert "Available Commands" in help_text
        for command in ("/start", "/help", "/guide", "/status"):
            assert command in help_text
        assert monitor.contract_address in await handlers["/guide"]()

    @pytest.mark.asyncio
    async def test_status_reply(self, monitor, wait_until):
        """Test /status reads the sale through the current connection."""
        await monitor.start()
        await wait_until(lambda: _subscribed(monitor, 1))

        text = await monitor.command_handlers()["/status"]()

        assert "Sale Status" in text
        assert "1.5 BNB" in text
        assert "250000 TKN" in text
        await monitor.stop()

    @pytest.mark.asyncio
    async def test_status_reply_on_query_error(self, monitor, node, wait_until):
        """Test /status answers with an error message when a read fails."""
        node.failing_calls = {"remainingTokens"}
        await monitor.start()
        await wait_until(lambda: _subscribed(monitor, 1))

        text = await monitor.command_handlers()["/status"]()

        assert text.startswith("Failed to fetch the sale status")
        await monitor.stop()

    @pytest.mark.asyncio
    async def test_status_reply_while_disconnected(self, monitor):
        """Test /status before any connection gives the error reply."""
        text = await monitor.command_handlers()["/status"]()
        assert text.startswith("Failed to fetch the sale status")
