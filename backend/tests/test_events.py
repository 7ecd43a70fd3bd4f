"""
Tests for realtime event publishing.

Tests verify:
- Event validation and serialization
- Channel naming per outlet and per order
- Publish retry and the publish breaker
- The shared Redis client
- Fan-out to staff and customer channels
- Background dispatch never raises
"""

import json

import pytest
import redis
from unittest.mock import AsyncMock, MagicMock, patch

from shared.infrastructure.events import (
    BreakerState,
    Event,
    ORDER_CREATED,
    ORDER_STATUS_UPDATED,
    PAYMENT_UPDATED,
    channel_order_customer,
    channel_outlet_staff,
    get_publish_breaker,
    publish_event,
    route_event,
)
from shared.infrastructure.events import redis_pool
from shared.infrastructure.events.circuit_breaker import MAX_RETRY_DELAY, PublishBreaker, backoff_delay
from pos_api.services.domain import PaymentService
from pos_api.services.events import RealtimeNotifier, dispatch_events
from pos_api.services.events.builders import order_created_event


def _event(**overrides):
    data = {"type": ORDER_CREATED, "outlet_id": 1, "order_id": 10, "entity": {"status": "NEW"}}
    data.update(overrides)
    return Event(**data)


def _fake_redis(subscribers=1):
    client = MagicMock()
    client.publish = AsyncMock(return_value=subscribers)
    return client


class TestEventSchema:
    def test_to_json_fills_timestamp(self):
        data = json.loads(_event().to_json())

        assert data["type"] == ORDER_CREATED
        assert data["outlet_id"] == 1
        assert data["order_id"] == 10
        assert data["ts"]
        assert data["v"] == 1

    def test_from_json(self):
        event = Event.from_json(_event(payment_id=3).to_json())
        assert event.payment_id == 3
        assert event.entity == {"status": "NEW"}

    @pytest.mark.parametrize(
        "overrides",
        [
            {"type": ""},
            {"outlet_id": 0},
            {"outlet_id": True},
            {"order_id": -1},
            {"payment_id": "7"},
            {"entity": ["not", "a", "dict"]},
        ],
    )
    def test_rejects_malformed(self, overrides):
        with pytest.raises(ValueError):
            _event(**overrides)


class TestChannels:
    def test_names(self):
        assert channel_outlet_staff(3) == "outlet:3:staff"
        assert channel_order_customer(42) == "order:42:customer"

    @pytest.mark.parametrize("bad", [0, -5, "1", None])
    def test_rejects_bad_ids(self, bad):
        with pytest.raises(ValueError):
            channel_outlet_staff(bad)


class TestPublishEvent:
    @pytest.mark.asyncio
    async def test_publishes_json(self):
        client = _fake_redis(subscribers=2)

        sent = await publish_event(client, "outlet:1:staff", _event())

        assert sent == 2
        channel, payload = client.publish.call_args.args
        assert channel == "outlet:1:staff"
        assert json.loads(payload)["order_id"] == 10

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self):
        client = _fake_redis()
        client.publish.side_effect = [redis.ConnectionError("reset"), 1]

        with patch("shared.infrastructure.events.publisher.asyncio.sleep", new=AsyncMock()) as sleep:
            sent = await publish_event(client, "outlet:1:staff", _event())

        assert sent == 1
        assert client.publish.await_count == 2
        sleep.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_breaker_drops_events_after_repeated_failures(self):
        client = _fake_redis()
        client.publish.side_effect = redis.RedisError("down")
        breaker = get_publish_breaker()

        with patch("shared.infrastructure.events.publisher.asyncio.sleep", new=AsyncMock()):
            while breaker.state == BreakerState.CLOSED:
                with pytest.raises(redis.RedisError):
                    await publish_event(client, "outlet:1:staff", _event())

            calls = client.publish.await_count
            sent = await publish_event(client, "outlet:1:staff", _event())

        assert sent == 0
        assert client.publish.await_count == calls
        assert breaker.snapshot()["dropped_events"] == 1

    @pytest.mark.asyncio
    async def test_oversized_event_rejected(self):
        client = _fake_redis()
        event = _event(entity={"note": "x" * (70 * 1024)})

        with pytest.raises(ValueError, match="exceeds max size"):
            await publish_event(client, "outlet:1:staff", event)
        client.publish.assert_not_awaited()


class TestPublishBreaker:
    def test_trial_success_closes(self):
        breaker = PublishBreaker(failure_threshold=1, recovery_seconds=0.0)
        breaker.failed()
        assert breaker.state == BreakerState.OPEN

        assert breaker.allow() is True
        assert breaker.state == BreakerState.TRIAL

        breaker.succeeded()
        assert breaker.state == BreakerState.CLOSED

    def test_only_one_trial_at_a_time(self):
        breaker = PublishBreaker(failure_threshold=1, recovery_seconds=0.0)
        breaker.failed()

        assert breaker.allow() is True
        assert breaker.allow() is False
        assert breaker.snapshot()["dropped_events"] == 1

    def test_trial_failure_reopens(self):
        breaker = PublishBreaker(failure_threshold=3, recovery_seconds=60.0)
        for _ in range(3):
            breaker.failed()
        breaker.recovery_seconds = 0.0
        assert breaker.allow() is True

        breaker.recovery_seconds = 60.0
        breaker.failed()

        assert breaker.state == BreakerState.OPEN
        assert breaker.allow() is False

    def test_success_resets_failure_count(self):
        breaker = PublishBreaker(failure_threshold=2, recovery_seconds=60.0)
        breaker.failed()
        breaker.succeeded()
        breaker.failed()

        assert breaker.state == BreakerState.CLOSED
        assert breaker.snapshot()["consecutive_failures"] == 1

    def test_retry_delay_is_capped(self):
        for attempt in range(10):
            delay = backoff_delay(attempt, base_delay=0.5)
            assert 0.5 <= delay <= MAX_RETRY_DELAY


class TestRedisClient:
    @pytest.mark.asyncio
    async def test_client_reused_until_closed(self):
        client = MagicMock()
        client.aclose = AsyncMock()

        with patch.object(redis_pool, "_client", None), \
                patch.object(redis_pool, "_build_client", return_value=client) as build:
            assert await redis_pool.get_redis_pool() is client
            assert await redis_pool.get_redis_pool() is client
            await redis_pool.close_redis_pool()
            await redis_pool.close_redis_pool()

        build.assert_called_once()
        client.aclose.assert_awaited_once()


class TestRouting:
    @pytest.mark.asyncio
    async def test_route_hits_staff_and_customer(self):
        client = _fake_redis()

        sent = await route_event(client, _event(outlet_id=4, order_id=9))

        assert sent == 2
        channels = [c.args[0] for c in client.publish.call_args_list]
        assert channels == ["outlet:4:staff", "order:9:customer"]

    @pytest.mark.asyncio
    async def test_event_without_order_stays_on_staff_channel(self):
        client = _fake_redis()

        await route_event(client, _event(order_id=None))

        channels = [c.args[0] for c in client.publish.call_args_list]
        assert channels == ["outlet:1:staff"]


class TestNotifier:
    @pytest.mark.asyncio
    async def test_publish_builds_and_routes(self):
        client = _fake_redis()
        notifier = RealtimeNotifier()

        with patch(
            "pos_api.services.events.notifier.get_redis_pool",
            new=AsyncMock(return_value=client),
        ):
            sent = await notifier.publish(2, PAYMENT_UPDATED, {"payment_status": "PAID"}, order_id=7)

        assert sent == 2
        payload = json.loads(client.publish.call_args_list[1].args[1])
        assert payload["type"] == PAYMENT_UPDATED
        assert payload["entity"] == {"payment_status": "PAID"}

    @pytest.mark.asyncio
    async def test_dispatch_continues_after_failure(self):
        notifier = MagicMock()
        notifier.publish_event = AsyncMock(side_effect=[RuntimeError("redis down"), 1])
        events = [_event(), _event(type=ORDER_STATUS_UPDATED)]

        await dispatch_events(notifier, events)

        assert notifier.publish_event.await_count == 2


class TestBuilders:
    def test_order_created_entity(self, place_qr_order):
        placed = place_qr_order()

        event = order_created_event(placed.order, placed.payment)

        assert event.outlet_id == 1
        assert event.order_id == placed.order.id
        assert event.payment_id == placed.payment.id
        assert event.entity["order_code"] == placed.order.order_code
        assert event.entity["total"] == 38000

    def test_confirmation_events_carry_previous_state(self, db_session, place_qr_order, cashier):
        placed = place_qr_order()

        result = PaymentService(db_session).confirm_payment(placed.payment.id, cashier)

        payment_event, status_event = result.events
        assert payment_event.entity["previous_payment_status"] == "PENDING"
        assert payment_event.entity["payment_status"] == "PAID"
        assert payment_event.actor == cashier
        assert status_event.entity["previous_status"] == "NEW"
        assert status_event.entity["status"] == "ACCEPTED"
