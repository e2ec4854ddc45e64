import pytest

from notifications import DispatchEvent, NotificationRegistry, RegistryNotifier, driver_channel, rider_channel


@pytest.mark.asyncio
async def test_publish_reaches_only_the_channel():
    registry = NotificationRegistry()
    notifier = RegistryNotifier(registry)

    async with registry.listen(driver_channel("d1")) as d1, registry.listen(rider_channel("r1")) as r1:
        await notifier.notify_driver("d1", DispatchEvent("ride_offer", "ride-1", "requested", data={"x": 1}))
        await notifier.notify_rider("r1", DispatchEvent("ride_matched", "ride-1", "matched", "on the way"))

        driver_msg = await d1.get(timeout=1)
        assert driver_msg == {"type": "ride_offer", "ride_id": "ride-1", "status": "requested", "x": 1, "driver_id": "d1"}
        rider_msg = await r1.get(timeout=1)
        assert rider_msg["type"] == "ride_matched"
        assert rider_msg["message"] == "on the way"
        assert d1.queue.empty() and r1.queue.empty()


@pytest.mark.asyncio
async def test_listen_cleans_up_subscription():
    registry = NotificationRegistry()
    async with registry.listen("rider_r1"):
        assert registry.subscriber_count("rider_r1") == 1
    assert registry.subscriber_count("rider_r1") == 0
    assert registry.channels() == []


@pytest.mark.asyncio
async def test_full_queue_drops_instead_of_blocking():
    registry = NotificationRegistry(max_queue_size=1)
    subscription = registry.subscribe("driver_d1")

    assert registry.publish("driver_d1", {"type": "a"}) == 1
    assert registry.publish("driver_d1", {"type": "b"}) == 0
    assert subscription.dropped == 1
    assert (await subscription.get(timeout=1))["type"] == "a"


def test_publish_without_listeners():
    assert NotificationRegistry().publish("nobody", {"type": "x"}) == 0
