import pytest

from geo import GeoIndex, Point, bounding_box, haversine_meters, nearest
from models import RideDecline, Ride, REQUESTED, utcnow

from conftest import PICKUP, offset


def test_haversine_known_distance():
    # San Francisco -> Los Angeles is about 559 km
    sf = Point(37.7749, -122.4194)
    la = Point(34.0522, -118.2437)
    assert haversine_meters(sf, la) == pytest.approx(559_000, rel=0.01)
    assert haversine_meters(sf, sf) == 0


def test_bounding_box_contains_radius():
    center = Point(*PICKUP)
    min_lat, max_lat, min_lon, max_lon = bounding_box(center, 1000)
    north = Point(*offset(PICKUP, 999))
    assert min_lat < north.latitude < max_lat
    assert min_lon < center.longitude < max_lon


def test_nearest_orders_filters_and_caps():
    center = Point(*PICKUP)
    items = {
        "far": Point(*offset(PICKUP, 4000)),
        "near": Point(*offset(PICKUP, 100)),
        "mid": Point(*offset(PICKUP, 1500)),
        "outside": Point(*offset(PICKUP, 9000)),
        "nowhere": None,
    }
    hits = nearest(center, items, items.get, radius_meters=5000, limit=2)
    assert [h.entity for h in hits] == ["near", "mid"]
    assert hits[0].distance_meters <= hits[1].distance_meters

    hits = nearest(center, items, items.get, 5000, 10, predicate=lambda k: k != "near")
    assert [h.entity for h in hits] == ["mid", "far"]


def test_nearest_empty_when_nothing_in_range():
    assert nearest(Point(0, 0), ["a"], lambda _: Point(10, 10), 1000, 5) == []


@pytest.mark.asyncio
async def test_find_drivers_near_only_returns_eligible(test_db, make_driver):
    close = await make_driver(location=offset(PICKUP, 200))
    closer = await make_driver(location=offset(PICKUP, 50))
    await make_driver(location=offset(PICKUP, 100), online=False)
    await make_driver(location=offset(PICKUP, 100), background_check_status="pending")
    await make_driver(location=offset(PICKUP, 100), status="suspended")
    await make_driver(location=offset(PICKUP, 20_000))
    await make_driver(location=None)

    hits = await GeoIndex(test_db).find_drivers_near(Point(*PICKUP), 5000, 5)
    assert [h.entity.id for h in hits] == [closer.id, close.id]


@pytest.mark.asyncio
async def test_find_open_rides_skips_declined(test_db, make_rider, make_driver):
    driver = await make_driver()
    rides = []
    for meters in (300, 100):
        rider = await make_rider()
        lat, lon = offset(PICKUP, meters)
        ride = Ride(
            reference=f"RIDE_{meters}", rider_id=rider.id, status=REQUESTED, requested_at=utcnow(),
            pickup_address="A", pickup_lat=lat, pickup_lon=lon,
            destination_address="B", destination_lat=lat, destination_lon=lon,
        )
        test_db.add(ride)
        rides.append(ride)
    await test_db.commit()

    index = GeoIndex(test_db)
    hits = await index.find_open_rides_near(Point(*PICKUP), 5000, 10)
    assert [h.entity.reference for h in hits] == ["RIDE_100", "RIDE_300"]

    test_db.add(RideDecline(ride_id=rides[1].id, driver_id=driver.id))
    await test_db.commit()
    hits = await index.find_open_rides_near(Point(*PICKUP), 5000, 10, declined_by=driver.id)
    assert [h.entity.reference for h in hits] == ["RIDE_300"]
