from locust import HttpUser, task, between
import random
import uuid

BASE_LAT = 37.7749
BASE_LON = -122.4194


def jitter(spread=0.03):
    return {
        "latitude": BASE_LAT + random.uniform(-spread, spread),
        "longitude": BASE_LON + random.uniform(-spread, spread),
    }


class DriverUser(HttpUser):
    """Registers once, goes online, then heartbeats and accepts nearby rides."""
    wait_time = between(1, 3)

    def on_start(self):
        suffix = uuid.uuid4().hex[:8]
        payload = {
            "first_name": "Load",
            "last_name": f"Driver {suffix}",
            "email": f"driver_{suffix}@load.test",
            "phone": "+15550000000",
            "vehicle_make": "Toyota",
            "vehicle_model": "Prius",
            "vehicle_color": "White",
            "license_plate": f"LD-{suffix}",
            "status": "active",
            "background_check_status": "approved",
            "location": jitter(),
        }
        self.driver_id = self.client.post("/drivers", json=payload).json()["id"]
        self.client.patch(f"/drivers/{self.driver_id}/status", json={"is_online": True})

    @task(5)
    def heartbeat(self):
        self.client.post(
            f"/drivers/{self.driver_id}/location",
            json={"location": jitter(), "heading": random.uniform(0, 359)},
        )

    @task(2)
    def accept_nearby_ride(self):
        position = jitter()
        res = self.client.get(
            f"/drivers/{self.driver_id}/available-rides",
            params=position,
            name="/drivers/[id]/available-rides",
        )
        if res.status_code != 200 or not res.json():
            return
        ride_id = res.json()[0]["id"]
        # 409 here means another driver won the race, which is expected under load
        with self.client.post(
            f"/rides/{ride_id}/accept",
            json={"driver_id": self.driver_id, "driver_location": position},
            name="/rides/[id]/accept",
            catch_response=True,
        ) as response:
            if response.status_code in (200, 409):
                response.success()
            else:
                response.failure(f"Failed with status {response.status_code}: {response.text}")
                return
        if response.status_code == 200:
            self.finish_ride(ride_id, response.json()["otp"])

    def finish_ride(self, ride_id, otp):
        for status in ("driver_en_route", "arrived", "in_progress", "completed"):
            body = {"driver_id": self.driver_id, "status": status}
            if status == "in_progress":
                body["otp"] = otp
            self.client.patch(f"/rides/{ride_id}/status", json=body, name="/rides/[id]/status")


class RiderUser(HttpUser):
    wait_time = between(2, 5)

    def on_start(self):
        suffix = uuid.uuid4().hex[:8]
        res = self.client.post("/riders", json={"name": f"Rider {suffix}", "email": f"rider_{suffix}@load.test"})
        self.rider_id = res.json()["id"]

    @task
    def request_ride(self):
        payload = {
            "rider_id": self.rider_id,
            "pickup": {"address": "Pickup", "coordinates": jitter()},
            "destination": {"address": "Destination", "coordinates": jitter(0.1)},
        }
        with self.client.post("/rides", json=payload, catch_response=True) as response:
            if response.status_code in (201, 409):
                response.success()
            else:
                response.failure(f"Failed with status {response.status_code}: {response.text}")
