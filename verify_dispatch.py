import asyncio
import time
import subprocess
import httpx
import sys
import os
import signal

BASE_URL = "http://127.0.0.1:8000"
API_PREFIX = "/v1"

DRIVER_PROFILE = {
    "name": "Smoke Driver",
    "phone": "+919800000555",
    "email": "smoke@vahaka.test",
    "vehicle": {"make": "Tata", "model": "Tigor", "year": 2023, "color": "Grey", "plateNumber": "KA51SM0555"},
    "license": {"number": "KA5120200000555", "expiryDate": "2033-06-30"},
}
PICKUP = {"latitude": 12.9716, "longitude": 77.5946, "address": "MG Road"}
DESTINATION = {"latitude": 12.9352, "longitude": 77.6245, "address": "Koramangala"}


def wait_for_server(retries=10, delay=2):
    url = f"{BASE_URL}/health"
    print(f"Waiting for server at {url}...")
    for i in range(retries):
        try:
            resp = httpx.get(url)
            if resp.status_code == 200:
                print("✅ Server is up!")
                return True
        except httpx.ConnectError:
            pass
        time.sleep(delay)
    print("❌ Server failed to start.")
    return False


def start_server():
    return subprocess.Popen(
        [sys.executable, "-m", "uvicorn", "vahaka.app.main:app", "--host", "127.0.0.1", "--port", "8000"],
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        env=os.environ.copy()
    )


def stop_server(proc):
    proc.send_signal(signal.SIGTERM)
    proc.wait()


def expect(resp, status_code, step):
    if resp.status_code != status_code:
        print(f"❌ {step} failed: {resp.status_code} {resp.text}")
        raise Exception(f"{step} failed")
    print(f"✅ {step}")
    return resp.json()


def register_driver(client):
    driver = expect(client.post(f"{API_PREFIX}/drivers", json=DRIVER_PROFILE), 201, "Driver registered")
    driver_id = driver["id"]
    expect(client.patch(f"{API_PREFIX}/drivers/{driver_id}", json={"status": "approved"}), 200, "Driver approved")
    expect(
        client.put(f"{API_PREFIX}/drivers/{driver_id}/location", json={"latitude": 12.972, "longitude": 77.595}),
        200,
        "Location reported"
    )
    expect(
        client.put(f"{API_PREFIX}/drivers/{driver_id}/availability", json={"available": True}),
        200,
        "Driver available"
    )
    return driver_id


async def race_for_driver(trip_ids, driver_id):
    """Fire every assignment at once; exactly one may win."""
    async with httpx.AsyncClient(base_url=BASE_URL) as client:
        responses = await asyncio.gather(*(
            client.post(f"{API_PREFIX}/trips/{trip_id}/assign", json={"candidateDriverIds": [driver_id]})
            for trip_id in trip_ids
        ))
    return [resp.status_code for resp in responses]


def run_verification():
    # 1. Start Server
    print("\n--- [Step 1] Starting Server ---")
    proc = start_server()

    try:
        if not wait_for_server():
            server_logs = proc.communicate(timeout=2)
            print("Server Stdout:", server_logs[0].decode())
            print("Server Stderr:", server_logs[1].decode())
            raise Exception("Server start failed")

        with httpx.Client(base_url=BASE_URL) as client:
            # 2. Driver onboarding
            print("\n--- [Step 2] Onboarding Driver ---")
            driver_id = register_driver(client)

            # 3. Concurrent booking race
            print("\n--- [Step 3] Racing Three Bookings For One Driver ---")
            trip_ids = [
                expect(
                    client.post(
                        f"{API_PREFIX}/trips",
                        json={"riderId": f"smoke-rider-{i}", "pickup": PICKUP, "destination": DESTINATION}
                    ),
                    201,
                    f"Trip {i} requested"
                )["id"]
                for i in range(3)
            ]
            statuses = asyncio.run(race_for_driver(trip_ids, driver_id))
            print(f"Assignment results: {statuses}")
            if statuses.count(200) != 1 or statuses.count(409) != 2:
                raise Exception("Driver was double-booked or never booked")
            print("✅ Exactly one booking reserved the driver")
            winner = trip_ids[statuses.index(200)]

            # 4. Lifecycle
            print("\n--- [Step 4] Driving The Trip ---")
            expect(client.post(f"{API_PREFIX}/trips/{winner}/start"), 200, "Trip started")
            expect(client.post(f"{API_PREFIX}/trips/{winner}/complete"), 200, "Trip completed")
    finally:
        print("\n--- [Step 5] Stopping Server ---")
        stop_server(proc)

    time.sleep(2)  # Wait for port release

    # 5. Restart and confirm state survived
    print("\n--- [Step 6] Restarting Server (Persistence Check) ---")
    proc2 = start_server()
    try:
        if not wait_for_server():
            raise Exception("Server restart failed")

        with httpx.Client(base_url=BASE_URL) as client:
            driver = expect(client.get(f"{API_PREFIX}/drivers/{driver_id}"), 200, "Driver fetched")
            if driver["availability"] is not True or driver["currentTrip"] is not None or driver["totalTrips"] != 1:
                print(f"❌ Unexpected driver state: {driver}")
                raise Exception("Driver state not persisted")
            print("✅ Driver released and trip counted after restart")
    finally:
        print("\n--- [Step 7] Stopping Server ---")
        stop_server(proc2)


if __name__ == "__main__":
    run_verification()
