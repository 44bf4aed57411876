"""
Shift persistence check across a server restart.

Starts the API, checks a seeded driver in, restarts the API and verifies
the open shift is resumed from the database before checking out.
Run ``python dutylink/seed_drivers.py`` first and pass the printed worker ID.
"""

import time
import subprocess
import httpx
import sys
import os
import signal

from dutylink.app.core.jwt import create_access_token

BASE_URL = "http://127.0.0.1:8000"
API_PREFIX = "/v1"
SERVER_CMD = [sys.executable, "-m", "uvicorn", "dutylink.app.main:app", "--host", "127.0.0.1", "--port", "8000"]


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


def stop(proc):
    proc.send_signal(signal.SIGTERM)
    proc.wait()


def run_verification(worker_id: int):
    token = create_access_token(data={"sub": f"driver-{worker_id}", "user_id": worker_id})
    headers = {"Authorization": f"Bearer {token}"}

    # 1. Start Server (First Run)
    print("\n--- [Step 1] Starting Server (Initial) ---")
    proc = subprocess.Popen(
        SERVER_CMD,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        env={**os.environ, "DB_ECHO": "True"}
    )

    try:
        if not wait_for_server():
            server_logs = proc.communicate(timeout=2)
            print("Server Stdout:", server_logs[0].decode())
            print("Server Stderr:", server_logs[1].decode())
            raise Exception("Server start failed")

        # 2. Check in
        print("\n--- [Step 2] Checking In ---")
        resp = httpx.post(f"{BASE_URL}{API_PREFIX}/driver/shift/check-in",
                          json={"start_odometer": 10000}, headers=headers)
        if resp.status_code == 201:
            print("✅ Shift opened", resp.json())
        elif resp.status_code == 409:
            print("⚠️ Shift already open (left over from a previous run?)")
        else:
            print(f"❌ Check-in Failed: {resp.status_code} {resp.text}")
            raise Exception("Check-in failed")
    finally:
        print("\n--- [Step 3] Stopping Server ---")
        stop(proc)

    time.sleep(2)  # Wait for port release

    # 3. Restart Server
    print("\n--- [Step 4] Restarting Server (Verification) ---")
    proc2 = subprocess.Popen(SERVER_CMD, stdout=subprocess.PIPE, stderr=subprocess.PIPE)

    try:
        if not wait_for_server():
            raise Exception("Server restart failed")

        print("\n--- [Step 5] Resuming Shift (Post-Restart) ---")
        resp = httpx.get(f"{BASE_URL}{API_PREFIX}/driver/shift", headers=headers)
        state = resp.json().get("state")
        if resp.status_code != 200 or state != "ON_DUTY":
            print(f"❌ Open shift not resumed: {resp.status_code} {resp.text}")
            raise Exception("Shift lost after restart")
        print("✅ Shift resumed", resp.json())

        print("\n--- [Step 6] Checking Out ---")
        start = resp.json()["shift"]["start_odometer"]
        resp = httpx.post(f"{BASE_URL}{API_PREFIX}/driver/shift/check-out",
                          json={"end_odometer": start + 42}, headers=headers)
        if resp.status_code == 200:
            print("✅ Shift closed", resp.json())
        else:
            print(f"❌ Check-out Failed: {resp.status_code} {resp.text}")
    finally:
        print("\n--- [Step 7] Stopping Server ---")
        stop(proc2)


if __name__ == "__main__":
    run_verification(int(sys.argv[1]) if len(sys.argv) > 1 else 1)
