from __future__ import annotations

import argparse
import random
import time

import httpx

DAY_STATUSES = ["on-site", "remote", "direct-commute", "direct-return"]


def main() -> None:
    p = argparse.ArgumentParser(description="Simulate employees clocking in, moving around and clocking out")
    p.add_argument("--api", default="http://localhost:8000", help="API base URL")
    p.add_argument("--username", default="admin")
    p.add_argument("--password", default="admin12345")
    p.add_argument("--employees", type=int, default=3, help="Number of employees to drive")
    p.add_argument("--steps", type=int, default=5, help="Status changes per employee before clock-out")
    p.add_argument("--interval", type=float, default=2.0, help="Seconds between requests")
    args = p.parse_args()

    with httpx.Client(base_url=args.api, timeout=10.0) as client:
        r = client.post("/v1/auth/login", json={"username": args.username, "password": args.password})
        r.raise_for_status()
        headers = {"authorization": f"Bearer {r.json()['token']}"}

        employees = client.get("/v1/employees", headers=headers)
        employees.raise_for_status()
        ids = [e["id"] for e in employees.json() if e["isActive"]][: args.employees]
        if not ids:
            raise SystemExit("No active employees; POST /v1/dev/seed first")

        print(f"Connected to {args.api} as {args.username}. Driving employees {ids}...")
        for employee_id in ids:
            rr = client.post(
                "/v1/attendance/clock-in",
                headers=headers,
                json={"employeeId": employee_id, "status": "on-site", "clockInLocation": "HQ"},
            )
            if rr.status_code == 400:
                print(f"clock-in {employee_id}: {rr.json()['message']}")
            else:
                rr.raise_for_status()
                print(f"clock-in {employee_id}")
            time.sleep(args.interval)

        for _ in range(args.steps):
            employee_id = random.choice(ids)
            status = random.choice(DAY_STATUSES)
            rr = client.post(f"/v1/employees/{employee_id}/status", headers=headers, json={"status": status})
            rr.raise_for_status()
            print(f"status {employee_id}: {status}")
            time.sleep(args.interval)

        for employee_id in ids:
            rr = client.post("/v1/attendance/clock-out", headers=headers, json={"employeeId": employee_id})
            if rr.status_code == 400:
                print(f"clock-out {employee_id}: {rr.json()['message']}")
            else:
                rr.raise_for_status()
                print(f"clock-out {employee_id}: {rr.json()['workHours']} min")
            time.sleep(args.interval)


if __name__ == "__main__":
    main()
