#!/usr/bin/env python3
"""
Smoke Test Script

Exercises a running Vendor Relay deployment (API, worker and both mock vendors).
"""

import sys
import time
import uuid
from typing import Any, Dict, Optional

import requests

BASE_URL = "http://localhost:8000"


def check_health() -> bool:
    """Check the health endpoint"""
    print("Checking health...")
    try:
        response = requests.get(f"{BASE_URL}/health")
        print(f"Status: {response.status_code}")
        print(f"Response: {response.json()}")
        return response.status_code == 200
    except requests.RequestException as e:
        print(f"Error: {e}")
        return False


def create_job(payload: Dict[str, Any]) -> Optional[str]:
    """Submit a job and return its request_id"""
    print(f"Creating job with payload: {payload}")
    try:
        response = requests.post(f"{BASE_URL}/api/jobs", json={"payload": payload})
        print(f"Status: {response.status_code}")
        print(f"Response: {response.json()}")

        if response.status_code == 201:
            return response.json()["request_id"]
        return None
    except requests.RequestException as e:
        print(f"Error: {e}")
        return None


def get_job_status(request_id: str) -> Optional[Dict[str, Any]]:
    """Fetch the status document of a job"""
    print(f"Getting status for job: {request_id}")
    try:
        response = requests.get(f"{BASE_URL}/api/jobs/{request_id}/status")
        print(f"Status: {response.status_code}")
        print(f"Response: {response.json()}")
        return response.json() if response.status_code == 200 else None
    except requests.RequestException as e:
        print(f"Error: {e}")
        return None


def expect_status_code(method: str, path: str, expected: int, **kwargs) -> bool:
    response = requests.request(method, f"{BASE_URL}{path}", **kwargs)
    print(f"{method} {path} -> {response.status_code} {response.json()}")
    return response.status_code == expected


def wait_for_completion(request_id: str, timeout: float = 30.0) -> Optional[Dict[str, Any]]:
    """Poll until the job reaches a terminal status"""
    deadline = time.time() + timeout
    while time.time() < deadline:
        job = get_job_status(request_id)
        if job and job["status"] in ("complete", "failed"):
            return job
        time.sleep(2)
    return None


def main():
    """Run all checks"""
    print("Vendor Relay Service - Smoke Test")
    print("=" * 50)

    checks = [
        ("Health check", check_health),
        ("Missing payload is rejected", lambda: expect_status_code("POST", "/api/jobs", 400, json={})),
        ("Malformed id is rejected", lambda: expect_status_code("GET", "/api/jobs/not-a-uuid/status", 400)),
        ("Unknown job is 404", lambda: expect_status_code("GET", f"/api/jobs/{uuid.uuid4()}/status", 404)),
        ("Unknown vendor is rejected", lambda: expect_status_code("POST", "/api/vendor-webhook/nope", 400, json={"id": "x"})),
    ]
    for name, check in checks:
        print(f"\n{name}")
        print("-" * 30)
        if not check():
            print(f"FAILED: {name}")
            sys.exit(1)
        print(f"OK: {name}")

    print("\nJob lifecycle")
    print("-" * 30)
    request_id = create_job({"userId": 1, "query": "smoke"})
    if not request_id:
        print("FAILED: job creation")
        sys.exit(1)

    job = wait_for_completion(request_id)
    if not job:
        print("FAILED: job did not finish in time")
        sys.exit(1)
    print(f"Job finished with status {job['status']} via {job['vendor']}")

    print("\n" + "=" * 50)
    print("All checks passed")
    print("=" * 50)


if __name__ == "__main__":
    main()
