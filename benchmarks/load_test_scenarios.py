"""
Load testing scenarios menggunakan Locust.

Cara menjalankan:
  python -m leaselock node
  locust -f benchmarks/load_test_scenarios.py --host=http://localhost:5000
"""

from datetime import datetime, timedelta, timezone
from locust import HttpUser, task, between, events
import random
import time

from leaselock.core.records import to_iso_string


def now():
    return datetime.now(timezone.utc)


class ScheduledTaskUser(HttpUser):
    """
    Simulate fleet node yang berebut scheduled tasks.
    Sebagian besar acquire harus contended (409).
    """
    wait_time = between(0.5, 2.0)

    def on_start(self):
        """Called saat user start"""
        self.identity = f"node-{random.randint(1, 1000)}"
        self.jobs = [f"job_{i}" for i in range(10)]

    @task(5)
    def run_scheduled_job(self):
        """Acquire lease, 'kerjakan' job, lalu release"""
        job = random.choice(self.jobs)
        acquired_at = now()
        lock_until = acquired_at + timedelta(seconds=30)

        with self.client.post(
            "/api/lease/acquire",
            json={
                'name': job,
                'lock_until': to_iso_string(lock_until),
                'locked_at': to_iso_string(acquired_at),
                'locked_by': self.identity,
                'available_at': to_iso_string(acquired_at)
            },
            name="/api/lease/acquire",
            catch_response=True
        ) as response:
            if response.status_code == 200:
                response.success()
                time.sleep(random.uniform(0.1, 0.5))
                self.release(job, lock_until)
            elif response.status_code == 409:
                # Kalah race adalah hasil normal
                response.success()
            else:
                response.failure(f"HTTP {response.status_code}")

    def release(self, job, held_until):
        """Release dengan minimum holding period 1 detik"""
        floor = now() + timedelta(seconds=1)
        with self.client.post(
            "/api/lease/update",
            json={
                'name': job,
                'lock_until': to_iso_string(max(now(), floor)),
                'held_until': to_iso_string(held_until)
            },
            name="/api/lease/update",
            catch_response=True
        ) as response:
            if response.status_code in (200, 409):
                response.success()
            else:
                response.failure(f"HTTP {response.status_code}")

    @task(1)
    def check_lease(self):
        """Read satu lease record"""
        job = random.choice(self.jobs)
        with self.client.get(f"/api/lease/{job}", name="/api/lease/[name]", catch_response=True) as response:
            if response.status_code in (200, 404):
                response.success()

    @task(1)
    def check_status(self):
        """Check node status"""
        self.client.get("/api/status")


# Event handlers untuk custom metrics
@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("Load test starting...")


@events.test_stop.add_listener
def on_test_stop(environment, **kwargs):
    print("Load test complete!")
    print(f"Total requests: {environment.stats.total.num_requests}")
    print(f"Failure rate: {environment.stats.total.fail_ratio:.2%}")
