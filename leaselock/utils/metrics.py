"""
Metrics collector menggunakan Prometheus.
File ini mengumpulkan data lease acquire/release, latency store,
dan resource usage dari lease store node.
"""

from prometheus_client import Counter, Histogram, Gauge, generate_latest
import time
import psutil


class MetricsCollector:
    """
    Class untuk mengumpulkan metrics sistem.
    Menggunakan Prometheus format untuk monitoring.
    """

    def __init__(self):
        # outcome: acquired, contended, failed
        self.lease_acquire_count = Counter(
            'lease_acquire_total',
            'Total number of lease acquire attempts',
            ['name', 'outcome']
        )

        # outcome: released, lost, failed
        self.lease_release_count = Counter(
            'lease_release_total',
            'Total number of lease releases',
            ['name', 'outcome']
        )

        self.store_latency = Histogram(
            'lease_store_latency_seconds',
            'Lease store request latency in seconds',
            ['operation']
        )

        # Lease store node HTTP requests
        self.request_count = Counter(
            'request_total',
            'Total number of requests',
            ['method', 'endpoint']
        )

        self.request_latency = Histogram(
            'request_latency_seconds',
            'Request latency in seconds',
            ['method', 'endpoint']
        )

        self.lease_records = Gauge(
            'lease_records',
            'Number of lease records held by this node'
        )

        # System metrics
        self.cpu_usage = Gauge('cpu_usage_percent', 'CPU usage percentage')
        self.memory_usage = Gauge('memory_usage_percent', 'Memory usage percentage')

    def record_acquire(self, name: str, outcome: str):
        self.lease_acquire_count.labels(name=name, outcome=outcome).inc()

    def record_release(self, name: str, outcome: str):
        self.lease_release_count.labels(name=name, outcome=outcome).inc()

    def record_store_latency(self, operation: str, duration: float):
        self.store_latency.labels(operation=operation).observe(duration)

    def record_request(self, method: str, endpoint: str, duration: float):
        """
        Record request metrics.

        Args:
            method: HTTP method (GET, POST, etc)
            endpoint: API endpoint
            duration: Request duration in seconds
        """
        self.request_count.labels(method=method, endpoint=endpoint).inc()
        self.request_latency.labels(method=method, endpoint=endpoint).observe(duration)

    def set_lease_records(self, count: int):
        """Update jumlah lease records di node"""
        self.lease_records.set(count)

    def update_system_metrics(self):
        """Update CPU dan memory usage"""
        self.cpu_usage.set(psutil.cpu_percent())
        self.memory_usage.set(psutil.virtual_memory().percent)

    def get_metrics(self) -> bytes:
        """
        Export metrics dalam Prometheus format.
        Returns: Metrics data dalam bytes
        """
        self.update_system_metrics()
        return generate_latest()


# Context manager untuk measure request time
class measure_time:
    """
    Context manager untuk mengukur execution time.

    Contoh penggunaan:
        with measure_time() as timer:
            await store.get('job-x')
        print(f"Execution time: {timer.elapsed}s")
    """

    def __init__(self):
        self.start_time = None
        self.elapsed = None

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.elapsed = time.perf_counter() - self.start_time
        return False


# Singleton instance
metrics = MetricsCollector()
