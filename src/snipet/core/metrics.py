from __future__ import annotations

from collections import deque
from typing import Deque, Dict


class StoreMetrics:
    def __init__(self, max_samples: int = 1000) -> None:
        self.operation_counts: Dict[str, int] = {
            "create": 0,
            "update": 0,
            "delete": 0,
            "get_one": 0,
            "get_list": 0,
        }
        self.error_counts: Dict[str, int] = {}
        # Sliding window; p95 covers the most recent samples only.
        self.latencies_ms: Deque[float] = deque(maxlen=max_samples)

    def record_operation(self, operation: str) -> None:
        self.operation_counts[operation] = self.operation_counts.get(operation, 0) + 1

    def record_error(self, error_type: str) -> None:
        self.error_counts[error_type] = self.error_counts.get(error_type, 0) + 1

    def record_latency(self, latency_ms: float) -> None:
        self.latencies_ms.append(latency_ms)

    def p95_latency_ms(self) -> float:
        if not self.latencies_ms:
            return 0.0
        sorted_samples = sorted(self.latencies_ms)
        k = int(0.95 * (len(sorted_samples) - 1))
        return float(sorted_samples[k])

    def summary(self) -> Dict[str, object]:
        return {
            "operations": dict(self.operation_counts),
            "errors": dict(self.error_counts),
            "p95_latency_ms": self.p95_latency_ms(),
        }

    def render_prometheus(self) -> str:
        lines = [
            "# HELP store_operations_total Record store operations by type",
            "# TYPE store_operations_total counter",
        ]
        for operation, count in self.operation_counts.items():
            lines.append(f'store_operations_total{{operation="{operation}"}} {count}')
        lines.append("# HELP store_errors_total Record store errors by error type")
        lines.append("# TYPE store_errors_total counter")
        for error_type, count in self.error_counts.items():
            lines.append(f'store_errors_total{{type="{error_type}"}} {count}')
        lines.append("# HELP store_latency_p95_ms 95th percentile store latency in ms")
        lines.append("# TYPE store_latency_p95_ms gauge")
        lines.append(f"store_latency_p95_ms {self.p95_latency_ms()}")
        return "\n".join(lines) + "\n"
