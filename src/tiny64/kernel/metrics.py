"""
Prometheus metrics collection for Tiny64.

Exposes generation throughput, sequence-exhaustion stalls, clock regressions
and lock behaviour so operators can see when a host is running hot.
"""

from prometheus_client import Counter, Histogram, start_http_server

# ============================================================================
# Generation Metrics
# ============================================================================

ids_generated_total = Counter(
    "tiny64_ids_generated_total",
    "Total number of identifiers generated",
    ["mode"],  # mode: memory, shared
)

sequence_exhausted_total = Counter(
    "tiny64_sequence_exhausted_total",
    "Number of times the per-millisecond sequence budget was exhausted",
)

sequence_stall_seconds = Histogram(
    "tiny64_sequence_stall_seconds",
    "Time spent waiting for the clock after sequence exhaustion",
    buckets=(0.0005, 0.001, 0.002, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0),
)

clock_regressions_total = Counter(
    "tiny64_clock_regressions_total",
    "Number of clock readings earlier than the last issued timestamp",
)

# ============================================================================
# Lock Metrics
# ============================================================================

lock_acquire_seconds = Histogram(
    "tiny64_lock_acquire_seconds",
    "Time spent acquiring the generator lock",
    ["backend"],
    buckets=(0.0001, 0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0),
)

lock_timeouts_total = Counter(
    "tiny64_lock_timeouts_total",
    "Number of lock acquisitions that hit their deadline",
    ["backend"],
)

stale_locks_reclaimed_total = Counter(
    "tiny64_stale_locks_reclaimed_total",
    "Number of abandoned lock tokens forcibly reclaimed",
    ["backend"],
)

# ============================================================================
# Decode Metrics
# ============================================================================

decode_errors_total = Counter(
    "tiny64_decode_errors_total",
    "Number of rejected tokens by reason",
    ["reason"],
)


def start_metrics_server(port: int = 9090) -> None:
    """
    Start Prometheus metrics HTTP server.

    Args:
        port: Port to listen on (default: 9090)
    """
    start_http_server(port)
