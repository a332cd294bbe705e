"""
Centralized constants for the execution plan analyzer.
All rates, weights and thresholds are defined here.
"""


from typing import Final


# Monetary rates (currency per unit)
CPU_SECOND_COST: Final[float] = 0.005
DISK_READ_MB_COST: Final[float] = 0.0002
DISK_WRITE_MB_COST: Final[float] = 0.0003
SORT_HASH_OPERATION_COST: Final[float] = 0.002
ROW_PROCESSING_COST: Final[float] = 0.00001

# Storage units
BLOCK_SIZE_KB: Final[float] = 8.0
KB_PER_MB: Final[float] = 1024.0
BYTES_PER_MB: Final[int] = 1024 * 1024

# Cost estimation
COST_DECIMAL_PLACES: Final[int] = 6
CPU_INTENSITY_BASE: Final[float] = 1.0
CPU_INTENSITY_CAP: Final[float] = 3.0
MERGE_JOIN_INTENSITY: Final[float] = 0.3
HASH_JOIN_INTENSITY: Final[float] = 0.4
NESTED_LOOP_INTENSITY: Final[float] = 0.5
AGGREGATE_INTENSITY: Final[float] = 0.3
SUBPLAN_INTENSITY: Final[float] = 0.2
SIGNIFICANT_NODE_COST_SHARE: Final[float] = 0.1            # 10% of engine cost
EXPENSIVE_NESTED_LOOP_SHARE: Final[float] = 0.3            # 30% of engine cost
SEQ_SCAN_ROWS_THRESHOLD: Final[int] = 1000
CACHE_HIT_THRESHOLD: Final[int] = 90                       # 90%

# Monthly cost grade bands
COST_GRADE_BANDS: Final[tuple[tuple[float, str], ...]] = (
    (1_000, "VERY_LOW"),
    (10_000, "LOW"),
    (100_000, "MODERATE"),
    (1_000_000, "HIGH"),
)

# Efficiency scoring
SCORE_WEIGHT_CPU: Final[float] = 0.3
SCORE_WEIGHT_IO: Final[float] = 0.4
SCORE_WEIGHT_MEMORY: Final[float] = 0.2
SCORE_WEIGHT_NETWORK: Final[float] = 0.1
CPU_TIME_BANDS: Final[tuple[tuple[float, float], ...]] = (
    (10, 95.0),
    (100, 85.0),
    (1000, 70.0),
    (5000, 50.0),
)
HITS_PER_ROW_BANDS: Final[tuple[tuple[float, float], ...]] = (
    (1, 95.0),
    (5, 80.0),
    (10, 65.0),
    (20, 50.0),
)
ROW_WIDTH_BANDS: Final[tuple[tuple[float, float], ...]] = (
    (100, 95.0),
    (500, 80.0),
    (1000, 65.0),
    (2000, 50.0),
)
LOWEST_BAND_SCORE: Final[float] = 30.0
GRADE_BANDS: Final[tuple[tuple[float, str], ...]] = (
    (90, "A+"),
    (80, "A"),
    (70, "B+"),
    (60, "B"),
    (50, "C+"),
    (40, "C"),
    (30, "D"),
)
LOWEST_GRADE: Final[str] = "F"

# Time series reconstruction (empirical, tunable)
READ_WAIT_MS_PER_BLOCK: Final[float] = 0.1
WRITE_WAIT_MS_PER_BLOCK: Final[float] = 0.2
IO_WAIT_CAP_RATIO: Final[float] = 0.8
REDISTRIBUTION_EVEN_WEIGHT: Final[float] = 0.7
REDISTRIBUTION_MIN_GAP_RATIO: Final[float] = 0.05
REDISTRIBUTION_MIN_GAP_MS: Final[float] = 0.01
TIME_UNIT: Final[str] = "ms"

# Bottleneck detection thresholds
CPU_SPIKE_DELTA: Final[float] = 50                         # percentage points
IO_SPIKE_DELTA_MS: Final[float] = 30
MEMORY_SPIKE_DELTA_MB: Final[float] = 500
HIGH_CPU_THRESHOLD: Final[float] = 80
HIGH_CPU_MAX: Final[float] = 100
HIGH_IO_THRESHOLD_MS: Final[float] = 50
HIGH_IO_MAX_MS: Final[float] = 200
MEMORY_THRESHOLD_BYTES: Final[int] = 1024 * 1024           # 1MB
MEMORY_MAX_FACTOR: Final[int] = 10
DISK_IO_THRESHOLD_BLOCKS: Final[int] = 1000
DISK_IO_MAX_FACTOR: Final[int] = 5
READ_DOMINANCE_FACTOR: Final[int] = 10
WRITE_DOMINANCE_FACTOR: Final[int] = 5
NESTED_LOOP_CPU_THRESHOLD: Final[float] = 60
SORT_IO_WAIT_THRESHOLD_MS: Final[float] = 20
HASH_MEMORY_FACTOR: Final[int] = 2
JOIN_INEFFICIENCY_SEVERITY: Final[float] = 85.0            # empirical, tunable
DISK_SORT_SEVERITY: Final[float] = 80.0                    # empirical, tunable
HASH_MEMORY_SEVERITY: Final[float] = 75.0                  # empirical, tunable
DEDUP_WINDOW_MS: Final[float] = 5.0
LAST_POINT_DURATION_MS: Final[float] = 1.0

# Suggestion rules
COSTLY_INDEX_SCAN_THRESHOLD: Final[float] = 1000
LARGE_RESULT_ROWS_THRESHOLD: Final[int] = 1000
SEQ_SCAN_INDEX_COST_THRESHOLD: Final[float] = 1000
HASH_JOIN_ROW_MISESTIMATE_FACTOR: Final[int] = 2

# Advisory fallback
ADVISORY_TIMEOUT_SECONDS: Final[float] = 30.0
ADVISORY_HIGH_TIME_MS: Final[float] = 5000
ADVISORY_MEDIUM_TIME_MS: Final[float] = 1000
ADVISORY_HIGH_SEVERITY: Final[float] = 80
ADVISORY_MEDIUM_SEVERITY: Final[float] = 60

# Plan retrieval
EXPLAIN_TIMEOUT_SECONDS: Final[int] = 10
QUERY_LENGTH_LIMIT: Final[int] = 10000


# Environment-specific defaults
class Defaults:
    """
    Default values that can be overridden
    by environment or configuration.
    """

    # Cost estimator defaults
    CPU_SECOND_COST = CPU_SECOND_COST
    DISK_READ_MB_COST = DISK_READ_MB_COST
    DISK_WRITE_MB_COST = DISK_WRITE_MB_COST
    SORT_HASH_OPERATION_COST = SORT_HASH_OPERATION_COST
    ROW_PROCESSING_COST = ROW_PROCESSING_COST
    CPU_INTENSITY_CAP = CPU_INTENSITY_CAP
    CACHE_HIT_THRESHOLD = CACHE_HIT_THRESHOLD
    SEQ_SCAN_ROWS_THRESHOLD = SEQ_SCAN_ROWS_THRESHOLD

    # Time series defaults
    REDISTRIBUTION_EVEN_WEIGHT = REDISTRIBUTION_EVEN_WEIGHT
    IO_WAIT_CAP_RATIO = IO_WAIT_CAP_RATIO

    # Bottleneck detector defaults
    CPU_SPIKE_DELTA = CPU_SPIKE_DELTA
    IO_SPIKE_DELTA_MS = IO_SPIKE_DELTA_MS
    MEMORY_SPIKE_DELTA_MB = MEMORY_SPIKE_DELTA_MB
    HIGH_CPU_THRESHOLD = HIGH_CPU_THRESHOLD
    HIGH_IO_THRESHOLD_MS = HIGH_IO_THRESHOLD_MS
    MEMORY_THRESHOLD_BYTES = MEMORY_THRESHOLD_BYTES
    DISK_IO_THRESHOLD_BLOCKS = DISK_IO_THRESHOLD_BLOCKS
    DEDUP_WINDOW_MS = DEDUP_WINDOW_MS

    # Suggestion defaults
    LARGE_RESULT_ROWS_THRESHOLD = LARGE_RESULT_ROWS_THRESHOLD
    COSTLY_INDEX_SCAN_THRESHOLD = COSTLY_INDEX_SCAN_THRESHOLD

    # Advisory and retrieval defaults
    ADVISORY_TIMEOUT_SECONDS = ADVISORY_TIMEOUT_SECONDS
    EXPLAIN_TIMEOUT_SECONDS = EXPLAIN_TIMEOUT_SECONDS
    QUERY_LENGTH_LIMIT = QUERY_LENGTH_LIMIT
