"""Alignment period resolution.

the alignment period is the bucket width the api resamples raw points into.
users either pick one explicitly ("+300s") or leave it on auto, in which
case we derive it from the panel interval. the legacy auto mode picks a
bucket purely from the length of the time range.
"""

GRAFANA_AUTO = "grafana-auto"
LEGACY_AUTO = ("cloud-monitoring-auto", "stackdriver-auto")

MIN_ALIGNMENT_SECONDS = 60

# legacy auto buckets: (time range shorter than, alignment period)
LEGACY_BUCKETS = (
    (60 * 60 * 23, "+60s"),
    (60 * 60 * 24 * 6, "+300s"),
)
LEGACY_FALLBACK = "+3600s"


def calculate_alignment_period(alignment_period: str, interval_ms: int, duration_seconds: int) -> str:
    """Resolve an alignment period specifier into the api's duration format."""
    if alignment_period in (GRAFANA_AUTO, ""):
        seconds = int(max(interval_ms / 1000, MIN_ALIGNMENT_SECONDS))
        return f"+{seconds}s"

    if alignment_period in LEGACY_AUTO:
        duration = max(duration_seconds, MIN_ALIGNMENT_SECONDS)
        for upper_bound, period in LEGACY_BUCKETS:
            if duration < upper_bound:
                return period
        return LEGACY_FALLBACK

    # explicit periods are already in the expected format
    return alignment_period
