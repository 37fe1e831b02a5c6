"""Final run verdict policy."""

from app.schemas.run import RunStatus


def aggregate_status(errors_count: int, jobs_created: int, channels_processed: int) -> RunStatus:
    """
    Map accumulated run counters to a terminal verdict.

    Args:
        errors_count: Number of error-level events recorded
        jobs_created: Number of jobs dispatched
        channels_processed: Number of channels that completed processing

    Returns:
        SUCCESS when there were no errors, ERROR when errors occurred and
        nothing was accomplished, PARTIAL otherwise

    Raises:
        ValueError: If any counter is negative
    """
    if min(errors_count, jobs_created, channels_processed) < 0:
        raise ValueError("Run counters must be non-negative")

    if errors_count == 0:
        return RunStatus.SUCCESS
    if jobs_created == 0 and channels_processed == 0:
        return RunStatus.ERROR
    return RunStatus.PARTIAL
