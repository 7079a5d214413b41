"""Exceptions raised by the history / trend pipeline."""


class PipelineError(Exception):
    pass


class NoHistoryAvailable(PipelineError):
    """No snapshot file exists on or before the requested date."""

    def __init__(self, requested_date, history_dir):
        self.requested_date = requested_date
        self.history_dir = history_dir
        super().__init__(
            f"No history file found on or before {requested_date} in {history_dir}"
        )


class InvalidDateFormat(PipelineError, ValueError):
    def __init__(self, value):
        self.value = value
        super().__init__(f"Invalid date format: {value!r} (expected YYYY-MM-DD or YYYY/MM/DD)")


class RemoteFetchFailed(PipelineError):
    """A quote or company fetch failed. Never escapes the fetch layer."""


class MalformedSnapshotFile(PipelineError):
    """A snapshot file is not a JSON array. Never escapes the store."""
