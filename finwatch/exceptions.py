class FinwatchError(Exception):
    """Base class for all finwatch errors."""


class InvalidDispatchRequest(FinwatchError):
    """A dispatch request is missing an identifier it cannot do without."""

    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__(f"Missing required field(s): {', '.join(missing)}")


class PersistenceError(FinwatchError):
    """A repository read or write failed."""

    def __init__(self, operation: str, detail: str = ""):
        self.operation = operation
        self.detail = detail
        super().__init__(f"{operation} failed: {detail}" if detail else f"{operation} failed")


class DuplicateAlertError(PersistenceError):
    """The (budget, bucket, window) uniqueness guard rejected an alert insert."""

    def __init__(self, dedupe_key: str):
        self.dedupe_key = dedupe_key
        super().__init__("insert_alert_event", f"duplicate alert {dedupe_key}")
