"""Alert system error types."""


class AlertError(Exception):
    """Base exception for alert system errors."""
    pass


class RuleValidationError(AlertError, ValueError):
    """A rule or condition was rejected at authoring time."""

    def __init__(self, message: str, rule_id: str | None = None):
        super().__init__(message)
        self.rule_id = rule_id


class RuleNotFoundError(AlertError, KeyError):
    """No rule exists with the requested id."""

    def __init__(self, rule_id: str):
        super().__init__(rule_id)
        self.rule_id = rule_id

    def __str__(self) -> str:
        return f"Alert rule not found: {self.rule_id}"


class AlertNotFoundError(AlertError, KeyError):
    """No alert exists in the working set with the requested id."""

    def __init__(self, alert_id: str):
        super().__init__(alert_id)
        self.alert_id = alert_id

    def __str__(self) -> str:
        return f"Alert not found: {self.alert_id}"
