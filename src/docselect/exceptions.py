"""Custom exceptions for docselect."""


class DocSelectError(Exception):
    """Base exception for all docselect errors."""


class ConfigError(DocSelectError):
    """Configuration-related errors."""


class GraphError(DocSelectError):
    """Dependency graph errors."""


class MetricError(DocSelectError):
    """Quality metric registration or contract errors."""


class UnknownStrategyError(ConfigError):
    """Raised when a selection strategy name is not registered."""

    def __init__(self, name: str, available: list[str]):
        self.name = name
        self.available = available
        super().__init__(
            f"Unknown selection strategy: '{name}'. "
            f"Available strategies: {', '.join(sorted(available)) or '(none)'}"
        )
