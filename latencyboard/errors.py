class ConfigError(Exception):
    """Invalid or missing configuration; raised before anything starts."""


class DurableLogError(Exception):
    """A raw sample could not be persisted. Aggregation must stop."""
