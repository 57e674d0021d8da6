"""Exception types shared by the fetch, report and publish layers."""


class PayloadMonitorError(Exception):
    """Base class for failures the CLI and bot report to the operator."""


class FetchError(PayloadMonitorError):
    """The release data source is unreachable or returned an unusable body."""


class ParseError(PayloadMonitorError):
    """The release data arrived but its structure is not what the report expects."""


class ConfigError(PayloadMonitorError):
    """Configuration could not be loaded or failed validation."""


class PublishError(PayloadMonitorError):
    """The rendered report could not be delivered to the notification channel."""
