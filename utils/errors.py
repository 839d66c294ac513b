class MonitorError(Exception):
    """Base class for recoverable monitoring failures."""


class SourceUnavailable(MonitorError):
    """The log file or remote fetch is missing or unreadable."""


class ProcessLookupFailure(MonitorError):
    """Process enumeration, probing or signalling failed."""


class PersistenceFailure(MonitorError):
    """A snapshot could not be written or read."""


class IncidentLogCorruption(MonitorError):
    """The incident file exists but does not hold a JSON incident array."""
