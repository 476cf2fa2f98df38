class TutorBotError(Exception):
    """Base class for errors raised by the bot's own code."""


class ConfigError(TutorBotError):
    """Unknown runtime setting or a value that does not fit its type."""


class StorageError(TutorBotError):
    """A store read or write failed."""
