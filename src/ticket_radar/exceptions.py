"""Exceptions raised by ticket-radar."""


class TicketRadarError(Exception):
    """Base class for all ticket-radar errors."""


class MissingHostDataError(TicketRadarError):
    """The host did not provide data the pipeline cannot run without."""


class ModelResponseError(TicketRadarError):
    """The language model answered with something that is not the JSON we asked for."""


class InvalidRequestError(TicketRadarError):
    """The summarizer service received a malformed request."""

    def __init__(self, error: str, message: str):
        super().__init__(message)
        self.error = error
        self.message = message
