"""Exceptions raised by the session, feed and classification layers."""


class SpielerPlusError(Exception):
    """Base class for all errors raised by this package."""


class AuthError(SpielerPlusError):
    """Logging into SpielerPlus failed or the session is no longer valid."""


class FetchError(SpielerPlusError):
    """The raw calendar feed could not be downloaded or parsed."""


class ClassificationDegradation(SpielerPlusError):
    """Classifying one event failed.

    Never propagated past the pipeline: it is logged and the event is
    shown with a fallback status instead.

    :param url: The detail page that could not be classified.
    """

    def __init__(self, message: str, url: str | None = None):
        super().__init__(message)
        self.url = url
