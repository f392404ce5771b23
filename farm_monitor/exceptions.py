"""
exceptions.py — Domain errors raised by the repositories and the image classifier.

The router translates these into HTTP responses.
"""


class FarmMonitorError(Exception):
    """Base class for all domain errors."""


class Unauthenticated(FarmMonitorError):
    def __init__(self, message: str = "User not authenticated"):
        super().__init__(message)


class NotFoundOrForbidden(FarmMonitorError):
    """
    The referenced record does not exist or belongs to someone else.

    Both cases share one error so callers cannot discover foreign ids.
    """

    def __init__(self, kind: str = "Record"):
        self.kind = kind
        super().__init__(f"{kind} not found or access denied")


class InvalidDimensions(FarmMonitorError, ValueError):
    def __init__(self, width: int, height: int, detail: str = ""):
        self.width = width
        self.height = height
        msg = f"Invalid image dimensions {width}x{height}"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)


class ImageDecodeError(FarmMonitorError, ValueError):
    pass


class ImageDecodeTimeout(FarmMonitorError):
    pass
