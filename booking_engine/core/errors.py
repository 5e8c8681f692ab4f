"""Error taxonomy shared by the scheduling core and the HTTP boundary."""

from fastapi import HTTPException, status


class BookingError(Exception):
    """Base class for failures the HTTP layer maps one-to-one to a status code."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidParameters(BookingError):
    status_code = status.HTTP_400_BAD_REQUEST


class InvalidWindow(BookingError):
    """The proposed interval is not fully inside any active availability window."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFound(BookingError):
    status_code = status.HTTP_404_NOT_FOUND


class Forbidden(BookingError):
    status_code = status.HTTP_403_FORBIDDEN


class Conflict(BookingError):
    status_code = status.HTTP_409_CONFLICT


class PreconditionFailed(BookingError):
    status_code = status.HTTP_400_BAD_REQUEST


class RepositoryError(BookingError):
    """Storage could not be read or written."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


def http_error(exc: BookingError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.message)
