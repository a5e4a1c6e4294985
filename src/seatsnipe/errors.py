"""Exception hierarchy for seatsnipe."""


class SeatSnipeError(Exception):
    """Base exception."""


class ConfigError(SeatSnipeError):
    """Invalid configuration."""


class AuthError(SeatSnipeError):
    """Session could not be established."""


class InvalidCredentialsError(AuthError):
    """The SSO service rejected the school id / password pair."""


class SeatLookupError(SeatSnipeError):
    """Seat label not present in the seat map."""


class BookingError(SeatSnipeError):
    """Booking request failed."""


class BookingRejectedError(BookingError):
    """Server answered with a well-formed rejection (seat taken, too frequent...)."""

    def __init__(self, code: object, message: str) -> None:
        super().__init__(f"booking failed with server message: [{code}] {message}")
        self.code = code
        self.message = message


class MalformedResponseError(BookingError):
    """Response body could not be decoded (HTML error page, broken JSON)."""


class UnretryableError(SeatSnipeError):
    """Marks a failure as exempt from immediate retry.

    ``with_retry`` re-raises ``cause`` as soon as it sees this wrapper.
    """

    def __init__(self, cause: BaseException) -> None:
        super().__init__(str(cause))
        self.cause = cause
