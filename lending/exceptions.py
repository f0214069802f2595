from rest_framework import status


class LendingError(Exception):
    """Base class for domain errors. Views render these as {"error": message}."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message):
        super().__init__(message)
        self.message = message

    def __str__(self):
        return self.message


class ValidationError(LendingError):
    status_code = status.HTTP_400_BAD_REQUEST


class EligibilityError(LendingError):
    status_code = status.HTTP_403_FORBIDDEN


class RoleError(EligibilityError):
    pass


class ConflictError(LendingError):
    status_code = status.HTTP_409_CONFLICT


class StateError(LendingError):
    status_code = status.HTTP_409_CONFLICT


class NotFoundError(LendingError):
    status_code = status.HTTP_404_NOT_FOUND


class GatewayError(LendingError):
    status_code = status.HTTP_502_BAD_GATEWAY
