from fastapi import status


class AppointmentError(Exception):
    """Base for failures reported back to the visitor or the operator.

    ``message`` is shown as-is, ``status_code`` is what the HTTP layer answers.
    """

    status_code = status.HTTP_400_BAD_REQUEST
    message = "The request could not be completed."

    def __init__(self, message: str | None = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


class NotAuthenticated(AppointmentError):
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "You must sign in to schedule a visit."


class InvalidSelection(AppointmentError):
    status_code = 422
    message = "Select a date and a time."


class SlotAlreadyTaken(AppointmentError):
    status_code = status.HTTP_409_CONFLICT
    message = "That time is no longer available. Please choose another time."


class TransientBackendError(AppointmentError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    message = "Something went wrong. Please try again."


class ProjectNotFound(AppointmentError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "Project not found."


class AppointmentNotFound(AppointmentError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "Appointment not found."


class AvailabilityNotFound(AppointmentError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "No availability configured for that day."


class InvalidTransition(AppointmentError):
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot move an appointment from '{current}' to '{requested}'.")


class VisitAlreadyScheduled(AppointmentError):
    """The visitor already holds a live visit to the same project that day."""

    status_code = status.HTTP_409_CONFLICT

    def __init__(self, existing_id: int, start: str):
        self.existing_id = existing_id
        super().__init__(
            f"You already have a visit to this project that day at {start}. "
            "Confirm the replacement to swap it for the new time."
        )


class NotReschedulable(AppointmentError):
    status_code = status.HTTP_409_CONFLICT
    message = "This visit can no longer be changed."


class FavoriteNotFound(AppointmentError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "Favorite not found."
