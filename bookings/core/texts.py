# bookings/core/texts.py
"""Subjects and message bodies for outgoing notifications."""

# Email subjects, keyed by template key
SUBJECTS = {
    "job_created": "Your booking #{job_id} has been received",
    "job_accepted": "Confirmation: booking #{job_id} has been accepted",
    "translator_assigned": "Confirmation: you have been assigned booking #{job_id}",
    "booking_cancelled": "Booking #{job_id} has been cancelled",
    "translator_cancelled": "Booking #{job_id} has been cancelled",
    "session_ended": "Information about finished booking #{job_id}",
    "translator_changed": "Your translator for booking #{job_id} has changed",
    "translator_new": "You have been assigned booking #{job_id}",
    "translator_old": "Booking #{job_id} has been reassigned",
    "date_changed": "The date of booking #{job_id} has changed",
    "language_changed": "The language of booking #{job_id} has changed",
    "job_reopened": "Booking #{job_id} is open for booking again",
}

# Push message bodies
PUSH_EMERGENCY = "New emergency booking for {language} interpreter, {duration} min"
PUSH_REGULAR = "New booking for {language} interpreter, {duration} min, {due}"
PUSH_SESSION_REMINDER = (
    "Reminder: you have a {language} booking {place} on {date} at {time} "
    "lasting {duration}. Good luck!"
)
PUSH_JOB_EXPIRED = "Unfortunately no {language} interpreter accepted your booking ({duration} min, {due})."
PUSH_JOB_ACCEPTED = "Your booking for {language} interpreter, {duration} min, {due} has been accepted."
PUSH_CUSTOMER_CANCELLED = "The customer has cancelled booking #{job_id} ({language}, {duration} min, {due})."
PUSH_TRANSLATOR_WITHDREW = (
    "The interpreter has withdrawn from your {language} booking #{job_id}. "
    "We are looking for a replacement."
)

# SMS bodies
SMS_PHONE = (
    "Hi. A new telephone interpreting booking is available "
    "({date} {time}, {duration}). Please log in to accept it. Booking #{job_id}"
)
SMS_PHYSICAL = (
    "Hi. A new on-site interpreting booking is available in {town} "
    "({date} {time}, {duration}). Please log in to accept it. Booking #{job_id}"
)

# Use case messages
CANCEL_REFUSED = (
    "The booking is less than 24 hours away. Please call {phone} to cancel "
    "so we can arrange a replacement."
)
REOPEN_COMMENT = "This booking is a reopening of booking #{job_id}"
ACCEPT_CONFLICT = (
    "You already have a booking at this time ({language}, {duration} min, {due}). "
    "The booking was not accepted."
)
ACCEPT_TAKEN = "Booking for {language} interpreter, {duration} min, {due} has already been taken."
