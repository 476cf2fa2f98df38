"""String constants persisted on user, payment and withdrawal rows."""


class RegStep:
    NOT_STARTED = "not_started"
    AWAITING_NAME = "awaiting_name"
    AWAITING_PHONE = "awaiting_phone"
    AWAITING_STREAM = "awaiting_stream"
    AWAITING_PAYMENT_METHOD = "awaiting_payment_method"
    COMPLETED = "completed"
    AWAITING_SCREENSHOT = "awaiting_screenshot"

    # steps a cancel action can leave
    IN_FLIGHT = frozenset(
        {
            AWAITING_NAME,
            AWAITING_PHONE,
            AWAITING_STREAM,
            AWAITING_PAYMENT_METHOD,
            AWAITING_SCREENSHOT,
        }
    )


class PaymentStatus:
    NOT_STARTED = "not_started"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class WithdrawalStatus:
    PENDING = "pending"
    COMPLETED = "completed"
    REJECTED = "rejected"


class FlowState:
    """Values of users.flow_state (multi-message flows outside registration)."""

    PAYOUT_METHOD = "awaiting_payment_method"
    PAYOUT_ACCOUNT_NUMBER = "awaiting_account_number"
    PAYOUT_ACCOUNT_NAME = "awaiting_account_name"

    ADMIN_BROADCAST = "admin_broadcast"
    ADMIN_SET_VALUE = "admin_set_value"
    ADMIN_MESSAGE_USER_ID = "admin_message_user_id"
    ADMIN_MESSAGE_USER_TEXT = "admin_message_user_text"
    ADMIN_TRIAL_UPLOAD = "admin_trial_upload"

    PAYOUT = frozenset({PAYOUT_METHOD, PAYOUT_ACCOUNT_NUMBER, PAYOUT_ACCOUNT_NAME})


STREAMS = ("natural", "social", "technology")
PAYMENT_METHODS = ("telebirr", "cbebirr")

STREAM_LABELS = {
    "natural": "Natural Science",
    "social": "Social Science",
    "technology": "Technology",
}
METHOD_LABELS = {
    "telebirr": "TeleBirr",
    "cbebirr": "CBE Birr",
}
