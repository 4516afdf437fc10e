"""Webhook error hierarchy.

Each error carries the HTTP status and the short plain-text reason returned to
Stripe. 4xx tells Stripe not to retry; anything that is not a WebhookError
becomes a 500 and is retried.
"""


class WebhookError(Exception):
    status_code = 400

    def __init__(self, reason: str, status_code: int = None):
        super().__init__(reason)
        self.reason = reason
        if status_code is not None:
            self.status_code = status_code


class WebhookNotConfiguredError(WebhookError):
    status_code = 501

    def __init__(self, reason: str = "Stripe webhook not configured"):
        super().__init__(reason)


class WebhookSignatureError(WebhookError):
    status_code = 400

    def __init__(self, reason: str = "Webhook error"):
        super().__init__(reason)


class WebhookValidationError(WebhookError):
    """Missing or inconsistent metadata"""
    status_code = 400


class WebhookNotFoundError(WebhookError):
    """A referenced course, enrollment, user, organization or plan does not exist"""
    status_code = 404
