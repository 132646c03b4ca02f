"""
Error taxonomy for the fulfillment service.

Every error the service raises on purpose derives from FulfillmentError and
carries the HTTP status it is reported with. DownstreamServiceWarning is never
returned to a caller: it wraps the failure of a best-effort step so it can be
logged and recorded without aborting the pipeline.
"""


class FulfillmentError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class MalformedWebhook(FulfillmentError):
    status_code = 400


class OrderNotFound(FulfillmentError):
    status_code = 404

    def __init__(self, order_id: str):
        super().__init__("Order not found")
        self.order_id = order_id


class ConfigurationError(FulfillmentError):
    status_code = 500


class DownstreamServiceError(FulfillmentError):
    status_code = 502


class DownstreamServiceWarning(FulfillmentError):
    def __init__(self, step: str, cause: BaseException):
        super().__init__(f"{step} failed: {cause}")
        self.step = step
        self.cause = cause
