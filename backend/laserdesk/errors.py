"""Exception hierarchy shared by the feed, sync and production services."""
from typing import Optional

CONFIG_ERROR_MARKER = "[CONFIG]"


class LaserdeskError(Exception):
    """Base class for every error raised by laserdesk services."""


class FeedError(LaserdeskError):
    pass


class FeedUnreachable(FeedError):
    """The feed location could not be fetched or read."""


class FeedMalformed(FeedError):
    """The feed content could not be parsed into records."""


class SyncIntegrityError(LaserdeskError):
    """A non-empty feed produced no usable records; the field mapping is probably broken."""


class OrderNotFound(LaserdeskError):
    def __init__(self, order_id: str, message: Optional[str] = None):
        self.order_id = order_id
        super().__init__(message or f"Order not found: {order_id}")


class SideNotRequired(LaserdeskError):
    def __init__(self, order_id: str, side):
        self.order_id = order_id
        self.side = side
        super().__init__(f"Side '{side.value}' is not required for order {order_id}")


class AlreadyProcessing(LaserdeskError):
    def __init__(self, order_id: str, side):
        self.order_id = order_id
        self.side = side
        super().__init__(f"Side '{side.value}' of order {order_id} is already processing")


class ProductionError(LaserdeskError):
    """A failure while generating, rendering or verifying a side artifact.

    `code` is a short machine-readable tag that is persisted together with the message.
    """

    permanent = False

    def __init__(self, code: str, message: str):
        self.code = code
        self.message = message
        super().__init__(f"{code}: {message}")

    def persisted_message(self) -> str:
        return str(self)


class ConfigurationError(ProductionError):
    """Missing or unusable rule/template/asset setup. Never retried automatically."""

    permanent = True

    def persisted_message(self) -> str:
        return f"{CONFIG_ERROR_MARKER} {self}"


class TransientError(ProductionError):
    """A runtime fault that may succeed on a later attempt."""


class RendererNotFound(TransientError):
    def __init__(self, message: str):
        super().__init__("RENDERER_NOT_FOUND", message)


class RendererTimeout(TransientError):
    def __init__(self, message: str):
        super().__init__("RENDERER_TIMEOUT", message)


class RendererFailed(TransientError):
    def __init__(self, message: str):
        super().__init__("RENDERER_FAILED", message)


class VerificationFailed(TransientError):
    def __init__(self, message: str):
        super().__init__("VERIFICATION_FAILED", message)


class SideJobFailed(LaserdeskError):
    """Raised after a failed side job has been recorded in the store."""

    def __init__(self, order_id: str, side, status, attempt_count: int, cause: ProductionError):
        self.order_id = order_id
        self.side = side
        self.status = status
        self.attempt_count = attempt_count
        self.cause = cause
        super().__init__(cause.persisted_message())

    @property
    def permanent(self) -> bool:
        return self.cause.permanent
