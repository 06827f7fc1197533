from __future__ import annotations


class OrderDeskError(Exception):
    pass


class NotFound(OrderDeskError):
    pass


class InvalidAssignment(OrderDeskError):
    pass


class InvalidStatus(OrderDeskError):
    pass


class StoreFailure(OrderDeskError):
    pass


class PartialSideEffectFailure(OrderDeskError):
    """A secondary write (audit log, notification, junction rows) failed.

    Never raised out of an operation; built so the failure can be logged and
    reported in one shape.
    """

    def __init__(self, effect: str, cause: BaseException) -> None:
        super().__init__(f"{effect} failed: {type(cause).__name__}: {cause}")
        self.effect = effect
        self.cause = cause
