"""Cooperative cancellation for multi-step async sequences."""

from __future__ import annotations


class OperationCancelled(Exception):
    """The owning scope was torn down before the operation finished."""


class CancelToken:
    """A one-way flag checked before every state mutation.

    Nothing is interrupted; each step asks ``cancelled`` (or calls
    ``raise_if_cancelled``) after it resumes.
    """

    __slots__ = ("_cancelled",)

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise OperationCancelled()
