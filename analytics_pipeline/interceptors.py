"""Interceptor chain — ordered message transformations applied at enqueue time."""

import logging
from typing import Callable, Iterable, Optional, Protocol, Union, runtime_checkable

from analytics_pipeline.errors import (
    ConfigurationError,
    DuplicateInterceptorError,
    InvalidArgumentError,
)
from analytics_pipeline.messages import Message

logger = logging.getLogger(__name__)


@runtime_checkable
class MessageInterceptor(Protocol):
    """Transforms a message, or returns None to drop it."""

    def intercept(self, message: Message) -> Optional[Message]:
        ...


Interceptor = Union[MessageInterceptor, Callable[[Message], Optional[Message]]]


class InterceptorChain:
    """Applies registered interceptors in registration order.

    The first interceptor returning None suppresses the message and no
    later interceptor runs. Once frozen, the chain rejects new members.
    """

    def __init__(self, interceptors: Iterable[Interceptor] = ()):
        self._interceptors: list[Interceptor] = []
        self._frozen = False
        for interceptor in interceptors:
            self.add(interceptor)

    def add(self, interceptor: Interceptor) -> "InterceptorChain":
        if self._frozen:
            raise ConfigurationError("Interceptors cannot be added once the pipeline has started.")
        if interceptor is None:
            raise InvalidArgumentError("Null interceptor")
        if not (isinstance(interceptor, MessageInterceptor) or callable(interceptor)):
            raise InvalidArgumentError(
                f"Interceptor must define intercept() or be callable, got {type(interceptor).__name__}"
            )
        # Identity, not equality: two equal-but-distinct instances are allowed.
        if any(existing is interceptor for existing in self._interceptors):
            raise DuplicateInterceptorError("MessageInterceptor is already registered.")
        self._interceptors.append(interceptor)
        return self

    def freeze(self):
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def __len__(self) -> int:
        return len(self._interceptors)

    def run(self, message: Message) -> Optional[Message]:
        """Run *message* through every interceptor. Returns the transformed
        message, or None if any interceptor suppressed it."""
        for interceptor in self._interceptors:
            if isinstance(interceptor, MessageInterceptor):
                result = interceptor.intercept(message)
            else:
                result = interceptor(message)

            if result is None:
                logger.debug(
                    "Message %s suppressed by %r", message.message_id, interceptor
                )
                return None
            if not isinstance(result, Message):
                raise TypeError(
                    f"{interceptor!r} returned {type(result).__name__}, expected Message or None"
                )
            message = result
        return message
