"""
Registry mapping component/modal custom ids to handlers.

Exact ids take priority over prefixes; among prefixes the longest match wins.
"""
import logging
from typing import Awaitable, Callable, Dict, Iterable, List, Tuple

logger = logging.getLogger(__name__)

Handler = Callable[..., Awaitable[None]]


class DuplicateHandlerError(ValueError):
    pass


class MissingHandlerError(LookupError):
    pass


class UnhandledInteractionError(LookupError):
    def __init__(self, custom_id: str):
        self.custom_id = custom_id
        super().__init__(f"No handler registered for {custom_id!r}")


class HandlerRegistry:
    def __init__(self):
        self._exact: Dict[str, Handler] = {}
        self._prefixes: List[Tuple[str, Handler]] = []

    def __len__(self) -> int:
        return len(self._exact) + len(self._prefixes)

    def __contains__(self, custom_id: str) -> bool:
        try:
            self.resolve(custom_id)
            return True
        except UnhandledInteractionError:
            return False

    def register(self, custom_id: str, handler: Handler, prefix: bool = False) -> None:
        """
        Register a handler for an exact id, or for every id starting with `custom_id`.

        Raises:
            DuplicateHandlerError: the id (or prefix) is already registered
        """
        if prefix:
            if any(existing == custom_id for existing, _ in self._prefixes):
                raise DuplicateHandlerError(f"Prefix {custom_id!r} registered twice")
            self._prefixes.append((custom_id, handler))
            self._prefixes.sort(key=lambda item: len(item[0]), reverse=True)
        else:
            if custom_id in self._exact:
                raise DuplicateHandlerError(f"Handler for {custom_id!r} registered twice")
            self._exact[custom_id] = handler

    def route(self, custom_id: str, prefix: bool = False):
        """Decorator form of register()."""
        def decorator(handler: Handler) -> Handler:
            self.register(custom_id, handler, prefix=prefix)
            return handler
        return decorator

    def resolve(self, custom_id: str) -> Handler:
        handler = self._exact.get(custom_id)
        if handler is not None:
            return handler
        for prefix, handler in self._prefixes:
            if custom_id.startswith(prefix):
                return handler
        raise UnhandledInteractionError(custom_id)

    def validate(self, required_ids: Iterable[str]) -> None:
        """
        Check that every id the UI can emit has a handler.

        Raises:
            MissingHandlerError: listing every id without a handler
        """
        missing = sorted({custom_id for custom_id in required_ids if custom_id not in self})
        if missing:
            raise MissingHandlerError(f"No handlers for: {', '.join(missing)}")
        logger.info(f"Handler registry validated ({len(self)} routes)")
