import asyncio
import inspect
from collections import defaultdict
from typing import Any, Callable, Dict, List

from utils.ml_logging import get_logger

logger = get_logger("earthvoice.event_handler")

Disposer = Callable[[], None]


class RealtimeEventHandler:
    """
    Manages registration and dispatching of event handlers.

    Plain callables run inline during ``dispatch``; coroutine functions are
    scheduled as tasks on the running loop.
    """

    def __init__(self) -> None:
        self.event_handlers: Dict[str, List[Callable[[Any], Any]]] = defaultdict(list)

    def on(self, event_name: str, handler: Callable[[Any], Any]) -> Disposer:
        """
        Register an event handler for a specific event.

        Args:
            event_name (str): Name of the event.
            handler (Callable): Function or coroutine to handle the event.

        Returns:
            Disposer: Call it to unregister the handler.
        """
        self.event_handlers[event_name].append(handler)
        logger.debug(f"Handler registered for event: {event_name}")

        def dispose() -> None:
            self.off(event_name, handler)

        return dispose

    def off(self, event_name: str, handler: Callable[[Any], Any]) -> None:
        handlers = self.event_handlers.get(event_name)
        if not handlers:
            return
        try:
            handlers.remove(handler)
        except ValueError:
            return
        if not handlers:
            del self.event_handlers[event_name]

    def clear_event_handlers(self) -> None:
        """
        Clear all registered event handlers.
        """
        self.event_handlers.clear()
        logger.info("All event handlers cleared.")

    def dispatch(self, event_name: str, event: Any = None) -> None:
        """
        Dispatch an event to all registered handlers.

        A failing handler is logged and does not stop the others.

        Args:
            event_name (str): Name of the event.
            event (Any): Event payload.
        """
        handlers = list(self.event_handlers.get(event_name, []))
        for handler in handlers:
            try:
                if inspect.iscoroutinefunction(handler):
                    asyncio.get_running_loop().create_task(handler(event))
                else:
                    handler(event)
            except Exception as e:
                logger.error(f"Error dispatching event {event_name}: {e}", exc_info=True)

    async def wait_for_next(self, event_name: str, timeout: float = None) -> Any:
        """
        Wait for the next occurrence of a specific event.

        Args:
            event_name (str): Name of the event to wait for.
            timeout (float, optional): Seconds to wait before raising TimeoutError.

        Returns:
            Any: Event payload.
        """
        future = asyncio.get_running_loop().create_future()

        def handler(event):
            if not future.done():
                future.set_result(event)

        dispose = self.on(event_name, handler)
        try:
            return await asyncio.wait_for(future, timeout=timeout)
        finally:
            dispose()
