# pylint: disable=broad-except
"""Message bus for the import service following Cosmic Python pattern."""

from __future__ import annotations
import logging
from typing import List, Dict, Callable, Type, Union, TYPE_CHECKING

from pps.domain.commands import Command, Event, ImportCsvFile
from pps.domain.events import CsvFileImported
from pps.service_layer import handlers

if TYPE_CHECKING:
    from pps.service_layer.unit_of_work import AbstractUnitOfWork

logger = logging.getLogger(__name__)

Message = Union[ImportCsvFile, CsvFileImported]


def handle(
    message: Message,
    uow: AbstractUnitOfWork,
):
    """Handle message (command or event) with the appropriate handler."""
    results = []
    queue = [message]

    while queue:
        message = queue.pop(0)

        if isinstance(message, Event):
            handle_event(message, queue, uow)
        elif isinstance(message, Command):
            cmd_result = handle_command(message, queue, uow)
            results.append(cmd_result)
        else:
            raise Exception(f"{message} was not an Event or Command")

    return results


def handle_event(
    event: Event,
    queue: List[Message],
    uow: AbstractUnitOfWork,
):
    """Handle event by calling all registered event handlers."""
    for handler in EVENT_HANDLERS[type(event)]:
        try:
            logger.debug(f"handling event {type(event).__name__} with handler {handler.__name__}")
            handler(event, uow=uow)
            queue.extend(uow.collect_new_events())
        except Exception:
            logger.exception("Exception handling event %s", type(event).__name__)
            continue


def handle_command(
    command: Command,
    queue: List[Message],
    uow: AbstractUnitOfWork,
):
    """Handle command by calling the registered command handler."""
    logger.debug(f"handling command {type(command).__name__}")
    try:
        handler = COMMAND_HANDLERS[type(command)]
        result = handler(command, uow=uow)
        queue.extend(uow.collect_new_events())
        return result
    except Exception:
        logger.exception("Exception handling command %s", type(command).__name__)
        raise


# Event handlers - multiple handlers can respond to same event
EVENT_HANDLERS = {
    CsvFileImported: [
        handlers.log_import_summary,
        handlers.publish_import_event,
    ],
}  # type: Dict[Type[Event], List[Callable]]

# Command handlers - single handler per command type
COMMAND_HANDLERS = {
    ImportCsvFile: handlers.import_csv_file,
}  # type: Dict[Type[Command], Callable]
