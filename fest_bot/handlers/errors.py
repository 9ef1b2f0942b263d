import logging
from aiogram import Router
from aiogram.types.error_event import ErrorEvent

router = Router()


@router.errors()
async def handle_errors(event: ErrorEvent):
    """
    Logs exceptions no handler dealt with.
    """
    logging.error(
        "Cause an exception: %s, on update: %s",
        event.exception,
        event.update.model_dump_json(indent=2, exclude_none=True),
        exc_info=event.exception,
    )
