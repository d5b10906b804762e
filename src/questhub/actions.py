"""Operation boundary for every mutating action.

``run_action`` owns the transaction: it commits when the operation returns,
rolls back on any failure, and converts errors into an ``ActionResult`` so
callers never see a raw store exception.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from questhub.errors import ERROR_STATUS, Conflict, QuestError, StorageError

logger = structlog.get_logger()


class ActionResult(BaseModel):
    """Discriminated success/failure result of a core operation."""

    success: bool
    message: str
    error: str | None = None
    data: Any = None

    @classmethod
    def ok(cls, message: str, data: Any = None) -> ActionResult:
        return cls(success=True, message=message, data=data)

    @classmethod
    def fail(cls, error: QuestError) -> ActionResult:
        return cls(success=False, message=error.message, error=error.kind)


async def run_action(
    db: AsyncSession,
    name: str,
    operation: Callable[[], Awaitable[Any]],
    message: str,
) -> ActionResult:
    """Run ``operation`` as one atomic unit and report the outcome.

    The operation's return value becomes ``ActionResult.data``; return a
    read model (dict or pydantic model), not ORM objects.
    """
    try:
        data = await operation()
        await db.commit()
    except QuestError as e:
        await db.rollback()
        logger.info("action_rejected", action=name, error=e.kind, reason=e.message)
        return ActionResult.fail(e)
    except IntegrityError as e:
        await db.rollback()
        logger.warning("action_conflict", action=name, error=str(e.orig))
        return ActionResult.fail(Conflict("This change conflicts with existing data."))
    except SQLAlchemyError:
        await db.rollback()
        logger.exception("storage_error", action=name)
        return ActionResult.fail(StorageError())

    logger.info("action_completed", action=name)
    return ActionResult.ok(message, data)


def action_response(result: ActionResult, success_status: int = 200) -> JSONResponse:
    """Render an ActionResult with the HTTP status matching its error kind."""
    status = success_status if result.success else ERROR_STATUS.get(result.error or "", 400)
    return JSONResponse(status_code=status, content=result.model_dump(mode="json"))
