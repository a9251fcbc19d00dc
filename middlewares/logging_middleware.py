"""
Middleware для логирования апдейтов курьерского бота.

Каждое событие получает trace_id; в лог попадает раздел действия
(offer / step / check / pay / wallet ...) — по нему удобно искать
гонки «принять против таймера» и устаревшие экраны.
"""

import logging
import time
from typing import Callable, Dict, Any, Awaitable, Optional, Tuple

from aiogram import BaseMiddleware
from aiogram.types import TelegramObject, Message, CallbackQuery


logger = logging.getLogger(__name__)


def _truncate(text: Optional[str], limit: int = 200) -> Optional[str]:
    if text is None:
        return None
    text = text.replace("\n", "\\n")
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


def describe_event(event: TelegramObject) -> Tuple[Optional[int], Optional[str], Optional[str]]:
    """(user_id, action, payload) для строки лога."""
    if isinstance(event, CallbackQuery):
        user_id = event.from_user.id if event.from_user else None
        action = (event.data or "").split(":", 1)[0] or None
        return user_id, action, _truncate(event.data)
    if isinstance(event, Message):
        user_id = event.from_user.id if event.from_user else None
        if event.photo:
            return user_id, "photo", f"<photo {event.photo[-1].file_unique_id}>"
        text = event.text or event.caption
        action = text.split()[0] if text and text.startswith("/") else "text"
        return user_id, action, _truncate(text)
    return None, None, None


class LoggingMiddleware(BaseMiddleware):
    """IN/OUT строки по каждому событию; исключение логируется с trace и пробрасывается дальше."""

    def __init__(self, log_success: bool = True, slow_ms: float = 3000.0):
        self.log_success = log_success
        self.slow_ms = slow_ms

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any],
    ) -> Any:
        started = time.monotonic()
        user_id, action, payload = describe_event(event)

        trace_id = f"{int(time.time() * 1000)}:{user_id or 'na'}"
        data["trace_id"] = trace_id

        logger.info("IN  trace=%s user=%s action=%s payload=%s", trace_id, user_id, action, payload)

        try:
            result = await handler(event, data)
        except Exception as e:
            ms = (time.monotonic() - started) * 1000
            logger.error(
                "ERR trace=%s user=%s action=%s time_ms=%.1f err=%s",
                trace_id, user_id, action, ms, repr(e),
                exc_info=True,
            )
            raise

        ms = (time.monotonic() - started) * 1000
        # Действия курьера идут через имитацию сетевой задержки, медленные видно сразу
        if ms >= self.slow_ms:
            logger.warning("SLOW trace=%s user=%s action=%s time_ms=%.1f", trace_id, user_id, action, ms)
        elif self.log_success:
            logger.info("OUT trace=%s user=%s action=%s time_ms=%.1f", trace_id, user_id, action, ms)
        return result
