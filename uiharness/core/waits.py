"""
待機戦略 — ブラウザ状態に対する有界ポーリング待機

クリック後のダイアログ描画など、非同期に変化する UI 状態を待機する。

主な機能:
  - wait_for: 条件が真になるまでポーリングする汎用待機
  - element_located / element_text_is / element_displayed: 条件ファクトリ
  - wait_for_element / wait_for_text / wait_for_displayed / wait_for_hidden: 頻出待機
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional, TypeVar, Union

from ..errors import ElementNotFoundError, StaleElementError, WaitTimeoutError

if TYPE_CHECKING:
    from playwright.async_api import ElementHandle

    from ..browser.session import BrowserSession

logger = logging.getLogger(__name__)

T = TypeVar("T")

Predicate = Callable[[], Union[T, Awaitable[T]]]

DEFAULT_IGNORED_EXCEPTIONS: tuple[type[BaseException], ...] = (
    StaleElementError,
    ElementNotFoundError,
)


# ---------------------------------------------------------------------------
# 汎用待機
# ---------------------------------------------------------------------------

async def wait_for(
    predicate: Predicate[T],
    timeout: int = 2000,
    poll_interval: int = 100,
    *,
    message: str = "",
    ignored_exceptions: tuple[type[BaseException], ...] = DEFAULT_IGNORED_EXCEPTIONS,
) -> T:
    """predicate が真の値を返すまで待機し、その値を返す。

    predicate は同期関数・コルーチン関数のどちらでもよい。
    評価間隔は必ず poll_interval 以上空ける。タイムアウト経過後の評価でも
    満たされなければ WaitTimeoutError を送出する（超過は高々 1 間隔）。
    ignored_exceptions に含まれる例外（要素の再描画・未出現）は
    「まだ満たされていない」として扱う。

    待機には asyncio.sleep を使うため、ホスト側のキャンセルで即座に中断される。

    Args:
        predicate: 引数なしで呼び出す条件
        timeout: タイムアウト（ミリ秒、デフォルト: 2000）
        poll_interval: ポーリング間隔（ミリ秒、デフォルト: 100）
        message: タイムアウト時のメッセージに含める説明
        ignored_exceptions: 未充足として扱う例外

    Returns:
        predicate が返した真の値

    Raises:
        WaitTimeoutError: タイムアウト時間内に条件が満たされなかった場合。
            last_value / last_error に最後の観測結果を保持する。
    """
    if poll_interval <= 0:
        raise ValueError(f"poll_interval は正の値を指定してください: {poll_interval}")

    start = time.perf_counter()
    deadline_sec = timeout / 1000.0
    interval_sec = poll_interval / 1000.0
    last_value: Any = None
    last_error: Optional[BaseException] = None
    attempts = 0

    while True:
        attempts += 1
        try:
            value = predicate()
            if inspect.isawaitable(value):
                value = await value
            if value:
                logger.debug(
                    "待機条件を満たしました（%d 回目, %.0fms 経過）",
                    attempts, (time.perf_counter() - start) * 1000,
                )
                return value
            last_value = value
            last_error = None
        except ignored_exceptions as exc:
            logger.debug("待機条件の評価中に無視対象の例外: %s", exc)
            last_error = exc

        elapsed = time.perf_counter() - start
        if elapsed >= deadline_sec:
            detail = f": {message}" if message else ""
            raise WaitTimeoutError(
                f"{timeout}ms 以内に待機条件が満たされませんでした{detail}"
                f"（評価 {attempts} 回, 最終値: {last_value!r}）",
                last_value=last_value,
                last_error=last_error,
            )

        await asyncio.sleep(interval_sec)


# ---------------------------------------------------------------------------
# 条件ファクトリ
# ---------------------------------------------------------------------------

def element_located(
    session: BrowserSession, selector: str
) -> Callable[[], Awaitable[Optional[ElementHandle]]]:
    """selector に一致する要素が存在すればその要素を返す条件。"""

    async def _condition() -> Optional[ElementHandle]:
        return await session.find_element(selector)

    return _condition


def element_text_is(
    session: BrowserSession, handle: ElementHandle, text: str
) -> Callable[[], Awaitable[bool]]:
    """要素の表示テキストが text と一致する条件。"""

    async def _condition() -> bool:
        return (await session.get_text(handle)) == text

    return _condition


def element_displayed(
    session: BrowserSession, handle: ElementHandle, displayed: bool = True
) -> Callable[[], Awaitable[bool]]:
    """要素の可視状態が displayed と一致する条件。"""

    async def _condition() -> bool:
        return (await session.is_displayed(handle)) is displayed

    return _condition


# ---------------------------------------------------------------------------
# 頻出待機
# ---------------------------------------------------------------------------

async def wait_for_element(
    session: BrowserSession,
    selector: str,
    timeout: int = 2000,
    poll_interval: int = 100,
) -> ElementHandle:
    """selector に一致する要素が現れるまで待機する。"""
    return await wait_for(
        element_located(session, selector),
        timeout,
        poll_interval,
        message=f"要素 {selector} の出現",
    )


async def wait_for_text(
    session: BrowserSession,
    handle: ElementHandle,
    text: str,
    timeout: int = 2000,
    poll_interval: int = 100,
) -> bool:
    """要素のテキストが text になるまで待機する。"""
    return await wait_for(
        element_text_is(session, handle, text),
        timeout,
        poll_interval,
        message=f"テキスト {text!r} の表示",
    )


async def wait_for_displayed(
    session: BrowserSession,
    handle: ElementHandle,
    timeout: int = 2000,
    poll_interval: int = 100,
) -> bool:
    """要素が可視になるまで待機する。"""
    return await wait_for(
        element_displayed(session, handle, True),
        timeout,
        poll_interval,
        message="要素の可視化",
    )


async def wait_for_hidden(
    session: BrowserSession,
    handle: ElementHandle,
    timeout: int = 2000,
    poll_interval: int = 100,
) -> bool:
    """要素が非表示になるまで待機する。"""
    return await wait_for(
        element_displayed(session, handle, False),
        timeout,
        poll_interval,
        message="要素の非表示化",
    )
