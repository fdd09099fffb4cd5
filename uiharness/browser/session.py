"""
Session — ブラウザセッション管理

Playwright ブラウザの起動・終了と、テストが操作するページセッションを提供する。

主な構成:
  - BrowserSession: ハーネスが前提とするブラウザ操作プリミティブ（Protocol）
  - PageSession: Playwright Page による BrowserSession 実装
  - PlaywrightBrowser: ブラウザプロセスのライフサイクル管理（状態追跡付き）
"""

from __future__ import annotations

import enum
import logging
from typing import TYPE_CHECKING, Optional, Protocol, runtime_checkable

from playwright.async_api import Error as PlaywrightError

from ..errors import ElementNotFoundError, StaleElementError

if TYPE_CHECKING:
    from playwright.async_api import Browser, BrowserContext, ElementHandle, Page

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# ブラウザ操作プリミティブ
# ---------------------------------------------------------------------------

@runtime_checkable
class BrowserSession(Protocol):
    """ハーネスが利用するブラウザ操作の最小集合。"""

    async def navigate(self, url: str) -> None: ...

    async def find_element(self, selector: str) -> ElementHandle: ...

    async def find_elements(self, selector: str) -> list[ElementHandle]: ...

    async def get_text(self, handle: ElementHandle) -> str: ...

    async def is_displayed(self, handle: ElementHandle) -> bool: ...

    async def click(self, handle: ElementHandle) -> None: ...

    async def get_title(self) -> str: ...

    async def capture_screenshot(self) -> bytes: ...

    async def close(self) -> None: ...


class PageSession:
    """Playwright Page を BrowserSession として扱うアダプタ。

    要素ハンドルは生成元のページ内でのみ有効。ハンドル操作中の
    Playwright エラー（DOM から切り離された要素等）は StaleElementError に変換する。
    """

    def __init__(self, page: Page, context: Optional[BrowserContext] = None) -> None:
        self._page = page
        self._context = context

    @property
    def page(self) -> Page:
        return self._page

    async def navigate(self, url: str) -> None:
        """url へ遷移し、DOMContentLoaded まで待機する。"""
        logger.info("navigate: %s", url)
        await self._page.goto(url)
        await self._page.wait_for_load_state("domcontentloaded")

    async def find_element(self, selector: str) -> ElementHandle:
        """selector に一致する最初の要素を返す。

        Raises:
            ElementNotFoundError: 一致する要素がない場合
        """
        handle = await self._page.query_selector(selector)
        if handle is None:
            raise ElementNotFoundError(selector)
        return handle

    async def find_elements(self, selector: str) -> list[ElementHandle]:
        """selector に一致する要素を文書順で返す（0 件なら空リスト）。"""
        return list(await self._page.query_selector_all(selector))

    async def get_text(self, handle: ElementHandle) -> str:
        try:
            return await handle.inner_text()
        except PlaywrightError as exc:
            raise StaleElementError(f"要素のテキストを取得できません: {exc}") from exc

    async def is_displayed(self, handle: ElementHandle) -> bool:
        try:
            return await handle.is_visible()
        except PlaywrightError as exc:
            raise StaleElementError(f"要素の可視状態を取得できません: {exc}") from exc

    async def click(self, handle: ElementHandle) -> None:
        try:
            await handle.click()
        except PlaywrightError as exc:
            raise StaleElementError(f"要素をクリックできません: {exc}") from exc

    async def get_title(self) -> str:
        return await self._page.title()

    async def capture_screenshot(self) -> bytes:
        """ページ全体の PNG スクリーンショットを返す。"""
        return await self._page.screenshot(type="png", full_page=True)

    async def close(self) -> None:
        """ページ（と専用 Context）を閉じる。"""
        if self._context is not None:
            await self._context.close()
        else:
            await self._page.close()


# ---------------------------------------------------------------------------
# ブラウザ状態
# ---------------------------------------------------------------------------

class BrowserState(enum.Enum):
    """ブラウザプロセスの状態。"""

    IDLE = "idle"
    LAUNCHING = "launching"
    ACTIVE = "active"
    CLOSING = "closing"
    CLOSED = "closed"


# ---------------------------------------------------------------------------
# PlaywrightBrowser 本体
# ---------------------------------------------------------------------------

class PlaywrightBrowser:
    """Playwright ブラウザのライフサイクル管理クラス。

    ブラウザはスイート全体で 1 つ起動し、テストごとに open_session() で
    独立した Context / Page を払い出す。
    """

    def __init__(self) -> None:
        self._state: BrowserState = BrowserState.IDLE
        self._pw_instance: Optional[object] = None
        self._browser: Optional[Browser] = None
        self._viewport: dict[str, int] = {"width": 1280, "height": 720}

    @property
    def state(self) -> BrowserState:
        """現在のブラウザ状態を返す。"""
        return self._state

    @property
    def is_active(self) -> bool:
        """ブラウザがアクティブかどうかを返す。"""
        return self._state == BrowserState.ACTIVE

    async def launch(
        self,
        headed: bool = False,
        viewport_width: int = 1280,
        viewport_height: int = 720,
    ) -> None:
        """Chromium を起動する。

        Args:
            headed: True でブラウザウィンドウを表示
            viewport_width: ビューポート幅
            viewport_height: ビューポート高さ

        Raises:
            RuntimeError: 既にアクティブなブラウザがある場合
        """
        if self._state == BrowserState.ACTIVE:
            raise RuntimeError(
                "既にアクティブなブラウザがあります。"
                "先に close() を呼んでください。"
            )

        self._state = BrowserState.LAUNCHING
        logger.info("ブラウザを起動しています... (headed=%s)", headed)

        try:
            from playwright.async_api import async_playwright

            pw = await async_playwright().start()
            self._pw_instance = pw
            self._browser = await pw.chromium.launch(headless=not headed)
            self._viewport = {"width": viewport_width, "height": viewport_height}
            self._state = BrowserState.ACTIVE
            logger.info("ブラウザを起動しました")

        except Exception:
            logger.exception("ブラウザの起動に失敗しました")
            if self._pw_instance is not None:
                try:
                    await self._pw_instance.stop()
                except Exception:
                    logger.exception("Playwright の停止中にエラーが発生しました")
            self._pw_instance = None
            self._browser = None
            self._state = BrowserState.IDLE
            raise

    async def open_session(self) -> PageSession:
        """新しい Context / Page を生成して PageSession を返す。

        Raises:
            RuntimeError: ブラウザがアクティブでない場合
        """
        if not self.is_active or self._browser is None:
            raise RuntimeError(
                "アクティブなブラウザがありません。"
                "先に launch() を呼んでください。"
            )

        context = await self._browser.new_context(viewport=self._viewport)
        page = await context.new_page()
        return PageSession(page, context)

    async def close(self) -> None:
        """ブラウザを終了し、リソースをクリーンアップする。"""
        if self._state in (BrowserState.CLOSED, BrowserState.CLOSING):
            return

        self._state = BrowserState.CLOSING
        logger.info("ブラウザを終了しています...")

        try:
            if self._browser is not None:
                await self._browser.close()
            if self._pw_instance is not None and hasattr(self._pw_instance, "stop"):
                await self._pw_instance.stop()
        except Exception:
            logger.exception("ブラウザの終了中にエラーが発生しました")
        finally:
            self._browser = None
            self._pw_instance = None
            self._state = BrowserState.CLOSED
            logger.info("ブラウザを終了しました")
