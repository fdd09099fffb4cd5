"""
ElementLocators — OliveTin Web UI の名前付き要素クエリ

ルートコンテナ、アクションボタン、実行結果ダイアログなど、
シナリオで繰り返し使う領域への問い合わせをまとめる。

単一要素のクエリは ElementNotFoundError を送出し、
複数要素のクエリは空リストを返す。不在そのものを検証するかは呼び出し側が決める。
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..core.waits import wait_for_element

if TYPE_CHECKING:
    from playwright.async_api import ElementHandle

    from .session import BrowserSession

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# セレクタ定義
# ---------------------------------------------------------------------------

ROOT_SELECTOR = "body"
ROOT_LOADED_SELECTOR = 'body[initial-marshal-complete="true"]'
ACTION_BUTTONS_SELECTOR = "#contentActions button"
RESULTS_DIALOG_SELECTOR = "#execution-results-popup"
DIALOG_TITLE_SELECTOR = "#execution-dialog-title"
ERROR_REGION_SELECTOR = "#big-error"


def title_selector(title: str) -> str:
    """title 属性が一致する要素の CSS セレクタを返す。"""
    escaped = title.replace("\\", "\\\\").replace('"', '\\"')
    return f'[title="{escaped}"]'


# ---------------------------------------------------------------------------
# ElementLocators 本体
# ---------------------------------------------------------------------------

class ElementLocators:
    """ページ領域ごとの要素クエリ。

    使用例::

        locators = ElementLocators(session, runner.base_url())
        await locators.get_root_and_wait()
        buttons = await locators.action_buttons_titled("dir-popup")
    """

    def __init__(
        self,
        session: BrowserSession,
        base_url: str,
        timeout: int = 2000,
        poll_interval: int = 100,
    ) -> None:
        """ElementLocators を初期化する。

        Args:
            session: 操作対象のブラウザセッション
            base_url: アプリケーションのルート URL（サブパス込み）
            timeout: 初期ロード待機のタイムアウト（ミリ秒）
            poll_interval: 初期ロード待機のポーリング間隔（ミリ秒）
        """
        self._session = session
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._poll_interval = poll_interval

    @property
    def session(self) -> BrowserSession:
        return self._session

    async def get_root_and_wait(self) -> ElementHandle:
        """ルート URL を開き、Web UI の初期ロード完了まで待機する。

        Returns:
            ロード完了後のルートコンテナ

        Raises:
            WaitTimeoutError: 初期ロードが完了しなかった場合
        """
        await self._session.navigate(self._base_url + "/")
        root = await wait_for_element(
            self._session,
            ROOT_LOADED_SELECTOR,
            self._timeout,
            self._poll_interval,
        )
        logger.debug("Web UI の初期ロードが完了しました")
        return root

    async def root(self) -> ElementHandle:
        return await self._session.find_element(ROOT_SELECTOR)

    async def action_buttons(self) -> list[ElementHandle]:
        """アクション一覧のボタンを文書順で返す。"""
        return await self._session.find_elements(ACTION_BUTTONS_SELECTOR)

    async def action_buttons_titled(self, title: str) -> list[ElementHandle]:
        """title 属性が一致するアクションボタンを返す。"""
        return await self._session.find_elements(title_selector(title))

    async def results_dialog(self) -> ElementHandle:
        return await self._session.find_element(RESULTS_DIALOG_SELECTOR)

    async def dialog_title(self) -> ElementHandle:
        return await self._session.find_element(DIALOG_TITLE_SELECTOR)

    async def error_region(self) -> ElementHandle:
        return await self._session.find_element(ERROR_REGION_SELECTOR)
