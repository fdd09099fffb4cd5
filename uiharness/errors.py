"""
ハーネス例外 — テストハーネスが送出する例外の定義

分類:
  - StartupError: テスト対象アプリケーションが起動・準備完了に至らなかった（スイート全体が失敗）
  - NotRunningError: 起動前 / 停止後に base_url 等を参照した（シナリオ側の呼び出し順序の誤り）
  - WaitTimeoutError: 期待する UI 状態がタイムアウトまでに現れなかった
  - ElementNotFoundError: 必須要素がページに存在しない
  - StaleElementError: 要素ハンドルが再描画等で無効になった
"""

from __future__ import annotations

from typing import Any, Optional


class HarnessError(Exception):
    """ハーネス例外の基底クラス。"""


class StartupError(HarnessError):
    """テスト対象アプリケーションの起動に失敗した。"""


class NotRunningError(HarnessError):
    """アプリケーションが起動していない状態で参照された。"""


class WaitTimeoutError(HarnessError, TimeoutError):
    """待機条件がタイムアウトまでに満たされなかった。

    Attributes:
        last_value: 最後に評価した条件の戻り値
        last_error: 最後の評価で無視された例外（あれば）
    """

    def __init__(
        self,
        message: str,
        last_value: Any = None,
        last_error: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.last_value = last_value
        self.last_error = last_error


class ElementNotFoundError(HarnessError, LookupError):
    """セレクタに一致する要素が見つからなかった。"""

    def __init__(self, selector: str) -> None:
        super().__init__(f"要素が見つかりません: {selector}")
        self.selector = selector


class StaleElementError(HarnessError):
    """要素ハンドルが DOM から切り離され操作できない。"""
