"""
uiharness — OliveTin UI テストハーネス

設定プロファイル単位でのアプリケーション起動、ブラウザ要素の待機・探索、
テスト失敗時のスクリーンショット保存を pytest に統合する。
"""

from .errors import (
    ElementNotFoundError,
    HarnessError,
    NotRunningError,
    StaleElementError,
    StartupError,
    WaitTimeoutError,
)

__version__ = "0.1.0"

__all__ = [
    "ElementNotFoundError",
    "HarnessError",
    "NotRunningError",
    "StaleElementError",
    "StartupError",
    "WaitTimeoutError",
]
