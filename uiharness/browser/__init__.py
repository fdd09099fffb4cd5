# ブラウザモジュール
# Playwright セッションと OliveTin Web UI の要素クエリを提供

from .locators import ElementLocators
from .session import BrowserSession, BrowserState, PageSession, PlaywrightBrowser

__all__ = [
    "BrowserSession",
    "BrowserState",
    "ElementLocators",
    "PageSession",
    "PlaywrightBrowser",
]
