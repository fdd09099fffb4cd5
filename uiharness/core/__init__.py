# コアモジュール
# 待機戦略、失敗時成果物の保存、スイートのライフサイクル管理を提供

from .artifacts import FailureCapture, sanitize_test_identity, screenshot_filename
from .lifecycle import LifecycleState, ScenarioLifecycle, TestOutcome
from .waits import (
    element_displayed,
    element_located,
    element_text_is,
    wait_for,
    wait_for_displayed,
    wait_for_element,
    wait_for_hidden,
    wait_for_text,
)

__all__ = [
    "FailureCapture",
    "LifecycleState",
    "ScenarioLifecycle",
    "TestOutcome",
    "element_displayed",
    "element_located",
    "element_text_is",
    "sanitize_test_identity",
    "screenshot_filename",
    "wait_for",
    "wait_for_displayed",
    "wait_for_element",
    "wait_for_hidden",
    "wait_for_text",
]
