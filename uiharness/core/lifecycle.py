"""
ScenarioLifecycle — シナリオスイートのライフサイクル管理

スイート開始時に 1 度だけアプリケーションを起動し、終了時に必ず停止する。
各テストの結果は FailureCapture に渡し、失敗時のみ診断成果物を保存する。

状態遷移:
  NOT_STARTED --setup()--> RUNNING --teardown()--> STOPPED
  NOT_STARTED --teardown()--> STOPPED（起動失敗後の後始末）
"""

from __future__ import annotations

import enum
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Iterator, Optional

from ..errors import StartupError

if TYPE_CHECKING:
    from ..app.runner import ProcessRunner
    from ..browser.session import BrowserSession
    from .artifacts import FailureCapture

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# 状態・結果
# ---------------------------------------------------------------------------

class LifecycleState(enum.Enum):
    """スイートの状態。"""

    NOT_STARTED = "not_started"
    RUNNING = "running"
    STOPPED = "stopped"


@dataclass(frozen=True)
class TestOutcome:
    """単一テストの結果。

    Attributes:
        test_identity: テスト識別子（pytest の nodeid 等）
        passed: 成功したか
        error: 失敗時のエラー表現
    """

    __test__ = False

    test_identity: str
    passed: bool
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return not self.passed


# ---------------------------------------------------------------------------
# ScenarioLifecycle 本体
# ---------------------------------------------------------------------------

class ScenarioLifecycle:
    """ProcessRunner と FailureCapture をスイート単位で束ねる。

    使用例::

        lifecycle = ScenarioLifecycle(ProcessRunner(config), FailureCapture(dir))
        with lifecycle.running("subpath"):
            ...  # 各テスト
            await lifecycle.after_test(outcome, session)
    """

    def __init__(self, runner: ProcessRunner, failure_capture: FailureCapture) -> None:
        self._runner = runner
        self._failure_capture = failure_capture
        self._state = LifecycleState.NOT_STARTED
        self._profile_name: Optional[str] = None

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def runner(self) -> ProcessRunner:
        return self._runner

    @property
    def failure_capture(self) -> FailureCapture:
        return self._failure_capture

    @property
    def profile_name(self) -> Optional[str]:
        return self._profile_name

    def setup(self, profile_name: str) -> None:
        """アプリケーションを起動して RUNNING に遷移する。

        Raises:
            StartupError: 起動に失敗した場合（状態は NOT_STARTED のまま）
            RuntimeError: NOT_STARTED 以外の状態で呼ばれた場合
        """
        if self._state is not LifecycleState.NOT_STARTED:
            raise RuntimeError(f"setup() は NOT_STARTED でのみ呼び出せます（現在: {self._state.value}）")

        self._profile_name = profile_name
        logger.info("スイートを開始します: profile=%s", profile_name)
        try:
            self._runner.start(profile_name)
        except StartupError:
            logger.error("スイートの開始に失敗しました: profile=%s", profile_name)
            raise
        self._state = LifecycleState.RUNNING

    def teardown(self) -> None:
        """アプリケーションを停止して STOPPED に遷移する。

        テストの成否や setup の成否にかかわらず呼び出す。停止中のエラーは
        ログに記録し、記録済みのテスト失敗を上書きしないよう送出しない。
        """
        if self._state is LifecycleState.STOPPED:
            return
        try:
            self._runner.stop()
        except Exception:
            logger.exception("アプリケーションの停止中にエラーが発生しました")
        finally:
            self._state = LifecycleState.STOPPED
            logger.info("スイートを終了しました: profile=%s", self._profile_name)

    async def after_test(
        self, outcome: TestOutcome, session: BrowserSession
    ) -> Optional[Path]:
        """テスト結果を FailureCapture に渡す。スイートの状態は変えない。"""
        return await self._failure_capture.observe(outcome, session)

    @contextmanager
    def running(self, profile_name: str) -> Iterator[ScenarioLifecycle]:
        """setup() と teardown() を対にして実行するコンテキストマネージャ。"""
        try:
            self.setup(profile_name)
            yield self
        finally:
            self.teardown()
