"""
pytest プラグイン — ScenarioLifecycle の pytest へのバインド

テストモジュール 1 つを 1 スイートとして扱い、モジュールの最初のテストの前に
アプリケーションを起動し、最後のテストの後に必ず停止する。
テストごとに新しいページを払い出し、失敗したテストでは
ページを閉じる前にスクリーンショットを保存する。

ブラウザと非同期フィクスチャはセッション共通のイベントループに束縛される。
利用側はテストもセッションのループで実行するよう設定すること::

    [tool.pytest.ini_options]
    asyncio_mode = "auto"
    asyncio_default_fixture_loop_scope = "session"
    asyncio_default_test_loop_scope = "session"

使用例::

    pytestmark = pytest.mark.uiharness_profile("subpath")

    async def test_title(uiharness_app, uiharness_session):
        await uiharness_session.navigate(uiharness_app.base_url() + "/")
        assert await uiharness_session.get_title() == "OliveTin"
"""

from __future__ import annotations

import logging
from typing import AsyncIterator, Iterator

import pytest
import pytest_asyncio

from .app.runner import ProcessRunner
from .browser.locators import ElementLocators
from .browser.session import PageSession, PlaywrightBrowser
from .config import HarnessConfig, apply_cli_args, load_config_from_env
from .core.artifacts import FailureCapture
from .core.lifecycle import ScenarioLifecycle, TestOutcome

logger = logging.getLogger(__name__)

_REPORTS_KEY = pytest.StashKey[dict]()


# ---------------------------------------------------------------------------
# オプション・マーカー
# ---------------------------------------------------------------------------

def pytest_addoption(parser: pytest.Parser) -> None:
    group = parser.getgroup("uiharness", "OliveTin UI テストハーネス")
    group.addoption(
        "--uiharness-app-command", dest="uiharness_app_command", default=None,
        help="アプリケーション起動コマンド（shell 形式）",
    )
    group.addoption(
        "--uiharness-configs-dir", dest="uiharness_configs_dir", default=None,
        help="設定プロファイルのディレクトリ",
    )
    group.addoption(
        "--uiharness-artifacts-dir", dest="uiharness_artifacts_dir", default=None,
        help="スクリーンショット・ログの出力先",
    )
    group.addoption(
        "--uiharness-headed", dest="uiharness_headed", action="store_true", default=None,
        help="ブラウザウィンドウを表示して実行する",
    )
    group.addoption(
        "--uiharness-profile", dest="uiharness_profile", default=None,
        help="マーカー未指定のモジュールで使うプロファイル",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "uiharness_profile(name): モジュールで起動するアプリケーションの設定プロファイル",
    )


# ---------------------------------------------------------------------------
# テスト結果の記録
# ---------------------------------------------------------------------------

@pytest.hookimpl(hookwrapper=True, tryfirst=True)
def pytest_runtest_makereport(item: pytest.Item, call: pytest.CallInfo):
    outcome = yield
    report = outcome.get_result()
    item.stash.setdefault(_REPORTS_KEY, {})[report.when] = report


def outcome_for(item: pytest.Item) -> TestOutcome:
    """記録済みのレポートから TestOutcome を組み立てる。

    setup または call フェーズが失敗していれば失敗とみなす。
    """
    reports = item.stash.get(_REPORTS_KEY, {})
    for when in ("setup", "call"):
        report = reports.get(when)
        if report is not None and report.failed:
            return TestOutcome(item.nodeid, passed=False, error=report.longreprtext)
    return TestOutcome(item.nodeid, passed=True)


# ---------------------------------------------------------------------------
# フィクスチャ
# ---------------------------------------------------------------------------

@pytest.fixture(scope="session")
def uiharness_config(pytestconfig: pytest.Config) -> HarnessConfig:
    """環境変数とコマンドラインオプションから組み立てた設定。"""
    return apply_cli_args(load_config_from_env(), pytestconfig.option)


@pytest_asyncio.fixture(scope="session", loop_scope="session")
async def uiharness_browser(uiharness_config: HarnessConfig) -> AsyncIterator[PlaywrightBrowser]:
    """セッション全体で共有する Chromium。"""
    browser = PlaywrightBrowser()
    await browser.launch(
        headed=uiharness_config.headed,
        viewport_width=uiharness_config.viewport_width,
        viewport_height=uiharness_config.viewport_height,
    )
    try:
        yield browser
    finally:
        await browser.close()


@pytest.fixture(scope="module")
def uiharness_profile(request: pytest.FixtureRequest, uiharness_config: HarnessConfig) -> str:
    """モジュールの uiharness_profile マーカー、なければ既定プロファイル。"""
    marker = request.node.get_closest_marker("uiharness_profile")
    if marker is not None and marker.args:
        return str(marker.args[0])
    return uiharness_config.default_profile


@pytest.fixture(scope="module")
def uiharness_scenario(
    uiharness_config: HarnessConfig, uiharness_profile: str
) -> Iterator[ScenarioLifecycle]:
    """モジュール単位でアプリケーションを起動・停止する。

    起動に失敗するとモジュール内の全テストがエラーになる。
    停止はテストの成否にかかわらず必ず行う。
    """
    lifecycle = ScenarioLifecycle(
        ProcessRunner(uiharness_config),
        FailureCapture(uiharness_config.artifacts_dir),
    )
    with lifecycle.running(uiharness_profile):
        yield lifecycle


@pytest.fixture(scope="module")
def uiharness_app(uiharness_scenario: ScenarioLifecycle) -> ProcessRunner:
    """起動中アプリケーションの ProcessRunner。"""
    return uiharness_scenario.runner


@pytest_asyncio.fixture(loop_scope="session")
async def uiharness_session(
    request: pytest.FixtureRequest,
    uiharness_browser: PlaywrightBrowser,
    uiharness_scenario: ScenarioLifecycle,
) -> AsyncIterator[PageSession]:
    """テストごとの独立したページ。失敗時は閉じる前に撮影する。"""
    session = await uiharness_browser.open_session()
    try:
        yield session
        await uiharness_scenario.after_test(outcome_for(request.node), session)
    finally:
        await session.close()


@pytest.fixture
def uiharness_locators(
    uiharness_session: PageSession,
    uiharness_app: ProcessRunner,
    uiharness_config: HarnessConfig,
) -> ElementLocators:
    return ElementLocators(
        uiharness_session,
        uiharness_app.base_url(),
        timeout=uiharness_config.wait_timeout,
        poll_interval=uiharness_config.poll_interval,
    )
