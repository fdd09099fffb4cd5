"""
ProcessRunner のテスト

tests/fixtures/fake_olivetin.py を実プロセスとして起動し、
起動・準備完了待機・停止の振る舞いを検証する。
"""

from __future__ import annotations

import dataclasses
import os
import signal
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from unittest.mock import patch

import httpx
import pytest

from uiharness.app.runner import ProcessRunner
from uiharness.config import HarnessConfig
from uiharness.errors import HarnessError, NotRunningError, StartupError

pytestmark = pytest.mark.skipif(
    not hasattr(os, "killpg"), reason="プロセスグループ停止は POSIX のみ対応"
)


@pytest.fixture
def runner(harness_config: HarnessConfig):
    """テスト終了時に必ず停止する ProcessRunner。"""
    runner = ProcessRunner(harness_config)
    yield runner
    runner.stop()


class _AlwaysOkHandler(BaseHTTPRequestHandler):
    def do_GET(self):  # noqa: N802
        self.send_response(200)
        self.send_header("Content-Length", "2")
        self.end_headers()
        self.wfile.write(b"{}")

    def log_message(self, format, *args):
        pass


@pytest.fixture
def foreign_server(harness_config: HarnessConfig):
    """同じポートで待ち受ける、起動対象とは無関係の HTTP サーバー。"""
    server = ThreadingHTTPServer(("127.0.0.1", harness_config.app_port), _AlwaysOkHandler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server
    server.shutdown()
    server.server_close()


# ===========================================================================
# テスト: 起動
# ===========================================================================

class TestStart:
    """start() のテスト。"""

    def test_start_default_profile(self, runner: ProcessRunner, harness_config: HarnessConfig):
        """サブパスなしのプロファイルで起動し、オリジンとルート URL が一致すること。"""
        instance = runner.start("default")

        expected = f"http://127.0.0.1:{harness_config.app_port}"
        assert runner.base_url() == expected
        assert runner.origin_url() == expected
        assert instance.profile.name == "default"
        assert runner.is_alive()

    def test_start_subpath_profile(self, runner: ProcessRunner):
        """サブパス付きプロファイルではルート URL がサブパスで終わること。"""
        runner.start("subpath")

        assert runner.base_url().endswith("/subpath")
        assert not runner.origin_url().endswith("/subpath")

        response = httpx.get(runner.base_url() + "/")
        assert response.status_code == 200
        assert "<title>OliveTin</title>" in response.text

    def test_app_output_logged(self, runner: ProcessRunner, harness_config: HarnessConfig):
        """アプリケーションの出力が artifacts/logs/<profile>.log に保存されること。"""
        instance = runner.start("default")

        assert instance.log_path == harness_config.artifacts_dir / "logs" / "default.log"
        runner.stop()
        assert "Starting single HTTP frontend" in instance.log_path.read_text(encoding="utf-8")

    def test_unknown_profile(self, runner: ProcessRunner):
        """未知のプロファイルは StartupError になり、何も起動しないこと。"""
        with pytest.raises(StartupError, match="未知のプロファイル"):
            runner.start("missing")

        assert runner.instance is None
        assert not runner.is_alive()

    def test_process_exits_before_ready(self, runner: ProcessRunner):
        """準備完了前にプロセスが終了すると終了コード付きで失敗すること。"""
        with pytest.raises(StartupError) as exc_info:
            runner.start("crashing")

        message = str(exc_info.value)
        assert "exit=3" in message
        assert "config error" in message
        assert runner.instance is None

    def test_never_ready_times_out(self, harness_config: HarnessConfig):
        """準備完了にならなければタイムアウトし、プロセスを停止すること。"""
        config = dataclasses.replace(harness_config, startup_timeout=500)
        runner = ProcessRunner(config)

        with pytest.raises(StartupError, match="500ms"):
            runner.start("never-ready")

        assert not runner.is_alive()
        with pytest.raises(httpx.HTTPError):
            httpx.get(f"http://127.0.0.1:{config.app_port}/webUiSettings.json", timeout=0.5)

    def test_port_already_in_use(self, runner: ProcessRunner, foreign_server):
        """ポートが別のサーバーに使われていれば、起動せずに StartupError になること。"""
        with pytest.raises(StartupError, match="既に使用されています"):
            runner.start("default")

        assert runner.instance is None
        assert not runner.is_alive()

    def test_cleanup_error_keeps_startup_error(self, runner: ProcessRunner, caplog):
        """起動失敗後の停止処理が失敗しても、元の StartupError が送出されること。"""
        with patch.object(ProcessRunner, "stop", side_effect=PermissionError("killpg denied")):
            with pytest.raises(StartupError, match="exit=3"):
                runner.start("crashing")

        assert "killpg denied" in caplog.text

    def test_command_not_found(self, harness_config: HarnessConfig, tmp_path: Path):
        """実行ファイルが存在しなければ StartupError になること。"""
        config = dataclasses.replace(
            harness_config, app_command=[str(tmp_path / "no-such-binary")]
        )
        runner = ProcessRunner(config)

        with pytest.raises(StartupError, match="実行できません"):
            runner.start("default")

        runner.stop()

    def test_start_twice_rejected(self, runner: ProcessRunner):
        """起動中の start() は StartupError になり、既存インスタンスは維持されること。"""
        runner.start("default")
        base_url = runner.base_url()

        with pytest.raises(StartupError, match="既に起動中"):
            runner.start("subpath")

        assert runner.base_url() == base_url
        assert runner.is_alive()


# ===========================================================================
# テスト: URL 参照
# ===========================================================================

class TestUrls:
    """base_url() / origin_url() のテスト。"""

    def test_before_start(self, runner: ProcessRunner):
        with pytest.raises(NotRunningError):
            runner.base_url()
        with pytest.raises(NotRunningError):
            runner.origin_url()

    def test_after_stop(self, runner: ProcessRunner):
        """停止後は URL を参照できないこと。"""
        runner.start("subpath")
        runner.stop()

        with pytest.raises(NotRunningError):
            runner.base_url()

    def test_not_running_is_harness_error(self, runner: ProcessRunner):
        with pytest.raises(HarnessError):
            runner.base_url()


# ===========================================================================
# テスト: 停止
# ===========================================================================

class TestStop:
    """stop() のテスト。"""

    def test_stop_without_start(self, runner: ProcessRunner):
        """起動前の stop() は何もしないこと。"""
        runner.stop()
        runner.stop()
        assert runner.instance is None

    def test_stop_is_idempotent(self, runner: ProcessRunner):
        """stop() を 2 回呼んでも 1 回と同じ結果になること。"""
        instance = runner.start("default")

        runner.stop()
        runner.stop()

        assert instance.process.poll() is not None
        assert not runner.is_alive()

    def test_port_released_after_stop(self, runner: ProcessRunner, harness_config: HarnessConfig):
        """停止後は同じポートで再起動できること。"""
        runner.start("default")
        runner.stop()

        runner.start("subpath")
        assert runner.base_url() == f"http://127.0.0.1:{harness_config.app_port}/subpath"

    def test_sigterm_ignored_falls_back_to_sigkill(self, harness_config: HarnessConfig):
        """SIGTERM を無視するプロセスは猶予後に SIGKILL で停止すること。"""
        config = dataclasses.replace(harness_config, stop_timeout=300)
        runner = ProcessRunner(config)
        instance = runner.start("stubborn")

        runner.stop()

        assert instance.process.returncode == -signal.SIGKILL
