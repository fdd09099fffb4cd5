"""
ProcessRunner — テスト対象アプリケーションのプロセス管理

設定プロファイルを指定してアプリケーションを起動し、HTTP の準備完了シグナルを
確認するまで待機する。停止は冪等で、起動に失敗した後でも安全に呼び出せる。

主な機能:
  - start(): プロファイル解決 → プロセス起動 → 準備完了待機
  - base_url() / origin_url(): 起動中インスタンスの URL
  - stop(): プロセスグループへの SIGTERM → 猶予後 SIGKILL
"""

from __future__ import annotations

import logging
import os
import signal
import socket
import subprocess
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import IO, Optional

import httpx

from ..config import HarnessConfig
from ..errors import NotRunningError, StartupError
from .profiles import ConfigurationProfile, ProfileStore

logger = logging.getLogger(__name__)

# 準備完了プローブのポーリング間隔（秒）
_READY_POLL_INTERVAL = 0.1

# StartupError に含めるログ末尾の行数
_LOG_TAIL_LINES = 20


# ---------------------------------------------------------------------------
# 起動中インスタンス
# ---------------------------------------------------------------------------

@dataclass
class RunningInstance:
    """起動中のアプリケーションプロセスと解決済み URL。

    Attributes:
        profile: 起動に使ったプロファイル
        process: アプリケーションプロセス
        origin_url: スキーム・ホスト・ポートのみの URL
        base_url: サブパスを含むルート URL
        log_path: 標準出力・標準エラーの保存先
        started_at: 準備完了を確認した日時
    """

    profile: ConfigurationProfile
    process: subprocess.Popen
    origin_url: str
    base_url: str
    log_path: Optional[Path] = None
    started_at: datetime = field(default_factory=datetime.now)


# ---------------------------------------------------------------------------
# ProcessRunner 本体
# ---------------------------------------------------------------------------

class ProcessRunner:
    """プロファイル単位でアプリケーションを起動・停止する。

    同時に保持する RunningInstance は高々 1 つ。

    使用例::

        runner = ProcessRunner(config)
        runner.start("subpath")
        try:
            url = runner.base_url()
        finally:
            runner.stop()
    """

    def __init__(
        self,
        config: HarnessConfig,
        profiles: Optional[ProfileStore] = None,
    ) -> None:
        """ProcessRunner を初期化する。

        Args:
            config: ハーネス設定
            profiles: プロファイル解決器（None で config.configs_dir から生成）
        """
        self._config = config
        self._profiles = profiles or ProfileStore(config.configs_dir)
        self._instance: Optional[RunningInstance] = None
        self._process: Optional[subprocess.Popen] = None
        self._log_file: Optional[IO[bytes]] = None

    @property
    def profiles(self) -> ProfileStore:
        return self._profiles

    @property
    def instance(self) -> Optional[RunningInstance]:
        """起動中のインスタンス。未起動・停止後は None。"""
        return self._instance

    # -------------------------------------------------------------------
    # パブリック API
    # -------------------------------------------------------------------

    def start(self, profile_name: str) -> RunningInstance:
        """プロファイルを指定してアプリケーションを起動する。

        準備完了（ready_path への HTTP 200 応答）まで待機する。
        失敗時は起動したプロセスを停止してから StartupError を送出する。

        Args:
            profile_name: 設定プロファイル名

        Returns:
            起動したインスタンス

        Raises:
            StartupError: プロファイルが未知、ポートが使用中、プロセスが準備完了前に
                終了、タイムアウト、または既に起動中の場合
        """
        if self._process is not None:
            raise StartupError(
                "既に起動中のインスタンスがあります。先に stop() を呼んでください。"
            )

        profile = self._profiles.resolve(profile_name)
        origin_url = f"http://{self._config.app_host}:{self._config.app_port}"
        base_url = origin_url + profile.subpath

        self._ensure_port_free()

        try:
            self._launch(profile)
            self._wait_until_ready(profile, base_url)
        except BaseException:
            try:
                self.stop()
            except Exception:
                logger.exception("起動失敗後の停止処理でエラーが発生しました")
            raise

        self._instance = RunningInstance(
            profile=profile,
            process=self._process,
            origin_url=origin_url,
            base_url=base_url,
            log_path=self._log_path(profile),
        )
        logger.info(
            "アプリケーションを起動しました: profile=%s, base_url=%s, pid=%d",
            profile.name, base_url, self._process.pid,
        )
        return self._instance

    def base_url(self) -> str:
        """起動中インスタンスのルート URL（サブパス込み）を返す。

        Raises:
            NotRunningError: 起動前または停止後に呼ばれた場合
        """
        return self._require_instance().base_url

    def origin_url(self) -> str:
        """起動中インスタンスのオリジン（サブパスなし）を返す。

        Raises:
            NotRunningError: 起動前または停止後に呼ばれた場合
        """
        return self._require_instance().origin_url

    def is_alive(self) -> bool:
        """プロセスが動作中かどうかを返す。"""
        return self._process is not None and self._process.poll() is None

    def stop(self) -> None:
        """アプリケーションを停止し、リソースを解放する。

        何も起動していない場合は何もしない。何度呼んでもよい。
        """
        process = self._process
        self._instance = None
        self._process = None

        try:
            if process is not None:
                self._terminate(process)
        finally:
            if self._log_file is not None:
                self._log_file.close()
                self._log_file = None

    # -------------------------------------------------------------------
    # プロセス起動
    # -------------------------------------------------------------------

    def _ensure_port_free(self) -> None:
        """app_host:app_port で既に待ち受けているサーバーがあれば StartupError を送出する。"""
        host, port = self._config.app_host, self._config.app_port
        try:
            with socket.create_connection((host, port), timeout=0.5):
                pass
        except OSError:
            return
        raise StartupError(
            f"ポート {port} は既に使用されています（{host}）。"
            f"別のアプリケーションが起動していないか確認してください。"
        )

    def _launch(self, profile: ConfigurationProfile) -> None:
        cmd = [*self._config.app_command, "-configdir", str(profile.config_dir)]
        env = os.environ.copy()
        env["PORT"] = str(self._config.app_port)

        log_path = self._log_path(profile)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        self._log_file = open(log_path, "wb")

        logger.info("アプリケーションを起動しています: %s", " ".join(cmd))
        try:
            # プロセスグループごと停止できるよう新しいセッションで起動する
            self._process = subprocess.Popen(
                cmd,
                env=env,
                stdin=subprocess.DEVNULL,
                stdout=self._log_file,
                stderr=subprocess.STDOUT,
                start_new_session=True,
            )
        except OSError as exc:
            raise StartupError(f"アプリケーションを実行できません: {cmd[0]}: {exc}") from exc

    def _wait_until_ready(self, profile: ConfigurationProfile, base_url: str) -> None:
        """ready_path が HTTP 200 を返すまでポーリングする。"""
        assert self._process is not None
        ready_url = base_url + self._config.ready_path
        timeout_sec = self._config.startup_timeout / 1000.0
        deadline = time.monotonic() + timeout_sec

        with httpx.Client(timeout=min(timeout_sec, 2.0)) as client:
            while True:
                code = self._process.poll()
                if code is not None:
                    raise self._exited_before_ready(profile, code)

                try:
                    response = client.get(ready_url)
                    if response.status_code == 200:
                        # 応答したのが起動したプロセスであることを確認する
                        code = self._process.poll()
                        if code is None:
                            return
                        raise self._exited_before_ready(profile, code)
                    logger.debug("準備完了待機中: %s -> %d", ready_url, response.status_code)
                except httpx.HTTPError as exc:
                    logger.debug("準備完了待機中: %s (%s)", ready_url, exc)

                if time.monotonic() >= deadline:
                    raise StartupError(
                        f"アプリケーションが {self._config.startup_timeout}ms 以内に"
                        f"準備完了になりませんでした: {ready_url}\n"
                        f"{self._read_log_tail(profile)}"
                    )
                time.sleep(_READY_POLL_INTERVAL)

    # -------------------------------------------------------------------
    # プロセス停止
    # -------------------------------------------------------------------

    def _terminate(self, process: subprocess.Popen) -> None:
        if process.poll() is not None:
            logger.debug("プロセスは既に終了しています (exit=%s)", process.returncode)
            return

        logger.info("アプリケーションを停止しています... (pid=%d)", process.pid)
        _signal_group(process, signal.SIGTERM)
        try:
            process.wait(timeout=self._config.stop_timeout / 1000.0)
        except subprocess.TimeoutExpired:
            logger.warning(
                "%dms 以内に終了しなかったため強制終了します (pid=%d)",
                self._config.stop_timeout, process.pid,
            )
            _signal_group(process, signal.SIGKILL)
            process.wait()
        logger.info("アプリケーションを停止しました (exit=%s)", process.returncode)

    # -------------------------------------------------------------------
    # ヘルパー
    # -------------------------------------------------------------------

    def _require_instance(self) -> RunningInstance:
        if self._instance is None:
            raise NotRunningError(
                "アプリケーションが起動していません。先に start() を呼んでください。"
            )
        return self._instance

    def _log_path(self, profile: ConfigurationProfile) -> Path:
        return self._config.artifacts_dir / "logs" / f"{profile.name}.log"

    def _exited_before_ready(self, profile: ConfigurationProfile, code: int) -> StartupError:
        return StartupError(
            f"アプリケーションが準備完了前に終了しました"
            f"（profile={profile.name}, exit={code}）\n"
            f"{self._read_log_tail(profile)}"
        )

    def _read_log_tail(self, profile: ConfigurationProfile) -> str:
        """アプリケーションログの末尾を返す（読めなければ空文字列）。"""
        if self._log_file is not None:
            self._log_file.flush()
        try:
            with open(self._log_path(profile), "r", encoding="utf-8", errors="replace") as f:
                return "".join(deque(f, maxlen=_LOG_TAIL_LINES))
        except OSError:
            return ""


def _signal_group(process: subprocess.Popen, sig: signal.Signals) -> None:
    """プロセスグループ全体にシグナルを送る。"""
    try:
        os.killpg(process.pid, sig)
    except ProcessLookupError:
        pass
