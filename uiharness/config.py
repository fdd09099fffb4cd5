"""
ハーネス設定 — 環境変数・CLI 引数からの設定読み込み

CLI 引数 > 環境変数 > デフォルト値 の優先順位で適用される。

環境変数一覧:
  UIHARNESS_APP_COMMAND    : アプリケーション起動コマンド（shell 形式, デフォルト: OliveTin）
  UIHARNESS_CONFIGS_DIR    : 設定プロファイルのディレクトリ（デフォルト: configs）
  UIHARNESS_ARTIFACTS_DIR  : 成果物ディレクトリ（デフォルト: artifacts）
  UIHARNESS_APP_HOST       : アプリケーションのホスト名（デフォルト: localhost）
  UIHARNESS_APP_PORT       : アプリケーションのポート（デフォルト: 1337）
  UIHARNESS_READY_PATH     : 準備完了判定に使うパス（デフォルト: /webUiSettings.json）
  UIHARNESS_STARTUP_TIMEOUT: 起動タイムアウト（ミリ秒, デフォルト: 10000）
  UIHARNESS_STOP_TIMEOUT   : 停止タイムアウト（ミリ秒, デフォルト: 5000）
  UIHARNESS_WAIT_TIMEOUT   : UI 状態待機のタイムアウト（ミリ秒, デフォルト: 2000）
  UIHARNESS_POLL_INTERVAL  : UI 状態待機のポーリング間隔（ミリ秒, デフォルト: 100）
  UIHARNESS_HEADED         : ブラウザ表示モード（true/false, デフォルト: false）
  UIHARNESS_PROFILE        : マーカー未指定時の既定プロファイル（デフォルト: default）
"""

from __future__ import annotations

import logging
import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# 環境変数キー定数
# ---------------------------------------------------------------------------

_ENV_APP_COMMAND = "UIHARNESS_APP_COMMAND"
_ENV_CONFIGS_DIR = "UIHARNESS_CONFIGS_DIR"
_ENV_ARTIFACTS_DIR = "UIHARNESS_ARTIFACTS_DIR"
_ENV_APP_HOST = "UIHARNESS_APP_HOST"
_ENV_APP_PORT = "UIHARNESS_APP_PORT"
_ENV_READY_PATH = "UIHARNESS_READY_PATH"
_ENV_STARTUP_TIMEOUT = "UIHARNESS_STARTUP_TIMEOUT"
_ENV_STOP_TIMEOUT = "UIHARNESS_STOP_TIMEOUT"
_ENV_WAIT_TIMEOUT = "UIHARNESS_WAIT_TIMEOUT"
_ENV_POLL_INTERVAL = "UIHARNESS_POLL_INTERVAL"
_ENV_HEADED = "UIHARNESS_HEADED"
_ENV_PROFILE = "UIHARNESS_PROFILE"

# 整数として解釈する環境変数と属性名の対応
_INT_SETTINGS = {
    _ENV_APP_PORT: "app_port",
    _ENV_STARTUP_TIMEOUT: "startup_timeout",
    _ENV_STOP_TIMEOUT: "stop_timeout",
    _ENV_WAIT_TIMEOUT: "wait_timeout",
    _ENV_POLL_INTERVAL: "poll_interval",
}


# ---------------------------------------------------------------------------
# 設定データクラス
# ---------------------------------------------------------------------------

@dataclass
class HarnessConfig:
    """テストハーネスの実行時設定。

    時間はすべてミリ秒で保持する。

    Attributes:
        app_command: アプリケーション起動コマンド（-configdir は自動付与）
        configs_dir: プロファイルディレクトリ群の親ディレクトリ
        artifacts_dir: スクリーンショット・ログの出力先
        app_host: base_url に使うホスト名
        app_port: アプリケーションに PORT 環境変数で渡すポート
        ready_path: 準備完了を判定する HTTP パス（サブパス配下）
        startup_timeout: 起動から準備完了までの上限
        stop_timeout: SIGTERM 後に SIGKILL へ切り替えるまでの猶予
        wait_timeout: UI 状態待機の既定タイムアウト
        poll_interval: UI 状態待機の既定ポーリング間隔
        headed: ブラウザウィンドウを表示するか
        viewport_width: ビューポート幅
        viewport_height: ビューポート高さ
        default_profile: マーカー未指定時のプロファイル名
    """

    app_command: list[str] = field(default_factory=lambda: ["OliveTin"])
    configs_dir: Path = field(default_factory=lambda: Path("configs"))
    artifacts_dir: Path = field(default_factory=lambda: Path("artifacts"))
    app_host: str = "localhost"
    app_port: int = 1337
    ready_path: str = "/webUiSettings.json"
    startup_timeout: int = 10_000
    stop_timeout: int = 5_000
    wait_timeout: int = 2_000
    poll_interval: int = 100
    headed: bool = False
    viewport_width: int = 1280
    viewport_height: int = 720
    default_profile: str = "default"


# ---------------------------------------------------------------------------
# 環境変数からの読み込み
# ---------------------------------------------------------------------------

def _parse_bool(value: str) -> bool:
    """"true", "1", "yes" を True、それ以外を False に変換する。"""
    return value.lower() in ("true", "1", "yes")


def load_config_from_env() -> HarnessConfig:
    """環境変数から HarnessConfig を生成する。

    設定されていない環境変数はデフォルト値を使用する。
    数値として解釈できない値は警告を出して無視する。

    Returns:
        環境変数から読み込んだ設定
    """
    config = HarnessConfig()

    if _ENV_APP_COMMAND in os.environ:
        command = shlex.split(os.environ[_ENV_APP_COMMAND])
        if command:
            config.app_command = command
        else:
            logger.warning("%s が空のため無視します", _ENV_APP_COMMAND)

    if _ENV_CONFIGS_DIR in os.environ:
        config.configs_dir = Path(os.environ[_ENV_CONFIGS_DIR])

    if _ENV_ARTIFACTS_DIR in os.environ:
        config.artifacts_dir = Path(os.environ[_ENV_ARTIFACTS_DIR])

    if _ENV_APP_HOST in os.environ:
        config.app_host = os.environ[_ENV_APP_HOST]

    if _ENV_READY_PATH in os.environ:
        config.ready_path = os.environ[_ENV_READY_PATH]

    for env_key, attr in _INT_SETTINGS.items():
        if env_key not in os.environ:
            continue
        try:
            setattr(config, attr, int(os.environ[env_key]))
        except ValueError:
            logger.warning("%s の値が不正です: %s", env_key, os.environ[env_key])

    if _ENV_HEADED in os.environ:
        config.headed = _parse_bool(os.environ[_ENV_HEADED])

    if _ENV_PROFILE in os.environ:
        config.default_profile = os.environ[_ENV_PROFILE]

    logger.debug("設定を読み込みました: %s", config)
    return config


def apply_cli_args(config: HarnessConfig, args: Any) -> HarnessConfig:
    """CLI 引数を HarnessConfig に適用する。

    args は pytest の config.option（argparse.Namespace）または同じ属性名を
    持つオブジェクト。値が None の属性は上書きしない。

    Args:
        config: ベースとなる設定（環境変数から読み込み済み）
        args: uiharness_* 属性を持つ引数オブジェクト

    Returns:
        CLI 引数が適用された設定
    """
    app_command = getattr(args, "uiharness_app_command", None)
    if app_command:
        config.app_command = shlex.split(app_command)

    configs_dir = getattr(args, "uiharness_configs_dir", None)
    if configs_dir is not None:
        config.configs_dir = Path(configs_dir)

    artifacts_dir = getattr(args, "uiharness_artifacts_dir", None)
    if artifacts_dir is not None:
        config.artifacts_dir = Path(artifacts_dir)

    if getattr(args, "uiharness_headed", None):
        config.headed = True

    profile = getattr(args, "uiharness_profile", None)
    if profile is not None:
        config.default_profile = profile

    return config
