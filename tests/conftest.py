"""
テスト共通フィクスチャ定義

全テストモジュールで共有するフィクスチャを提供する。
ProcessRunner の実プロセステストには tests/fixtures/fake_olivetin.py を
テスト対象アプリケーションとして使う。
"""

import socket
import sys
from pathlib import Path

import pytest

from uiharness.config import HarnessConfig

pytest_plugins = ["pytester"]

FAKE_APP_SCRIPT = Path(__file__).parent / "fixtures" / "fake_olivetin.py"


# ---------------------------------------------------------------------------
# pytest フィクスチャ
# ---------------------------------------------------------------------------

@pytest.fixture
def fake_app_script() -> Path:
    """疑似 OliveTin スクリプトのパス。"""
    return FAKE_APP_SCRIPT


@pytest.fixture
def free_port() -> int:
    """現在空いている TCP ポート番号。"""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def write_profiles(configs_dir: Path) -> Path:
    """テスト用のプロファイル群を configs_dir に書き出す。

    - default: サブパスなし
    - subpath: /subpath 配下で配信
    - crashing: 起動直後に終了コード 3 で終了
    - never-ready: 準備完了にならない
    - stubborn: SIGTERM を無視する
    """
    profiles = {
        "default": "actions: []\n",
        "subpath": "subpath: /subpath\nactions: []\n",
        "crashing": "fake_exit_code: 3\n",
        "never-ready": "fake_never_ready: true\n",
        "stubborn": "fake_ignore_sigterm: true\n",
    }
    for name, content in profiles.items():
        profile_dir = configs_dir / name
        profile_dir.mkdir(parents=True, exist_ok=True)
        (profile_dir / "config.yaml").write_text(content, encoding="utf-8")
    return configs_dir


@pytest.fixture
def configs_dir(tmp_path: Path) -> Path:
    """テスト用プロファイルを配置した configs ディレクトリ。"""
    return write_profiles(tmp_path / "configs")


@pytest.fixture
def harness_config(tmp_path: Path, configs_dir: Path, free_port: int) -> HarnessConfig:
    """疑似 OliveTin を起動する HarnessConfig。"""
    return HarnessConfig(
        app_command=[sys.executable, str(FAKE_APP_SCRIPT)],
        configs_dir=configs_dir,
        artifacts_dir=tmp_path / "artifacts",
        app_host="127.0.0.1",
        app_port=free_port,
        startup_timeout=10_000,
        stop_timeout=2_000,
    )

