"""
CLI エントリポイント — Typer ベースのコマンドラインインターフェース

uiharness コマンドとして以下のサブコマンドを提供する:
  - profiles: 設定プロファイル一覧
  - check: プロファイルで起動できるか確認して停止
  - serve: プロファイルで起動し、Ctrl-C まで動かし続ける
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from types import SimpleNamespace
from typing import Optional

import typer

from .app.profiles import ProfileStore
from .app.runner import ProcessRunner
from .config import HarnessConfig, apply_cli_args, load_config_from_env
from .errors import StartupError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Typer アプリ定義
# ---------------------------------------------------------------------------

app = typer.Typer(
    help=(
        "uiharness — OliveTin UI テストハーネス\n\n"
        "設定プロファイルを指定してテスト対象アプリケーションを起動・確認します。\n"
        "シナリオの実行は pytest から行ってください。"
    ),
    no_args_is_help=True,
)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="DEBUG ログを出力する"),
) -> None:
    """共通オプション。"""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(name)s - %(message)s",
    )


def _build_config(
    configs_dir: Optional[Path],
    app_command: Optional[str],
    artifacts_dir: Optional[Path],
) -> HarnessConfig:
    """環境変数の設定にコマンドラインオプションを重ねる。"""
    args = SimpleNamespace(
        uiharness_app_command=app_command,
        uiharness_configs_dir=configs_dir,
        uiharness_artifacts_dir=artifacts_dir,
    )
    return apply_cli_args(load_config_from_env(), args)


# ---------------------------------------------------------------------------
# profiles コマンド
# ---------------------------------------------------------------------------

@app.command()
def profiles(
    configs_dir: Optional[Path] = typer.Option(
        None, "--configs-dir", "-c", help="設定プロファイルのディレクトリ",
    ),
) -> None:
    """configs ディレクトリ内のプロファイル名を一覧表示する。"""
    config = _build_config(configs_dir, None, None)
    names = ProfileStore(config.configs_dir).names()
    if not names:
        typer.echo(f"プロファイルが見つかりません: {config.configs_dir}", err=True)
        raise typer.Exit(code=1)
    for name in names:
        typer.echo(name)


# ---------------------------------------------------------------------------
# check コマンド
# ---------------------------------------------------------------------------

@app.command()
def check(
    profile: str = typer.Argument(..., help="起動する設定プロファイル"),
    configs_dir: Optional[Path] = typer.Option(
        None, "--configs-dir", "-c", help="設定プロファイルのディレクトリ",
    ),
    app_command: Optional[str] = typer.Option(
        None, "--app-command", help="アプリケーション起動コマンド",
    ),
    artifacts_dir: Optional[Path] = typer.Option(
        None, "--artifacts-dir", help="ログの出力先",
    ),
) -> None:
    """プロファイルでアプリケーションを起動し、準備完了を確認して停止する。"""
    config = _build_config(configs_dir, app_command, artifacts_dir)
    runner = ProcessRunner(config)
    try:
        runner.start(profile)
        typer.echo(f"✓ {profile}: {runner.base_url()}")
    except StartupError as exc:
        typer.echo(f"✗ {profile}: {exc}", err=True)
        raise typer.Exit(code=1)
    finally:
        runner.stop()


# ---------------------------------------------------------------------------
# serve コマンド
# ---------------------------------------------------------------------------

@app.command()
def serve(
    profile: str = typer.Argument(..., help="起動する設定プロファイル"),
    configs_dir: Optional[Path] = typer.Option(
        None, "--configs-dir", "-c", help="設定プロファイルのディレクトリ",
    ),
    app_command: Optional[str] = typer.Option(
        None, "--app-command", help="アプリケーション起動コマンド",
    ),
    artifacts_dir: Optional[Path] = typer.Option(
        None, "--artifacts-dir", help="ログの出力先",
    ),
) -> None:
    """プロファイルでアプリケーションを起動し、Ctrl-C まで動かし続ける。

    手元でシナリオを書くときに、テストと同じ構成のアプリケーションを
    ブラウザで確認するために使う。
    """
    config = _build_config(configs_dir, app_command, artifacts_dir)
    runner = ProcessRunner(config)
    try:
        instance = runner.start(profile)
        typer.echo(f"起動しました: {instance.base_url}/")
        if instance.log_path is not None:
            typer.echo(f"ログ: {instance.log_path}")
        typer.echo("Ctrl-C で停止します。")
        while runner.is_alive():
            time.sleep(0.5)
        typer.echo("アプリケーションが終了しました。", err=True)
        raise typer.Exit(code=1)
    except StartupError as exc:
        typer.echo(f"エラー: {exc}", err=True)
        raise typer.Exit(code=1)
    except KeyboardInterrupt:
        typer.echo("停止します...")
    finally:
        runner.stop()
