"""
E2E シナリオ共通設定

実際の OliveTin と Chromium を使う。OliveTin が見つからなければ
このディレクトリのシナリオはすべてスキップする。
"""

import os
import shutil
from pathlib import Path

import pytest

from uiharness.config import HarnessConfig, apply_cli_args, load_config_from_env

E2E_CONFIGS_DIR = Path(__file__).parent / "configs"


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    command = apply_cli_args(load_config_from_env(), config.option).app_command
    if shutil.which(command[0]) is not None:
        return
    skip = pytest.mark.skip(reason=f"OliveTin が見つかりません: {command[0]}")
    for item in items:
        if item.path.is_relative_to(Path(__file__).parent):
            item.add_marker(skip)


@pytest.fixture(scope="session")
def uiharness_config(pytestconfig: pytest.Config) -> HarnessConfig:
    """configs ディレクトリ未指定時は tests/e2e/configs を使う。"""
    config = apply_cli_args(load_config_from_env(), pytestconfig.option)
    if "UIHARNESS_CONFIGS_DIR" not in os.environ and pytestconfig.option.uiharness_configs_dir is None:
        config.configs_dir = E2E_CONFIGS_DIR
    return config
