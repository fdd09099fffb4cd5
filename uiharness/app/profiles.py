"""
設定プロファイル — 名前付きの起動設定の解決

configs/<name>/config.yaml を 1 つのプロファイルとして扱う。
アプリケーションはプロファイルのディレクトリを -configdir として受け取り、
ハーネスは config.yaml からサブパス等の配信設定を読み取る。
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from ..errors import StartupError

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "config.yaml"


# ---------------------------------------------------------------------------
# プロファイルモデル
# ---------------------------------------------------------------------------

class ConfigurationProfile(BaseModel):
    """解決済みの設定プロファイル。生成後は変更できない。"""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="プロファイル名")
    config_dir: Path = Field(..., description="アプリケーションに渡す設定ディレクトリ")
    subpath: str = Field(default="", description="配信サブパス（例: /subpath）")
    settings: dict[str, Any] = Field(default_factory=dict, description="config.yaml の内容")

    @field_validator("subpath", mode="before")
    @classmethod
    def normalize_subpath(cls, v: Any) -> str:
        """サブパスを "" または "/segment" 形式（末尾スラッシュなし）に正規化する。"""
        if v is None:
            return ""
        text = str(v).strip().strip("/")
        return f"/{text}" if text else ""


# ---------------------------------------------------------------------------
# ProfileStore 本体
# ---------------------------------------------------------------------------

class ProfileStore:
    """configs ディレクトリからプロファイルを解決する。"""

    def __init__(self, configs_dir: Path) -> None:
        self._configs_dir = Path(configs_dir)
        self._yaml = YAML(typ="safe")

    @property
    def configs_dir(self) -> Path:
        return self._configs_dir

    def names(self) -> list[str]:
        """config.yaml を持つプロファイル名を昇順で返す。"""
        if not self._configs_dir.is_dir():
            return []
        return sorted(
            child.name
            for child in self._configs_dir.iterdir()
            if (child / CONFIG_FILENAME).is_file()
        )

    def resolve(self, name: str) -> ConfigurationProfile:
        """プロファイル名から ConfigurationProfile を解決する。

        Args:
            name: プロファイル名（configs 直下のディレクトリ名）

        Returns:
            解決済みのプロファイル

        Raises:
            StartupError: 未知のプロファイル、または config.yaml が読めない場合
        """
        if not name or Path(name).name != name:
            raise StartupError(f"プロファイル名が不正です: {name!r}")

        config_dir = self._configs_dir / name
        config_path = config_dir / CONFIG_FILENAME
        if not config_path.is_file():
            known = ", ".join(self.names()) or "なし"
            raise StartupError(
                f"未知のプロファイルです: {name}（{config_path} が存在しません。既知: {known}）"
            )

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = self._yaml.load(f)
        except YAMLError as e:
            line_info = ""
            if hasattr(e, "problem_mark") and e.problem_mark is not None:
                mark = e.problem_mark
                line_info = f" (行 {mark.line + 1}, 列 {mark.column + 1})"
            raise StartupError(
                f"プロファイル {name} の YAML 構文エラー{line_info}: {e}"
            ) from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise StartupError(f"プロファイル {name} の config.yaml がマッピングではありません")

        try:
            profile = ConfigurationProfile(
                name=name,
                config_dir=config_dir.resolve(),
                subpath=data.get("subpath", ""),
                settings=data,
            )
        except ValidationError as e:
            raise StartupError(f"プロファイル {name} の検証エラー: {e}") from e

        logger.info("プロファイルを解決しました: %s (subpath=%r)", name, profile.subpath)
        return profile
