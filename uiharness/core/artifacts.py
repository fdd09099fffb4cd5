"""
FailureCapture — テスト失敗時の診断成果物の保存

失敗したテストごとに、その時点のブラウザ状態のスクリーンショットを
テスト識別子から導いたファイル名で保存する。

保存はベストエフォート。撮影や書き込みに失敗しても元のテスト失敗を
置き換えず、警告ログに記録するだけにとどめる。
"""

from __future__ import annotations

import hashlib
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from ..browser.session import BrowserSession
    from .lifecycle import TestOutcome

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# テスト識別子サニタイズ用パターン
# ---------------------------------------------------------------------------

_UNSAFE_CHARS = re.compile(r"[^\w\-.]")
"""ファイル名に使用できない文字を検出する正規表現。"""

_MAX_NAME_LENGTH = 200


# ---------------------------------------------------------------------------
# FailureCapture 本体
# ---------------------------------------------------------------------------

@dataclass
class FailureCapture:
    """失敗テストのスクリーンショット保存を担当する。

    Attributes:
        artifacts_dir: 成果物ベースディレクトリ（screenshots/ 以下に保存）
    """

    artifacts_dir: Path = field(default_factory=lambda: Path("artifacts"))
    _captured: dict[str, Optional[Path]] = field(default_factory=dict, init=False, repr=False)

    @property
    def screenshots_dir(self) -> Path:
        return self.artifacts_dir / "screenshots"

    @property
    def captured(self) -> dict[str, Optional[Path]]:
        """撮影済みのテスト識別子と保存先（失敗時は None）。"""
        return dict(self._captured)

    async def observe(
        self, outcome: TestOutcome, session: BrowserSession
    ) -> Optional[Path]:
        """テスト結果を受け取り、失敗時のみスクリーンショットを保存する。

        成功したテストに対しては何もしない。
        """
        if outcome.passed:
            return None
        return await self.on_test_failure(outcome.test_identity, session)

    async def on_test_failure(
        self, test_identity: str, session: BrowserSession
    ) -> Optional[Path]:
        """失敗したテストのスクリーンショットを保存する。

        同じ識別子に対しては 1 度だけ撮影する。

        Args:
            test_identity: テスト識別子（pytest の nodeid 等）
            session: 撮影対象のブラウザセッション

        Returns:
            保存したファイルのパス。撮影に失敗した場合は None。
        """
        if test_identity in self._captured:
            logger.debug("撮影済みのためスキップ: %s", test_identity)
            return self._captured[test_identity]

        filepath = self.screenshots_dir / screenshot_filename(test_identity)
        logger.info("テスト失敗のためスクリーンショットを撮影します: %s", test_identity)

        try:
            data = await session.capture_screenshot()
            filepath.parent.mkdir(parents=True, exist_ok=True)
            filepath.write_bytes(data)
        except Exception as exc:
            logger.warning(
                "スクリーンショット保存に失敗: %s (%s)", test_identity, exc,
            )
            self._captured[test_identity] = None
            return None

        self._captured[test_identity] = filepath
        logger.info("スクリーンショットを保存しました: %s", filepath)
        return filepath


# ---------------------------------------------------------------------------
# ヘルパー関数
# ---------------------------------------------------------------------------

def screenshot_filename(test_identity: str) -> str:
    """テスト識別子からスクリーンショットのファイル名を導く。

    サニタイズで識別子が変わった場合（記号の置換・切り詰め）は、元の識別子の
    SHA-256 先頭 8 桁を付与し、異なるテストが同じファイル名にならないようにする。

    Args:
        test_identity: テスト識別子

    Returns:
        拡張子 .png 付きのファイル名
    """
    name = sanitize_test_identity(test_identity)
    if name != test_identity:
        digest = hashlib.sha256(test_identity.encode("utf-8")).hexdigest()[:8]
        name = f"{name}-{digest}"
    return f"{name}.png"


def sanitize_test_identity(test_identity: str) -> str:
    """テスト識別子をファイル名に安全な文字列に変換する。

    空白と記号をアンダースコアに置換し、連続するアンダースコアを 1 つにまとめる。
    変換後が空になる場合は "test" を返す。

    Args:
        test_identity: サニタイズ対象の識別子

    Returns:
        サニタイズ済みの文字列
    """
    sanitized = _UNSAFE_CHARS.sub("_", test_identity)
    sanitized = re.sub(r"_+", "_", sanitized)
    sanitized = sanitized.strip("_.")[:_MAX_NAME_LENGTH]
    return sanitized or "test"
