# アプリケーションモジュール
# 設定プロファイルの解決とテスト対象プロセスの起動・停止を提供

from .profiles import ConfigurationProfile, ProfileStore
from .runner import ProcessRunner, RunningInstance

__all__ = [
    "ConfigurationProfile",
    "ProcessRunner",
    "ProfileStore",
    "RunningInstance",
]
