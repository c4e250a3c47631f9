"""
例外定義 — patterniq 共通の例外階層

要素が見つからないこと自体は例外ではなく ResolutionFailure として返す。
ここで定義する例外はプログラミングエラー・設定不備・呼び出し側が
明示的にハードエラーを望んだ場合に使用する。
"""

from __future__ import annotations

from typing import Optional


class PatternIqError(Exception):
    """patterniq の全例外の基底クラス。"""


class PatternLoadError(PatternIqError):
    """パターン定義ファイルの読み込み・検証に失敗した場合のエラー。

    Attributes:
        source: 読み込み元（ファイルパス等）
        line: YAML ファイル内の行番号（取得可能な場合）
    """

    def __init__(self, message: str, source: str = "", line: Optional[int] = None) -> None:
        self.source = source
        self.line = line
        super().__init__(message)


class ScreenCodeNotConfiguredError(PatternIqError):
    """使用するスクリーンコードが引数・既定値・設定のいずれからも決まらない場合のエラー。"""


class LocatorResolutionError(PatternIqError):
    """解決失敗をハードエラーとして扱う場合に送出されるエラー。

    Attributes:
        failure: 失敗内容（ResolutionFailure）
    """

    def __init__(self, message: str, failure: object = None) -> None:
        self.failure = failure
        super().__init__(message)


class PageClosedError(PatternIqError):
    """DOM アダプタが参照するページが既に閉じられている場合のエラー。"""


class LocatorNotFoundError(PatternIqError):
    """loc.* 形式のリソースロケータが見つからない、または形式が不正な場合のエラー。"""
