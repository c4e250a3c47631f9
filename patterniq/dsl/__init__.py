# DSL モジュール
# フィールド識別子パーサー、変数ストア、パターン定義スキーマ、パターンリポジトリ、リソースロケータを提供

from . import identifier  # noqa: F401
from . import variables  # noqa: F401
from . import schema  # noqa: F401
from . import patterns  # noqa: F401
from . import locators  # noqa: F401
