"""
CLI エントリポイント — Typer ベースのコマンドラインインターフェース

piq コマンドとして以下のサブコマンドを提供する:
  - init: パターンディレクトリと設定テンプレートの生成
  - parse: フィールド識別子の分解結果を表示
  - validate: パターンファイルのスキーマ検証
  - list-patterns: 読み込まれるスクリーンコードとカテゴリの一覧
  - resolve: ブラウザで URL を開き、フィールド識別子をロケータに解決
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer

from .dsl.identifier import Structured, parse_identifier
from .dsl.patterns import PatternRepository, discover_pattern_files

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Typer アプリ定義
# ---------------------------------------------------------------------------

app = typer.Typer(
    help=(
        "piq — フィールド識別子によるロケータ解決ツール\n\n"
        "基本の流れ:\n"
        "  1. piq init                       パターンディレクトリを生成\n"
        "  2. piq validate patterns          パターンファイルを検証\n"
        "  3. piq resolve URL input Username  ロケータを解決\n\n"
        "詳しくは各コマンドに --help を付けてください。"
    ),
    no_args_is_help=True,
)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="デバッグログを表示する"),
) -> None:
    """ログ出力レベルを設定する。"""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# ---------------------------------------------------------------------------
# init コマンド
# ---------------------------------------------------------------------------

_PATTERN_TEMPLATE = """\
# パターン定義: {screen_code}
# 値は ';' 区切り、またはリストで記述する（記述順がフォールバックの優先順位）
#
# 使用できる変数:
#   #{{loc.auto.fieldName}}              識別子のフィールド名
#   #{{loc.auto.fieldName.toLowerCase}}  フィールド名（小文字）
#   #{{loc.auto.forId}}                  ラベルの for 属性（input / select / textarea）
#   #{{loc.auto.section.value}}          {{name::value}} の value
screenCode: {screen_code}
fields:
  button:
    - "//button[normalize-space()='#{{loc.auto.fieldName}}']"
    - "button:has-text('#{{loc.auto.fieldName}}')"
  input:
    - "//input[@id='#{{loc.auto.forId}}']"
    - "//input[@placeholder='#{{loc.auto.fieldName}}']"
    - "input[name='#{{loc.auto.fieldName.toLowerCase}}']"
  label:
    - "//label[normalize-space()='#{{loc.auto.fieldName}}']"
sections: {{}}
locations: {{}}
"""

_CONFIG_TEMPLATE = """\
# patterniq 設定
patternIq:
  enable: true
  config: {screen_code}
  retryTimeout: 30000
  retryInterval: 2000
  patternDir: patterns
  locatorDir: locators
  pageMapping: {{}}
vars: {{}}
"""


@app.command()
def init(
    project_dir: Path = typer.Argument(
        Path("."), help="プロジェクトディレクトリ（デフォルト: カレント）",
    ),
    screen_code: str = typer.Option(
        "samplePage", "--screen", "-s", help="雛形として生成するスクリーンコード",
    ),
) -> None:
    """パターンディレクトリと設定テンプレートを生成する。"""
    try:
        pattern_dir = project_dir / "patterns"
        pattern_dir.mkdir(parents=True, exist_ok=True)

        pattern_path = pattern_dir / f"{screen_code}.pattern.yaml"
        if not pattern_path.exists():
            pattern_path.write_text(
                _PATTERN_TEMPLATE.format(screen_code=screen_code), encoding="utf-8",
            )

        config_path = project_dir / "patterniq.yaml"
        if not config_path.exists():
            config_path.write_text(
                _CONFIG_TEMPLATE.format(screen_code=screen_code), encoding="utf-8",
            )

        typer.echo(f"プロジェクトを初期化しました: {project_dir.resolve()}")
    except OSError as exc:
        typer.echo(f"エラー: {exc}", err=True)
        raise typer.Exit(code=1)


# ---------------------------------------------------------------------------
# parse コマンド
# ---------------------------------------------------------------------------

@app.command()
def parse(
    identifier: str = typer.Argument(..., help="フィールド識別子（例: \"{Login Form} Submit[2]\"）"),
) -> None:
    """フィールド識別子の分解結果を表示する。"""
    result = parse_identifier(identifier)
    if isinstance(result, Structured):
        ident = result.identifier
        typer.echo("種別: structured")
    else:
        ident = result.to_identifier()
        typer.echo("種別: unparsed（文字列全体をフィールド名として扱います）")

    typer.echo(f"location: {ident.location_name or '-'}"
               + (f" ({ident.location_value})" if ident.location_value else ""))
    typer.echo(f"section: {ident.section_name or '-'}"
               + (f" ({ident.section_value})" if ident.section_value else ""))
    typer.echo(f"field: {ident.field_name}")
    typer.echo(f"instance: {ident.instance}")


# ---------------------------------------------------------------------------
# validate コマンド
# ---------------------------------------------------------------------------

@app.command()
def validate(
    path: Path = typer.Argument(..., help="パターンファイル、またはパターンディレクトリ"),
) -> None:
    """パターンファイルのスキーマ検証を行う。"""
    if path.is_dir():
        files = discover_pattern_files(path)
        if not files:
            typer.echo(f"エラー: パターンファイルが見つかりません: {path}", err=True)
            raise typer.Exit(code=1)
    elif path.exists():
        files = [path]
    else:
        typer.echo(f"エラー: {path} が見つかりません", err=True)
        raise typer.Exit(code=1)

    repository = PatternRepository()
    failed = False
    for file in files:
        problems = repository.validate_file(file)
        if not problems:
            typer.echo(f"✓ {file}: スキーマ検証 OK")
            continue
        failed = True
        for problem in problems:
            line_info = f" (行 {problem.line})" if problem.line else ""
            typer.echo(f"✗ {problem.source}{line_info}: {problem.message}", err=True)

    if failed:
        raise typer.Exit(code=1)


# ---------------------------------------------------------------------------
# list-patterns コマンド
# ---------------------------------------------------------------------------

@app.command("list-patterns")
def list_patterns(
    pattern_dir: Path = typer.Argument(Path("patterns"), help="パターンディレクトリ"),
) -> None:
    """読み込まれるスクリーンコードとカテゴリの一覧を表示する。"""
    repository = PatternRepository()
    try:
        repository.load_dir(pattern_dir)
    except FileNotFoundError as exc:
        typer.echo(f"エラー: {exc}", err=True)
        raise typer.Exit(code=1)

    for code in repository.loaded_codes():
        definition = repository.get(code)
        typer.echo(f"\n[{code}]")
        for category in sorted(definition.field_templates):
            typer.echo(f"  {category:20s} {len(definition.templates(category))} 候補")
        if definition.sections:
            typer.echo(f"  sections: {', '.join(sorted(definition.sections))}")
        if definition.locations:
            typer.echo(f"  locations: {', '.join(sorted(definition.locations))}")

    for warning in repository.warnings:
        typer.echo(f"警告: {warning.source}: {warning.message}", err=True)

    typer.echo(f"\n合計: {len(repository)} 画面")


# ---------------------------------------------------------------------------
# resolve コマンド
# ---------------------------------------------------------------------------

@app.command()
def resolve(
    url: str = typer.Argument(..., help="解決対象のページ URL"),
    category: str = typer.Argument(..., help="要素カテゴリ（button, input, link ...）"),
    identifier: str = typer.Argument(..., help="フィールド識別子"),
    screen_code: Optional[str] = typer.Option(
        None, "--screen", "-s", help="スクリーンコード（省略時は URL マッピング・設定値）",
    ),
    config_file: Optional[Path] = typer.Option(
        None, "--config", "-c", help="設定ファイル（省略時は patterniq.yaml）",
    ),
    pattern_dir: Optional[Path] = typer.Option(
        None, "--pattern-dir", "-p", help="パターンディレクトリ",
    ),
    timeout: Optional[int] = typer.Option(
        None, "--timeout", help="解決タイムアウト（ミリ秒）",
    ),
    headed: bool = typer.Option(False, "--headed/--headless", help="ブラウザ表示モード（デフォルト: 非表示）"),
) -> None:
    """ブラウザで URL を開き、フィールド識別子をロケータに解決する。"""
    import asyncio

    from . import bootstrap
    from .config import apply_overrides, load_config

    try:
        config = load_config(config_file)
        config = apply_overrides(
            config,
            pattern_dir=str(pattern_dir) if pattern_dir is not None else None,
            retry_timeout_ms=timeout,
        )
        engine = bootstrap(config)
        route = asyncio.run(
            _resolve_in_browser(engine.router, url, category, identifier, screen_code, headed)
        )
    except typer.Exit:
        raise
    except Exception as exc:
        typer.echo(f"エラー: {exc}", err=True)
        raise typer.Exit(code=1)

    if route.result is not None and not route.result.ok:
        typer.echo(route.result.describe(), err=True)
        raise typer.Exit(code=1)

    if route.selector is None:
        typer.echo(f"解決をスキップしました（{route.kind.value}）")
        return
    typer.echo(route.selector)


async def _resolve_in_browser(router, url, category, identifier, screen_code, headed):
    """Chromium を起動して URL を開き、ルーター経由で解決する。"""
    from playwright.async_api import async_playwright

    from .core.adapter import PlaywrightDomAdapter

    async with async_playwright() as pw:
        browser = await pw.chromium.launch(headless=not headed)
        try:
            page = await browser.new_page()
            await page.goto(url)
            adapter = PlaywrightDomAdapter(page)
            return await router.route(
                adapter, category, identifier, screen_code, page_url=page.url,
            )
        finally:
            await browser.close()
