from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import time
from datetime import UTC, datetime
from pathlib import Path

from dotenv import load_dotenv

from ..config.loader import ConfigError, load_config
from ..excel.reader import SheetHeaderError, UnsupportedFileError, read_table_file
from ..logging.error_log import ErrorLogBuffer, FindingRecord
from ..logging.init import get_logger, log_summary, setup_logging
from ..mapping.resolver import MappingPayloadError, suggest_mapping
from ..models.processing_result import FileStat, ProcessingResult
from ..models.row_data import ProcessedRow
from ..models.schema import WorkbookConfig
from ..services.progress import ProgressTracker
from ..services.summary import render_summary_line
from ..services.workbook_store import WorkbookStateError, WorkbookStore
from ..transform.values import DEFAULT_TRANSFORMS

"""CLI entrypoint: run files through the mapping / validation pipeline.

Flow per file:
- read CSV/XLSX into raw rows (first row = headers)
- suggest a mapping from headers, apply --map overrides
- gate on mapping errors, process, optionally drop invalid rows, submit
- write processed rows as JSON (--output) and findings as JSON Lines

Config resolution: --config > FILEFEED_CONFIG (.env allowed) > config/workbook.yml
"""

EXIT_SUCCESS_ALL = 0
EXIT_FATAL = 1
EXIT_PARTIAL_FAILURE = 2

DEFAULT_CONFIG_PATH = Path("config/workbook.yml")


def _load_env_file(path: Path) -> None:
    """Load .env without overriding variables already set in the process."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=False)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="filefeed", description="Map, coerce and validate tabular files")
    p.add_argument("files", nargs="*", type=Path, help="CSV / XLSX files to import")
    p.add_argument("--config", type=Path, default=None, help="Workbook YAML config")
    p.add_argument("--sheet", default=None, help="Target sheet slug (default: first sheet)")
    p.add_argument(
        "--map",
        action="append",
        default=[],
        metavar="SOURCE=FIELD",
        help="Map a source column to a field key (empty FIELD unmaps); repeatable",
    )
    p.add_argument("--output", type=Path, default=None, help="Directory for processed JSON output")
    p.add_argument("--delete-invalid", action="store_true", help="Drop invalid rows before submit")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--inspect-data", action="store_true", help="Print headers, suggested mapping and first rows then exit")
    return p.parse_args(argv)


def _parse_map_overrides(items: list[str]) -> dict[str, str | None]:
    overrides: dict[str, str | None] = {}
    for item in items:
        if "=" not in item:
            raise ValueError(f"invalid --map '{item}' (expected SOURCE=FIELD)")
        source, target = item.split("=", 1)
        overrides[source.strip()] = target.strip() or None
    return overrides


def _resolve_config_path(arg: Path | None) -> Path:
    if arg is not None:
        return arg
    env = os.getenv("FILEFEED_CONFIG")
    return Path(env) if env else DEFAULT_CONFIG_PATH


def _inspect_data(cfg: WorkbookConfig, sheet: str, files: list[Path]) -> int:
    fields = cfg.sheet(sheet).fields  # type: ignore[union-attr]
    for f in files:
        print(f"FILE: {f.name}")
        try:
            data = read_table_file(f)
        except (SheetHeaderError, UnsupportedFileError, OSError, ValueError) as e:
            print(f"  read_error: {e}")
            continue
        print(f"  headers={data.headers}")
        print(f"  suggested_mapping={suggest_mapping(data.headers, fields)}")
        print(f"  sample_rows={[list(r) for r in data.rows[:3]]}")
    return EXIT_SUCCESS_ALL


def _write_output(output_dir: Path, source: Path, sheet: str, rows: list[ProcessedRow]) -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    out = output_dir / f"{source.stem}.{sheet}.json"
    payload = [r.to_dict() for r in rows]
    out.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
    return out


def _process_file(
    path: Path,
    cfg: WorkbookConfig,
    sheet: str,
    overrides: dict[str, str | None],
    args: argparse.Namespace,
    buffer: ErrorLogBuffer,
    tracker: ProgressTracker,
) -> tuple[FileStat, int]:
    """Import one file; returns its stats and the number of warnings."""
    logger = get_logger()
    started = time.perf_counter()

    def failed(reason: str) -> tuple[FileStat, int]:
        logger.error(f"{path.name}: {reason}")
        return FileStat(path.name, "failed", 0, 0, 0, time.perf_counter() - started, error=reason), 0

    try:
        data = read_table_file(path)
    except (SheetHeaderError, UnsupportedFileError, OSError, ValueError) as e:
        return failed(f"read failed: {e}")

    store = WorkbookStore(cfg, transform_registry=DEFAULT_TRANSFORMS)
    store.set_current_sheet(sheet)
    store.set_imported_data(data)
    try:
        store.apply_mapping_change(overrides)
    except MappingPayloadError as e:
        return failed(f"mapping: {e}")
    logger.debug(f"{path.name}: mapping={store.mapping_state.as_dict()}")

    errors = store.continue_to_review(progress=tracker.advance_rows)
    if errors:
        return failed("; ".join(errors))

    if args.delete_invalid:
        store.delete_invalid_rows()
    try:
        rows = store.submit()
    except WorkbookStateError as e:
        return failed(str(e))

    warnings = 0
    for row in rows:
        for finding in row.errors:
            if not finding.is_error:
                warnings += 1
            buffer.append(FindingRecord.create(path.name, sheet, row.id, finding))
        if not row.is_valid:
            # セルごとに表示される 1 件 (error 優先)
            for key in row.data:
                shown = row.primary_error(key)
                if shown is not None:
                    logger.debug(f"{path.name}: {row.id} {key}: {shown.message}")

    if args.output is not None:
        out = _write_output(args.output, path, sheet, rows)
        logger.info(f"{path.name}: wrote {out}")

    valid = sum(1 for r in rows if r.is_valid)
    elapsed = time.perf_counter() - started
    logger.info(f"{path.name}: rows={len(rows)} valid={valid} invalid={len(rows) - valid}")
    return FileStat(path.name, "success", len(rows), valid, len(rows) - valid, elapsed), warnings


def main(argv: list[str] | None = None) -> int:
    # None のときのみシステム引数を読む ([] はテストからの明示呼び出し)
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    logger = setup_logging(logging.DEBUG if args.debug else logging.INFO)
    _load_env_file(Path(".env"))
    logger.debug("debug mode enabled")

    config_path = _resolve_config_path(args.config)
    try:
        cfg = load_config(config_path)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    sheet = args.sheet or cfg.sheets[0].slug
    if cfg.sheet(sheet) is None:
        logger.error(f"unknown sheet: {sheet}")
        return EXIT_FATAL

    try:
        overrides = _parse_map_overrides(args.map)
    except ValueError as e:
        logger.error(str(e))
        return EXIT_FATAL

    missing = [f for f in args.files if not f.exists()]
    if missing:
        logger.error(f"file not found: {', '.join(str(m) for m in missing)}")
        return EXIT_FATAL

    if args.inspect_data:
        return _inspect_data(cfg, sheet, args.files)

    logger.info(f"Importing {len(args.files)} file(s) into sheet '{sheet}'")
    logs_dir = os.getenv("FILEFEED_LOG_DIR")
    buffer = ErrorLogBuffer(Path(logs_dir) if logs_dir else None)

    start = datetime.now(UTC)
    stats: list[FileStat] = []
    warning_count = 0
    with ProgressTracker(len(args.files)) as tracker:
        for path in args.files:
            tracker.start_file(path)
            stat, warnings = _process_file(path, cfg, sheet, overrides, args, buffer, tracker)
            tracker.finish_file(stat.status == "success")
            stats.append(stat)
            warning_count += warnings
            log_path = buffer.flush()
            if log_path is not None:
                logger.debug(f"findings written to {log_path}")
    end = datetime.now(UTC)

    elapsed = (end - start).total_seconds()
    total_rows = sum(s.total_rows for s in stats)
    result = ProcessingResult(
        success_files=sum(1 for s in stats if s.status == "success"),
        failed_files=sum(1 for s in stats if s.status == "failed"),
        total_rows=total_rows,
        valid_rows=sum(s.valid_rows for s in stats),
        invalid_rows=sum(s.invalid_rows for s in stats),
        warning_count=warning_count,
        start_time=start,
        end_time=end,
        elapsed_seconds=elapsed,
        throughput_rows_per_sec=(total_rows / elapsed) if elapsed > 0 else 0.0,
        file_stats=stats,
    )

    summary_line = render_summary_line(len(args.files), result)
    # log_summary が "SUMMARY " を付与するため除去
    log_summary(summary_line.removeprefix("SUMMARY "))

    if result.failed_files > 0 or result.invalid_rows > 0:
        return EXIT_PARTIAL_FAILURE
    return EXIT_SUCCESS_ALL
