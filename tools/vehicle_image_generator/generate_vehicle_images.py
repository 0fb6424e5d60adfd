import argparse
import dataclasses
import datetime as dt
import json
import math
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from .config import REQUIRED_ENV_VARS, RUN_MODES, Config, Settings, load_config, load_dotenv_files, load_settings
from .errors import ConfigError, ConnectivityError, MissingConfigError
from .prompts import build_prompt
from .provider import ImageProvider
from .store import Record, RecordStore

GENERATED = "generated"
SKIPPED = "skipped"
FAILED = "failed"
PLANNED = "planned"

RULE = "====================================="


@dataclass
class RecordOutcome:
    record_id: Any
    category: str
    status: str
    image_url: Optional[str] = None
    reason: Optional[str] = None


@dataclass
class RunReport:
    mode: str
    status: str = "completed"
    missing_keys: List[str] = field(default_factory=list)
    failed_checks: List[str] = field(default_factory=list)
    error: Optional[str] = None
    outcomes: List[RecordOutcome] = field(default_factory=list)

    def count(self, status: str) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    @property
    def generated(self) -> int:
        return self.count(GENERATED)

    @property
    def skipped(self) -> int:
        return self.count(SKIPPED)

    @property
    def failed(self) -> int:
        return self.count(FAILED)

    def to_dict(self) -> Dict[str, Any]:
        payload = dataclasses.asdict(self)
        payload["counts"] = {s: self.count(s) for s in (GENERATED, SKIPPED, FAILED, PLANNED)}
        return payload


def _utc_now_iso() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat()


def _write_json_atomic(path: Path, payload: Dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(payload, indent=2, sort_keys=True, default=str), encoding="utf-8")
    tmp.replace(path)


def _check_environment(env: Optional[Mapping[str, str]]) -> Config:
    print(" Checking environment variables...")
    try:
        config = load_config(env)
    except MissingConfigError as e:
        for name in REQUIRED_ENV_VARS:
            print(f"   {name}: {'Missing' if name in e.missing_keys else 'Found'}")
        print("\n Please check your .env file and ensure all required variables are set.", file=sys.stderr)
        raise
    for name in REQUIRED_ENV_VARS:
        print(f"   {name}: Found")
    return config


def _check_connectivity(store: Any, provider: Any) -> None:
    # Both checks run so the error names every unreachable service.
    failed = []
    if not store.test_reachable():
        failed.append("store")
    if not provider.test_reachable():
        failed.append("provider")
    if failed:
        raise ConnectivityError(failed)


def _process_record(
    record: Record,
    store: Any,
    provider: Any,
    force_overwrite: bool,
    template: Optional[str],
) -> RecordOutcome:
    prompt = build_prompt(record.category, template)

    print(f" Generating image for: {record.category}")
    try:
        image_url = provider.generate_image(prompt)
    except Exception as e:
        print(f"[WARN] Image generation failed for '{record.category}' (id {record.id}): {e}", file=sys.stderr)
        return RecordOutcome(record.id, record.category, FAILED, reason=f"generate_image: {e}")

    try:
        updated = store.update_image(record.id, image_url, force_overwrite=force_overwrite)
    except Exception as e:
        print(f"[WARN] Store update failed for '{record.category}' (id {record.id}): {e}", file=sys.stderr)
        return RecordOutcome(record.id, record.category, FAILED, image_url=image_url, reason=f"update_image: {e}")

    if not updated:
        return RecordOutcome(record.id, record.category, SKIPPED, reason="image already present")

    print(f" Successfully processed: {record.category}")
    return RecordOutcome(record.id, record.category, GENERATED, image_url=image_url)


def process_records(
    records: Sequence[Record],
    store: Any,
    provider: Any,
    force_overwrite: bool,
    settings: Settings,
    sleep: Callable[[float], None] = time.sleep,
) -> List[RecordOutcome]:
    outcomes: List[RecordOutcome] = []
    total = len(records)
    for i, record in enumerate(records, start=1):
        print(f"\n[{i}/{total}] Processing: {record.category}")
        outcomes.append(_process_record(record, store, provider, force_overwrite, settings.prompt_template))

        if i < total:
            print(f" Waiting {settings.delay_seconds:g} seconds before next request...")
            sleep(settings.delay_seconds)
    return outcomes


def print_final_results(store: Any) -> None:
    try:
        records = store.fetch_all()
    except Exception as e:
        print(f"[ERROR] Could not fetch final results: {e}", file=sys.stderr)
        return

    print("\n Final Results:")
    print(RULE)
    for record in records:
        print(f"{record.id}. {record.category}")
        print(f"   Image: {'Generated' if record.has_image else 'Missing'}")
        if record.has_image:
            print(f"   URL: {record.image_url}")
        print("")


def run_once(
    settings: Settings,
    mode: Optional[str] = None,
    *,
    env: Optional[Mapping[str, str]] = None,
    store_factory: Callable[[Config, Settings], Any] = RecordStore.from_config,
    provider_factory: Callable[[Config, Settings], Any] = ImageProvider.from_config,
    dry_run: bool = False,
    sleep: Callable[[float], None] = time.sleep,
) -> RunReport:
    mode = mode or settings.mode
    if mode not in RUN_MODES:
        raise ValueError(f"Unknown run mode '{mode}'. Expected one of: {', '.join(RUN_MODES)}")
    report = RunReport(mode=mode)

    print(f" Starting vehicle processing ({mode} mode)...")
    try:
        config = _check_environment(env)
    except MissingConfigError as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        report.status = "config_error"
        report.missing_keys = e.missing_keys
        report.error = str(e)
        return report

    store = store_factory(config, settings)
    provider = provider_factory(config, settings)

    try:
        _check_connectivity(store, provider)
    except ConnectivityError as e:
        report.status = "connectivity_error"
        report.failed_checks = e.failed_checks
        report.error = str(e)
        print(f"[ERROR] {e}. Please check your .env file.", file=sys.stderr)
        return report

    try:
        candidates = store.fetch_missing_image() if mode == "incremental" else store.fetch_all()
    except Exception as e:
        report.status = "selection_error"
        report.error = f"Error fetching records: {e}"
        print(f"[ERROR] {report.error}", file=sys.stderr)
        return report

    print(f" Found {len(candidates)} record(s) to process")
    if not candidates:
        report.status = "nothing_to_do"
        print(" All records already have images!")
        print_final_results(store)
        return report

    if dry_run:
        for record in candidates:
            prompt = build_prompt(record.category, settings.prompt_template)
            print(f"[DRY] Would generate: {record.id} | {record.category} -> {prompt}")
            report.outcomes.append(RecordOutcome(record.id, record.category, PLANNED))
        return report

    report.outcomes = process_records(
        candidates,
        store,
        provider,
        force_overwrite=(mode == "full"),
        settings=settings,
        sleep=sleep,
    )
    print("\n All records processed!")
    print_final_results(store)
    return report


def main(argv: Optional[Sequence[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Generate AI images for vehicle records and store the URLs back.")
    parser.add_argument("--mode", choices=RUN_MODES, help="incremental fills missing images, full regenerates all")
    parser.add_argument("--config", help="Path to optional YAML settings file")
    parser.add_argument("--dry-run", action="store_true", help="List candidates without calling the image API or writing")
    parser.add_argument("--delay", type=float, help="Seconds to wait between records (default 2)")
    parser.add_argument("--report-file", help="Write a JSON run report to this path")
    parser.add_argument("--loop-seconds", type=int, default=0, help="If >0, run forever every N seconds")
    args = parser.parse_args(argv)

    load_dotenv_files()

    print("Vehicle Image Generator Starting...")
    print(RULE + "\n")

    try:
        settings = load_settings(Path(args.config).resolve() if args.config else None)
    except ConfigError as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return
    if args.delay is not None:
        if not math.isfinite(args.delay) or args.delay < 0:
            print("[ERROR] --delay must be a finite number >= 0", file=sys.stderr)
            return
        settings = dataclasses.replace(settings, delay_seconds=args.delay)

    while True:
        report = run_once(settings, args.mode, dry_run=args.dry_run)
        print(f"[{_utc_now_iso()}] status={report.status} generated={report.generated} skipped={report.skipped} failed={report.failed}")
        if args.report_file:
            payload = report.to_dict()
            payload["finished_at"] = _utc_now_iso()
            try:
                _write_json_atomic(Path(args.report_file), payload)
            except OSError as e:
                print(f"[ERROR] Could not write report file {args.report_file}: {e}", file=sys.stderr)
        if not (args.loop_seconds and args.loop_seconds > 0):
            return
        time.sleep(args.loop_seconds)
