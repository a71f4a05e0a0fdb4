"""
Survey staging CLI (flat-layout friendly).

Usage
-----
survey init-store
survey status --set active --actor alice
survey stage --file submission.json
survey staging
survey status --set inactive
survey reconcile
survey export --out data/survey_export
survey serve --port 5000
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, List, Optional

from apps.backend.runtime import Runtime, build_runtime
from contracts.errors import SurveyPipelineError
from contracts.schema import STAGING_TABLES
from infra.config import get_settings
from infra.logging_config import StructuredLogger, setup_logging

logger = StructuredLogger(__name__)

_SUBMISSION_FIELDS = ("responses", "subjectDemographicData", "peerDemographicData")


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2, sort_keys=True, default=str))


def _load_submission(path: Path) -> List[Any]:
    """Load a submission file shaped like the survey form's JSON body."""
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise SystemExit(f"Cannot read submission file {path}: {exc}") from exc
    if not isinstance(payload, dict):
        raise SystemExit(f"{path}: expected a JSON object")
    missing = [name for name in _SUBMISSION_FIELDS if name not in payload]
    if missing:
        raise SystemExit(f"{path}: missing fields {', '.join(missing)}")
    return [payload[name] for name in _SUBMISSION_FIELDS]


def cmd_init_store(args: argparse.Namespace, runtime: Runtime) -> None:  # pylint: disable=unused-argument
    from pipeline.store_base import ensure_survey_tables

    created = ensure_survey_tables(runtime.store)
    _print_json({"backend": runtime.backend, "created": created})


def cmd_stage(args: argparse.Namespace, runtime: Runtime) -> None:
    from pipeline.staging_writer import stage

    responses, subject_data, peer_data = _load_submission(Path(args.file))
    if not args.ignore_status and not runtime.availability.is_active():
        raise SystemExit("Survey is not active; use --ignore-status to stage anyway.")
    key = stage(runtime.store, responses, subject_data, peer_data)
    _print_json({"submission_key": key})


def cmd_reconcile(args: argparse.Namespace, runtime: Runtime) -> None:  # pylint: disable=unused-argument
    from pipeline.consolidate import reconcile

    result = reconcile(runtime.store, runtime.availability, runtime.lease)
    _print_json(result.as_dict())


def cmd_status(args: argparse.Namespace, runtime: Runtime) -> None:
    if args.set:
        runtime.availability.set_active(args.set == "active", actor=args.actor)
    _print_json({"active": runtime.availability.is_active()})


def cmd_staging(args: argparse.Namespace, runtime: Runtime) -> None:  # pylint: disable=unused-argument
    _print_json({table: runtime.store.data_row_count(table) for table in STAGING_TABLES})


def cmd_export(args: argparse.Namespace, runtime: Runtime) -> None:
    from pipeline.export_parquet import export_output_tables

    stats = export_output_tables(runtime.store, args.out, compression=args.compression)
    _print_json({"rows": stats.rows_by_table, "files": stats.files})


def cmd_serve(args: argparse.Namespace) -> None:
    from apps.flask_api.flask_app import app

    api = get_settings().api
    app.run(host=args.host or api.host, port=args.port or api.port)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="survey", description="Survey staging CLI")
    sub = p.add_subparsers(dest="cmd", required=True)

    sp = sub.add_parser("init-store", help="Create any missing staging, output and status tables.")
    sp.set_defaults(func=cmd_init_store)

    sp = sub.add_parser("stage", help="Stage one submission from a JSON file.")
    sp.add_argument("--file", required=True, help="JSON object with responses/subjectDemographicData/peerDemographicData.")
    sp.add_argument("--ignore-status", action="store_true", help="Stage even when the survey is inactive.")
    sp.set_defaults(func=cmd_stage)

    sp = sub.add_parser("reconcile", help="Consolidate staged submissions into the output tables.")
    sp.set_defaults(func=cmd_reconcile)

    sp = sub.add_parser("status", help="Show (or change) survey availability.")
    sp.add_argument("--set", choices=("active", "inactive"), default=None, help="New availability state.")
    sp.add_argument("--actor", default="cli", help="Recorded with the status change. Default: cli")
    sp.set_defaults(func=cmd_status)

    sp = sub.add_parser("staging", help="Show staged data-row counts per queue.")
    sp.set_defaults(func=cmd_staging)

    sp = sub.add_parser("export", help="Export output tables to parquet.")
    sp.add_argument("--out", required=True, help="Output directory.")
    sp.add_argument("--compression", default="zstd", help="Parquet compression codec. Default: zstd")
    sp.set_defaults(func=cmd_export)

    sp = sub.add_parser("serve", help="Run the Flask API (development server).")
    sp.add_argument("--host", default=None, help="Bind host (or API_HOST env var).")
    sp.add_argument("--port", type=int, default=None, help="Bind port (or API_PORT env var).")
    sp.set_defaults(func=cmd_serve, no_runtime=True)

    return p


def main(argv: Optional[List[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging()

    if getattr(args, "no_runtime", False):
        args.func(args)
        return

    try:
        args.func(args, build_runtime())
    except SurveyPipelineError as exc:
        logger.error("cli_command_failed", command=args.cmd, error=str(exc), error_type=type(exc).__name__)
        print(f"error: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
