"""
evaltrack command line.

    evaltrack import --from-dir data/      copy a JSON data dir into the configured backend
    evaltrack pending                      runs waiting to be scored / still capturing
    evaltrack annotate '{"runId": ...}'    save one annotation
    evaltrack themes [--json]              print issue themes
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

from dotenv import find_dotenv, load_dotenv

from evaltrack.api.dependencies import Services, build_services
from evaltrack.domain.annotation import Annotation, AnnotationInput
from evaltrack.domain.errors import EvalTrackError
from evaltrack.domain.planned_fix import PlannedFix
from evaltrack.domain.run import Run
from evaltrack.infrastructure.stores.json_storage import JsonFileStorage
from evaltrack.settings import Settings

load_dotenv(find_dotenv(usecwd=True), override=False)


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="evaltrack",
        description="evaltrack - capture, score and annotate evaluation runs",
    )
    parser.add_argument("--version", "-v", action="store_true", help="print version and exit")

    subparsers = parser.add_subparsers(dest="command", help="available commands")

    import_parser = subparsers.add_parser(
        "import", help="import runs, planned fixes and annotations from a JSON data dir"
    )
    import_parser.add_argument(
        "--from-dir",
        required=True,
        help="directory holding runs.json / planned-fixes.json / annotations.json",
    )

    pending_parser = subparsers.add_parser("pending", help="list captured and capturing runs")
    pending_parser.add_argument("--json", action="store_true", help="print raw JSON")

    annotate_parser = subparsers.add_parser("annotate", help="save one annotation")
    annotate_parser.add_argument(
        "payload", help="annotation JSON, e.g. '{\"runId\": ..., \"promptNumber\": 1, ...}'"
    )

    themes_parser = subparsers.add_parser("themes", help="print issue themes")
    themes_parser.add_argument("--json", action="store_true", help="print raw JSON")

    return parser


def run_cli(args: Optional[list] = None, *, services: Optional[Services] = None) -> int:
    parser = create_parser()
    parsed = parser.parse_args(args)

    if parsed.version:
        print("evaltrack v0.1.0")
        return 0

    if not parsed.command:
        parser.print_help()
        return 0

    owned = services is None
    services = services or build_services(Settings.from_env())
    try:
        if parsed.command == "import":
            return asyncio.run(_run_import(services, Path(parsed.from_dir)))
        if parsed.command == "pending":
            return asyncio.run(_run_pending(services, as_json=parsed.json))
        if parsed.command == "annotate":
            return asyncio.run(_run_annotate(services, parsed.payload))
        if parsed.command == "themes":
            return asyncio.run(_run_themes(services, as_json=parsed.json))
        return 0
    except (EvalTrackError, json.JSONDecodeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        if owned:
            services.close()


async def _run_import(services: Services, source_dir: Path) -> int:
    if not source_dir.is_dir():
        print(f"Error: {source_dir} is not a directory", file=sys.stderr)
        return 1

    source = JsonFileStorage(source_dir)
    runs = [Run.from_dict(r) for r in source.read_collection("runs")]
    fixes = [PlannedFix.from_dict(f) for f in source.read_collection("fixes")]
    annotations = [Annotation.from_dict(a) for a in source.read_collection("annotations")]

    run_report = await services.runs.import_runs(runs)
    fix_report = await services.fixes.import_fixes(fixes)
    annotation_report = await services.annotations.import_annotations(annotations)

    print(
        f"runs: imported={run_report.imported} skipped={run_report.skipped} "
        f"prompts={run_report.prompts}"
    )
    print(f"planned fixes: imported={fix_report.imported} skipped={fix_report.skipped}")
    print(
        f"annotations: imported={annotation_report.imported} "
        f"skipped={annotation_report.skipped}"
    )
    return 0


async def _run_pending(services: Services, *, as_json: bool) -> int:
    groups = await services.lifecycle.pending()
    if as_json:
        payload = {key: [r.to_dict() for r in runs] for key, runs in groups.items()}
        print(json.dumps(payload, ensure_ascii=False, indent=2))
        return 0

    for key in ("pending", "capturing"):
        runs = groups[key]
        print(f"{key}: {len(runs)}")
        for run in runs:
            print(f"- {run.id} [{run.format}] prompts={len(run.prompts)} at {run.timestamp}")
    return 0


async def _run_annotate(services: Services, payload: str) -> int:
    draft = AnnotationInput.from_dict(json.loads(payload))
    saved = await services.annotations.save_annotation(draft)
    if saved is None:
        print(f"Error: run not found: {draft.run_id}", file=sys.stderr)
        return 1
    print(json.dumps(saved.to_dict(), ensure_ascii=False, indent=2))
    return 0


async def _run_themes(services: Services, *, as_json: bool) -> int:
    report = await services.aggregator.themes_report()
    if as_json:
        print(json.dumps(report, ensure_ascii=False, indent=2))
        return 0

    for theme in report["themes"]:
        formats = ", ".join(theme["affectedFormats"])
        print(f"[{theme['severity']}] {theme['title']} x{theme['count']} ({formats})")
    if not report["themes"]:
        print("no themes")
    return 0


if __name__ == "__main__":
    sys.exit(run_cli())
