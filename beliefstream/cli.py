"""
BeliefStream Command Line
=========================

Operator commands over one data directory.

Usage:
    beliefstream ingest batch.jsonl          # One ingestion cycle, print digest
    beliefstream apply-delta delta.json      # Apply an ontology delta
    beliefstream detect-drift [--axis ID]    # CUSUM over new evidence
    beliefstream cluster-axes                # Propose merges of redundant axes
    beliefstream summary --hours 4           # Topic summary from the item store
    beliefstream search "rate cuts"          # Full-text search
    beliefstream keyword inflation           # Items indexed under a keyword
    beliefstream prune                       # Drop items older than the retention window
    beliefstream serve                       # Read-only HTTP API
"""

import argparse
import json
import logging
import sys
from typing import List, Optional

from .beliefs import render_proposals
from .config import EngineConfig
from .contracts.base import BeliefStoreError, ErrorCode, StoreError
from .engine import BeliefStreamEngine
from .ingestion import JsonlItemSource, render
from .ingestion.digest import format_item

log = logging.getLogger('beliefstream')


def _print_errors(errors) -> None:
    for error in errors:
        context = ", ".join(f"{k}={v}" for k, v in error.context)
        print(f"  ! {error.code.name}: {error.message}" + (f" ({context})" if context else ""))


def cmd_ingest(engine: BeliefStreamEngine, args) -> int:
    source = JsonlItemSource(args.path)
    report = engine.ingest_source(source)
    print(render(report.digest))
    print(
        f"received={report.received} seen={report.already_seen} "
        f"filtered={report.sanitized_out} duplicates={report.duplicates_removed} "
        f"persisted={len(report.persisted)}"
    )
    if args.verbose:
        _print_errors(report.errors)
    return 0 if report.success else 1


def cmd_apply_delta(engine: BeliefStreamEngine, args) -> int:
    with open(args.path, 'r', encoding='utf-8') as f:
        data = json.load(f)
    report = engine.apply_delta(data)
    print(
        f"evidence added={report.evidence_added} rejected={report.evidence_rejected} "
        f"unvalidated={report.evidence_unvalidated} axes added={report.axes_added} "
        f"merges={report.merges_applied}"
    )
    _print_errors(report.errors)
    if not args.no_drift:
        drift = engine.detect_drift()
        for alert in drift.alerts:
            print(
                f"DRIFT {alert.direction.value.upper()} [{alert.axis_id}] {alert.axis_label} "
                f"cusum={alert.cusum_value:.2f} at evidence #{alert.evidence_index}"
            )
    return 0


def cmd_detect_drift(engine: BeliefStreamEngine, args) -> int:
    report = engine.detect_drift(args.axis)
    if not report.alerts:
        print(f"no drift ({report.axes_checked} axes checked)")
    for alert in report.alerts:
        print(
            f"DRIFT {alert.direction.value.upper()} [{alert.axis_id}] {alert.axis_label} "
            f"cusum={alert.cusum_value:.2f} at evidence #{alert.evidence_index} "
            f"score={alert.current_score:+.3f} conf={alert.confidence:.2f}"
        )
    return 0


def cmd_cluster_axes(engine: BeliefStreamEngine, args) -> int:
    report = engine.propose_merges()
    print(render_proposals(report.proposals, engine.config.redundancy.similarity_threshold))
    if report.axes_skipped:
        print(f"skipped (no embedding): {', '.join(report.axes_skipped)}")
    return 0


def cmd_summary(engine: BeliefStreamEngine, args) -> int:
    print(engine.topic_summary(hours=args.hours))
    return 0


def cmd_search(engine: BeliefStreamEngine, args) -> int:
    results = engine.items.search(args.query, args.limit)
    if not results:
        print(f"no items matching {args.query!r}")
    for item in results:
        print(format_item(item))
    return 0


def cmd_keyword(engine: BeliefStreamEngine, args) -> int:
    results = engine.items.items_by_keyword(args.keyword, args.limit)
    if not results:
        print(f"no items indexed under {args.keyword!r}")
    for item in results:
        print(format_item(item))
    return 0


def cmd_prune(engine: BeliefStreamEngine, args) -> int:
    removed = engine.prune()
    print(f"pruned {removed['items']} items, {removed['keywords']} keyword rows")
    return 0


def cmd_serve(engine: BeliefStreamEngine, args) -> int:
    import uvicorn
    from .api.server import create_app

    uvicorn.run(create_app(engine), host=args.host, port=args.port)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='beliefstream', description='BeliefStream operator CLI')
    parser.add_argument('--config', help='JSON config file')
    parser.add_argument('--data-dir', help='Override the storage data directory')
    parser.add_argument('--log-level', default='INFO',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'])
    sub = parser.add_subparsers(dest='command', required=True)

    p = sub.add_parser('ingest', help='Run one ingestion cycle over a JSONL batch')
    p.add_argument('path')
    p.add_argument('-v', '--verbose', action='store_true', help='List per-item errors')
    p.set_defaults(func=cmd_ingest)

    p = sub.add_parser('apply-delta', help='Apply an ontology delta JSON file')
    p.add_argument('path')
    p.add_argument('--no-drift', action='store_true', help='Skip drift detection afterwards')
    p.set_defaults(func=cmd_apply_delta)

    p = sub.add_parser('detect-drift', help='Run CUSUM drift detection')
    p.add_argument('--axis', help='Only this axis')
    p.set_defaults(func=cmd_detect_drift)

    p = sub.add_parser('cluster-axes', help='Propose merges of redundant axes')
    p.set_defaults(func=cmd_cluster_axes)

    p = sub.add_parser('summary', help='Topic summary over a recent window')
    p.add_argument('--hours', type=float, default=4)
    p.set_defaults(func=cmd_summary)

    p = sub.add_parser('search', help='Full-text search over stored items')
    p.add_argument('query')
    p.add_argument('--limit', type=int, default=20)
    p.set_defaults(func=cmd_search)

    p = sub.add_parser('keyword', help='Items indexed under a keyword')
    p.add_argument('keyword')
    p.add_argument('--limit', type=int, default=20)
    p.set_defaults(func=cmd_keyword)

    p = sub.add_parser('prune', help='Delete items past the retention window')
    p.set_defaults(func=cmd_prune)

    p = sub.add_parser('serve', help='Serve the read-only HTTP API')
    p.add_argument('--host', default='0.0.0.0')
    p.add_argument('--port', type=int, default=8000)
    p.set_defaults(func=cmd_serve)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format='%(asctime)s [%(name)s] %(levelname)s: %(message)s'
    )

    config = EngineConfig.load(args.config)
    if args.data_dir:
        config.storage.data_dir = args.data_dir
    if args.command == 'serve':
        config.services.stance_validation = False

    engine = BeliefStreamEngine(config)
    try:
        return args.func(engine, args)
    except BeliefStoreError as e:
        log.error("%s: belief store unavailable: %s", ErrorCode.STORE_UNAVAILABLE.name, e)
        return 1
    except StoreError as e:
        log.error("%s: item store unavailable: %s", ErrorCode.STORE_UNAVAILABLE.name, e)
        return 1
    finally:
        engine.close()


if __name__ == '__main__':
    sys.exit(main())
