from __future__ import annotations

import argparse
import logging
import sys
from signal import SIGINT, signal
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from propcatalog.app import (
    Backend,
    attach_stages,
    build_catalog_client,
    load_desired_associations,
    reconcile_associations,
    resolve_checkout,
)
from propcatalog.config import configure_logging
from propcatalog.domain.model import ASSOCIATION_TYPES, AssociationKind
from propcatalog.domain.selection import ResolvedVariation, Selection

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

    from propcatalog.domain.model import ReconcilableAssociation
    from propcatalog.domain.reconciliation import ReconcileResult
    from propcatalog.domain.selection import Resolution

log = logging.getLogger(__name__)


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Manage challenge template catalogs")
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--store",
        type=Backend,
        choices=list(Backend),
        default=Backend.API,
        help="Catalog store to talk to (default: %(default)s)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    resolve = subparsers.add_parser("resolve", help="Resolve a selection to a variation")
    resolve.add_argument("--plan", type=str, required=True, help="Selected plan id")
    resolve.add_argument(
        "--category",
        type=str,
        help="Selected category id (omit for relations without a category)",
    )
    resolve.add_argument("--balance", type=str, required=True, help="Selected balance id")

    reconcile = subparsers.add_parser(
        "reconcile",
        help="Converge the associations of one parent to a desired set",
    )
    reconcile.add_argument(
        "kind",
        type=AssociationKind,
        choices=list(ASSOCIATION_TYPES),
        help="Association kind to reconcile",
    )
    reconcile.add_argument(
        "--parent",
        type=str,
        required=True,
        help="Relation id (relation stage id for parameters)",
    )
    reconcile.add_argument(
        "--desired",
        type=str,
        required=True,
        help="Path to a JSON array with the desired associations",
    )

    stages = subparsers.add_parser("stages", help="Relation stage commands")
    stages_sub = stages.add_subparsers(dest="stages_command", required=True)
    stages_attach = stages_sub.add_parser("attach", help="Append stages to a relation")
    stages_attach.add_argument(
        "--relation",
        type=str,
        required=True,
        help="Relation id receiving the stages",
    )
    stages_attach.add_argument(
        "stage_ids",
        nargs="+",
        help="Stage ids in phase order",
    )

    return parser.parse_args(list(argv))


def _report_resolution(resolution: Resolution) -> None:
    if isinstance(resolution, ResolvedVariation):
        log.info(
            f"{resolution.name}: price={resolution.price}, "
            f"effective_price={resolution.effective_price}, "
            f"relation={resolution.relation_id}, "
            f"external_variation_id={resolution.external_variation_id}"
        )
        return
    log.error(f"Selection not resolvable: {resolution}")


def _report_reconcile(result: ReconcileResult) -> None:
    log.info(
        f"{result.kind} associations of {result.parent_id}: "
        f"deleted={list(result.deleted)}, created={list(result.created)}, "
        f"updated={list(result.updated)}, duplicate_fallbacks={list(result.duplicate_fallbacks)}"
    )
    for failure in result.failed:
        log.error(f"Failed: {failure.describe()}")


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    parsed_args = _parse_args(args_list)
    configure_logging(level=logging.DEBUG if parsed_args.verbose else None)

    desired: list[ReconcilableAssociation] = []
    try:
        if parsed_args.command == "reconcile":
            desired = load_desired_associations(
                parsed_args.kind, parsed_args.parent, parsed_args.desired
            )
    except (OSError, ValueError):
        log.exception("CLI validation error")
        sys.exit(2)

    try:
        client = build_catalog_client(parsed_args.store)
        if parsed_args.command == "resolve":
            selection = Selection().update(
                plan_id=parsed_args.plan,
                category_id=parsed_args.category,
                balance_id=parsed_args.balance,
            )
            resolution = resolve_checkout(selection, client=client)
            _report_resolution(resolution)
            if not resolution.ok:
                sys.exit(1)
        elif parsed_args.command == "reconcile":
            result = reconcile_associations(
                parsed_args.kind, parsed_args.parent, desired, client=client
            )
            _report_reconcile(result)
            if not result.ok:
                sys.exit(1)
        elif parsed_args.command == "stages" and parsed_args.stages_command == "attach":
            created = attach_stages(parsed_args.relation, parsed_args.stage_ids, client=client)
            log.info(f"Attached {len(created)} stage(s) to {parsed_args.relation}")
        else:
            raise ValueError(f"Unsupported command: {parsed_args.command}")  # noqa: TRY301

    except Exception:
        log.exception("Fatal error")
        sys.exit(1)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


def run() -> None:
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
