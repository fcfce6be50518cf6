#!/usr/bin/env python3
"""
Resolve the payers of pending bank transactions to contacts.

Runs a configured analyser over every transaction that isn't resolved yet.
Records without the analyser's required fields are skipped; a failing
record is reported and the run continues with the next one.

Dry run by default: contacts are still matched/created by the directory
(get-or-create is the point of the analyser), but transactions are not
updated unless --execute is given.

Usage:
    python scripts/resolve_transactions.py [--analyser NAME] [--limit N] [--execute]
    python scripts/resolve_transactions.py --import transactions.json
    python scripts/resolve_transactions.py --list-analysers
"""
import sys
import json
import logging
import argparse
from collections import Counter
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from config.resolver_config import DEFAULT_ANALYSER, get_analyser_config, list_analysers
from contact_matcher.services.contact_directory import get_contact_directory
from contact_matcher.services.contact_resolver import ContactResolver
from contact_matcher.services.first_name_oracle import get_first_name_oracle
from contact_matcher.services.transaction_store import get_transaction_store

logging.basicConfig(level=logging.INFO, format='%(levelname)s: %(message)s')
logger = logging.getLogger(__name__)


def import_transactions(path: Path) -> int:
    """Import a JSON list of parsed transaction dicts. Returns the number imported."""
    with open(path) as f:
        items = json.load(f)
    if not isinstance(items, list):
        raise ValueError(f"{path} must contain a JSON list of transactions")

    store = get_transaction_store()
    for item in items:
        store.add(item)
    return len(items)


def run(analyser: str, limit: int = None, execute: bool = False) -> Counter:
    """
    Analyse pending transactions.

    Returns:
        Counter of outcome statuses
    """
    config = get_analyser_config(analyser)
    if config is None:
        raise SystemExit(f"Unknown analyser '{analyser}'. Available: {', '.join(list_analysers())}")

    store = get_transaction_store()
    resolver = ContactResolver(
        directory=get_contact_directory(),
        oracle=get_first_name_oracle(),
        sink=store if execute else None,
    )

    pending = store.list_pending(limit=limit)
    logger.info(f"Analysing {len(pending)} pending transactions with analyser '{analyser}'")

    outcomes = resolver.analyse_batch(((t.id, t.data_parsed) for t in pending), config)

    counts = Counter()
    for outcome in outcomes:
        counts[outcome.status] += 1
        if outcome.status == "failed":
            logger.warning(f"  Transaction {outcome.record_id}: {outcome.error}")
        elif outcome.contact_id:
            logger.info(f"  Transaction {outcome.record_id} -> contact {outcome.contact_id} ({outcome.status})")
    return counts


def main():
    parser = argparse.ArgumentParser(description="Resolve bank transaction payers to contacts")
    parser.add_argument("--analyser", default=DEFAULT_ANALYSER, help="Analyser name from analysers.yaml")
    parser.add_argument("--limit", type=int, default=None, help="Max transactions to analyse")
    parser.add_argument("--execute", action="store_true", help="Write contact IDs back to transactions")
    parser.add_argument("--import", dest="import_path", type=Path, help="Import transactions from a JSON file first")
    parser.add_argument("--list-analysers", action="store_true", help="List configured analysers and exit")
    args = parser.parse_args()

    if args.list_analysers:
        for name in list_analysers():
            print(name)
        return

    if args.import_path:
        count = import_transactions(args.import_path)
        logger.info(f"Imported {count} transactions from {args.import_path}")

    counts = run(args.analyser, limit=args.limit, execute=args.execute)

    print()
    print("Summary:")
    for status in ("updated", "unchanged", "skipped", "failed"):
        print(f"  {status:10} {counts.get(status, 0)}")
    if not args.execute:
        print("\nDry run - use --execute to write contact IDs to transactions")


if __name__ == "__main__":
    main()
