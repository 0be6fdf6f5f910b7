"""
Reconcile producer balances against credited sales.

Prints every producer whose recorded available balance differs from the sum of
producer shares of credited sales (minus withdrawals, if a withdrawals file is
given). Read-only.

Usage:
    python scripts/reconcile_balances.py
    python scripts/reconcile_balances.py --withdrawals withdrawals.json --fail-on-mismatch

The withdrawals file is a JSON object mapping producer id -> cents withdrawn.
"""

import argparse
import json
import sys
from pathlib import Path
from uuid import UUID

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from repositories.client import get_supabase
from services.reconciliation_service import find_balance_mismatches


def _load_withdrawals(path: str) -> dict:
    with open(path, "r", encoding="utf-8") as f:
        raw = json.load(f)
    return {UUID(str(producer_id)): int(cents) for producer_id, cents in raw.items()}


def main() -> int:
    parser = argparse.ArgumentParser(description="Reconcile producer balances against credited sales.")
    parser.add_argument("--withdrawals", help="JSON file mapping producer id to cents withdrawn")
    parser.add_argument(
        "--fail-on-mismatch",
        action="store_true",
        help="Exit with status 1 when any mismatch is found",
    )
    args = parser.parse_args()

    withdrawals = _load_withdrawals(args.withdrawals) if args.withdrawals else None
    mismatches = find_balance_mismatches(get_supabase(), withdrawals)

    print("=" * 70)
    print("PRODUCER BALANCE RECONCILIATION")
    print("=" * 70)

    if not mismatches:
        print("All producer balances match credited sales.")
        print("=" * 70)
        return 0

    print(f"{'Producer':<38}{'Expected':>10}{'Recorded':>11}{'Diff':>11}")
    print("-" * 70)
    for m in mismatches:
        print(f"{str(m.producer_id):<38}{m.expected_cents:>10}{m.recorded_cents:>11}{m.difference_cents:>11}")
    print("-" * 70)
    print(f"{len(mismatches)} producer(s) out of balance (values in cents)")
    print("=" * 70)

    return 1 if args.fail_on_mismatch else 0


if __name__ == "__main__":
    sys.exit(main())
