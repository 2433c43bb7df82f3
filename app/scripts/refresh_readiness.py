"""
Refresh Account Readiness
=========================

CLI for the reconciliation pull path. Fetches each connected tenant's
sub-account from Stripe and updates its ready flag.

Usage:
    python -m app.scripts.refresh_readiness --env test
    python -m app.scripts.refresh_readiness --env live --tenant COMPANY_ID

Exits 1 if any tenant could not be refreshed.
"""

import argparse
import asyncio
import sys
from typing import List, Optional

from app.core.database import init_db
from app.core.errors.registry import error_registry
from app.models.enums import Environment
from app.services.account_reconciliation import AccountReconciliationService, RefreshOutcome


def _format(outcome: RefreshOutcome) -> str:
    if outcome.error:
        return f"  FAIL: {outcome.tenant_id}: {outcome.error}"
    update = outcome.update
    state = "ready" if update.ready else "not ready"
    note = " (changed)" if update.changed else ""
    reason = f" disabled_reason={update.disabled_reason}" if update.disabled_reason else ""
    return f"  OK: {outcome.tenant_id} {update.sub_account_id} -> {state}{note}{reason}"


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Refresh tenant payment-account readiness from Stripe")
    parser.add_argument("--env", required=True, choices=[e.value for e in Environment], help="Stripe environment")
    parser.add_argument("--tenant", default=None, help="Only refresh this company id")
    args = parser.parse_args(argv)

    env = Environment(args.env)
    error_registry.load()
    init_db()

    outcomes = asyncio.run(AccountReconciliationService().refresh_all(env, tenant_id=args.tenant))
    if not outcomes:
        print(f"No tenants with a {env.value} sub-account. Nothing to refresh.")
        return 0

    failed = 0
    for outcome in outcomes:
        line = _format(outcome)
        if outcome.error:
            failed += 1
            print(line, file=sys.stderr)
        else:
            print(line)

    print(f"\nDone. {len(outcomes) - failed} refreshed, {failed} failed.")
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
