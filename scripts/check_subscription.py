"""Check whether a WhatsApp number is entitled according to Stripe.

Usage:
    STRIPE_SECRET_KEY=sk_... python scripts/check_subscription.py <phone_number>

Prints the entitlement answer the bot would use for that sender. Also
compares it with the stored flag when DATABASE_URL is set.
"""

from __future__ import annotations

import os
import sys


def main() -> None:
    if len(sys.argv) < 2:
        print("Usage: python scripts/check_subscription.py <phone_number>")
        sys.exit(2)

    phone_number = sys.argv[1]

    if not os.environ.get("STRIPE_SECRET_KEY"):
        print("ERROR: STRIPE_SECRET_KEY not set")
        sys.exit(1)

    # Import after env validation
    from plantvision.domain.errors import CollaboratorUnavailable
    from plantvision.stripe.client import StripeSubscriptionOracle

    oracle = StripeSubscriptionOracle()

    print(f"Checking Stripe entitlement for {phone_number} ...")
    try:
        entitled = oracle.is_entitled(phone_number)
    except CollaboratorUnavailable as e:
        print(f"ERROR: {e}")
        sys.exit(1)

    print(f"  stripe entitled: {entitled}")

    if os.environ.get("DATABASE_URL"):
        from plantvision.infra.repositories.users_repository import PostgresUsageLedger

        record = PostgresUsageLedger().find(phone_number)
        if record is None:
            print("  no user record yet")
            return
        print(f"  stored flag:     {record.is_subscribed}")
        print(f"  message count:   {record.message_count}")
        if record.is_subscribed != entitled:
            print("  NOTE: stored flag is stale; it is corrected on the next message.")


if __name__ == "__main__":
    main()
