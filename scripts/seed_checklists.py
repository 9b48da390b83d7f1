"""
Seed Checklists — role catalogue + 10 default bakery checklists.

Usage:
    python scripts/seed_checklists.py              # Uses development DB
    python scripts/seed_checklists.py --env production   # Uses production DB

This script is idempotent — safe to run multiple times.
"""

import argparse
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from checklist_hub import create_app
from checklist_hub.models.checklist import Checklist, Role
from checklist_hub.services.checklist_seed import seed_all


def main():
    parser = argparse.ArgumentParser(description="Seed roles and default checklists")
    parser.add_argument("--env", default="development",
                        choices=["development", "production", "testing"],
                        help="Configuration environment")
    args = parser.parse_args()

    app = create_app(args.env)
    with app.app_context():
        print("=" * 60)
        print("  SEED: Roles & Default Checklists")
        print("=" * 60)

        result = seed_all(
            app.config["CHECKLIST_ESCALATION_DAILY_MINUTES"],
            app.config["CHECKLIST_ESCALATION_DEFAULT_MINUTES"],
        )
        print(f"  Roles created:      {result['roles_created']}")
        print(f"  Checklists created: {result['checklists_created']}")

        print("\n" + "=" * 60)
        print("  SUMMARY")
        print("=" * 60)
        print(f"  Roles:      {Role.query.count()}")
        print(f"  Checklists: {Checklist.query.count()}")
        for checklist in Checklist.query.order_by(Checklist.id).all():
            print(f"  {checklist.name:34s} [{checklist.frequency:7s}] {len(checklist.items):2d} items")

        print("\nSeed complete!")


if __name__ == "__main__":
    main()
