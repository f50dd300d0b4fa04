"""
Seed Rules Script - Creates the default reminder rules
Run: python -m scripts.seed_rules
"""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from reminders.repositories.mongo_client import create_indexes
from reminders.services.default_rules import DEFAULT_RULES, seed_default_rules
from reminders.services.rule_service import RuleService


def main():
    print("=== Seeding reminder rules ===")
    print("-" * 40)

    # Create indexes first
    create_indexes()

    created = seed_default_rules(RuleService())
    print(f"Created {created} of {len(DEFAULT_RULES)} default rules")

    print("-" * 40)
    print("Done!")


if __name__ == "__main__":
    main()
