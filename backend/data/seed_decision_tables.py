"""
Seed script for populating the database with the demo decision tables and
a pair of sample cases.
Run with: python data/seed_decision_tables.py
"""
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy.orm import Session
from app.db import Base, SessionLocal, engine
from app.db.models import DecisionTableRecord, TransactionCase, CaseStatus
from app.services.decision_tables import seed_demo_tables
from app.services.triage.demo_tables import (
    LOAN_TEST_VALUES,
    WITHDRAWAL_TEST_VALUES,
    loan_decision_table,
    withdrawal_decision_table,
)


SAMPLE_CASES = [
    {
        "case_id": "TXN-DEMO0001",
        "policy_number": "UL-204-118-553",
        "owner_name": "Margaret Ellison",
        "transaction_type_key": "policy_loan",
        "channel_source": "Portal",
        "policy_fields": LOAN_TEST_VALUES,
    },
    {
        "case_id": "TXN-DEMO0002",
        "policy_number": "VA-771-090-214",
        "owner_name": "Daniel Okafor",
        "transaction_type_key": "annuity_withdrawal",
        "channel_source": "Mail",
        "policy_fields": WITHDRAWAL_TEST_VALUES,
    },
]


def seed_sample_cases(db: Session) -> int:
    """Create the sample cases that are not already present."""
    created = 0
    for case_data in SAMPLE_CASES:
        existing = db.query(TransactionCase).filter(
            TransactionCase.case_id == case_data["case_id"]
        ).first()
        if existing:
            print(f"  Skipping {case_data['case_id']} (already exists)")
            continue

        db.add(TransactionCase(
            status=CaseStatus.INTAKE,
            idp_fields=[],
            workflow_fields={},
            **case_data,
        ))
        db.commit()
        created += 1
        print(f"  Created case {case_data['case_id']} ({case_data['transaction_type_key']})")
    return created


def seed_decision_tables():
    """Seed the database with the demo decision tables."""
    print("\n" + "="*60)
    print("SEEDING DATABASE WITH DEMO DECISION TABLES")
    print("="*60 + "\n")

    Base.metadata.create_all(bind=engine)
    db = SessionLocal()

    try:
        created = seed_demo_tables(db, [loan_decision_table(), withdrawal_decision_table()])
        for table_id in created:
            print(f"  Created and activated {table_id}")
        if not created:
            print("  Demo tables already exist")

        seed_sample_cases(db)

        print("\n" + "="*60)
        print("SEEDING COMPLETE!")
        print("="*60)

        print(f"\nDatabase Summary:")
        print(f"  Decision tables: {db.query(DecisionTableRecord).count()}")
        print(f"  Cases: {db.query(TransactionCase).count()}")
        print()

    except Exception as e:
        print(f"\nError: {e}")
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    seed_decision_tables()
