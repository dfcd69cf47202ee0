"""
Per-company monthly rollup of flyer and claim activity.

One document per company and calendar month (UTC), under
``companies/<companyId>/statistics/<YYYY-MM>``. Existing documents are only
ever changed through Increment writes so concurrent flows never lose updates.
"""
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from docstore import DocumentSnapshot, DocumentStore, Increment, Transaction, collection_path

from .models import CompanyStatistics


def statistics_collection(company_id: str) -> str:
    return collection_path("companies", company_id, "statistics")


def month_key(now: datetime) -> str:
    return f"{now.year}-{now.month:02d}"


def read_month_statistics(transaction: Transaction, company_id: str, now: datetime) -> DocumentSnapshot:
    return transaction.get(statistics_collection(company_id), month_key(now))


def new_statistics_document(now: datetime) -> Dict[str, Any]:
    return {
        "year": now.year,
        "month": now.month,
        "claimCount": 0,
        "totalReward": Decimal("0"),
        "flyerCount": 0,
        "totalMaxUsers": 0,
        "totalEventMoney": Decimal("0"),
        "createdAt": now,
        "updatedAt": now,
    }


def stage_increments(
    transaction: Transaction,
    snapshot: DocumentSnapshot,
    increments: Dict[str, Any],
    now: datetime,
) -> None:
    """Add ``increments`` to a statistics document previously read in ``transaction``."""
    if snapshot.exists:
        fields: Dict[str, Any] = {key: Increment(value) for key, value in increments.items()}
        fields["updatedAt"] = now
        transaction.update(snapshot.collection, snapshot.id, fields)
        return

    document = new_statistics_document(now)
    for key, value in increments.items():
        document[key] = document.get(key, 0) + value
    transaction.set(snapshot.collection, snapshot.id, document)


def stage_flyer_created(
    transaction: Transaction,
    snapshot: DocumentSnapshot,
    max_users: int,
    event_money: Decimal,
    now: datetime,
) -> None:
    stage_increments(
        transaction,
        snapshot,
        {"flyerCount": 1, "totalMaxUsers": max_users, "totalEventMoney": event_money},
        now,
    )


def stage_claim_rewarded(
    transaction: Transaction,
    snapshot: DocumentSnapshot,
    reward: Decimal,
    now: datetime,
) -> None:
    stage_increments(transaction, snapshot, {"claimCount": 1, "totalReward": reward}, now)


def get_month_statistics(
    store: DocumentStore,
    company_id: str,
    year: int,
    month: int,
) -> Optional[CompanyStatistics]:
    snapshot = store.get(statistics_collection(company_id), f"{year}-{month:02d}")
    if not snapshot.exists:
        return None
    return CompanyStatistics.model_validate({**snapshot.data, "companyId": company_id})
