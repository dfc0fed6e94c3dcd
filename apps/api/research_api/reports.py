"""Report access classifier and listing.

Rows come from the ``user_accessible_analyses`` view, which already carries
the per-user ``has_access`` flag. Classification only labels a report by its
ticker's sector; it never decides access.
"""

import logging
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from research_api.db.models import Mlp, Reit, UserAccessibleAnalysis

logger = logging.getLogger(__name__)

REPORT_TYPES = ("general", "reit", "mlp")
ACCESS_FILTERS = ("free", "purchased", "all")


def classify_tickers(db: Session, tickers: Iterable[str]) -> dict[str, str]:
    """Map each ticker to ``reit``, ``mlp`` or ``general`` (REIT wins over MLP)."""
    unique = sorted(set(tickers))
    if not unique:
        return {}

    reits = {t for (t,) in db.query(Reit.ticker).filter(Reit.ticker.in_(unique)).all()}
    mlps = {t for (t,) in db.query(Mlp.ticker).filter(Mlp.ticker.in_(unique)).all()}

    labels: dict[str, str] = {}
    for ticker in unique:
        if ticker in reits:
            labels[ticker] = "reit"
        elif ticker in mlps:
            labels[ticker] = "mlp"
        else:
            labels[ticker] = "general"
    return labels


def classify_reports(
    db: Session,
    rows: list[UserAccessibleAnalysis],
) -> list[tuple[UserAccessibleAnalysis, str]]:
    """Pair every row with its classification, preserving order."""
    labels = classify_tickers(db, (row.ticker for row in rows))
    return [(row, labels.get(row.ticker, "general")) for row in rows]


def list_reports(
    db: Session,
    user_id: str,
    *,
    ticker: Optional[str] = None,
    report_type: Optional[str] = None,
    access: Optional[str] = None,
) -> list[tuple[UserAccessibleAnalysis, str]]:
    """Reports visible to ``user_id``, newest first.

    Args:
        ticker: Exact ticker match (case-insensitive input)
        report_type: general | reit | mlp; None or "all" keeps every row
        access: free (is_free) | purchased (has_access and not free) |
            all (has_access); None applies no access filter
    """
    query = db.query(UserAccessibleAnalysis).filter(UserAccessibleAnalysis.user_id == user_id)

    if ticker:
        query = query.filter(UserAccessibleAnalysis.ticker == ticker.upper())

    if access == "free":
        query = query.filter(UserAccessibleAnalysis.is_free.is_(True))
    elif access == "purchased":
        query = query.filter(
            UserAccessibleAnalysis.has_access.is_(True),
            UserAccessibleAnalysis.is_free.is_(False),
        )
    elif access == "all":
        query = query.filter(UserAccessibleAnalysis.has_access.is_(True))

    rows = query.order_by(UserAccessibleAnalysis.updated_at.desc()).all()
    classified = classify_reports(db, rows)

    if report_type and report_type != "all":
        classified = [(row, label) for row, label in classified if label == report_type]

    logger.debug(
        "reports.listed",
        extra={"user_id": user_id, "count": len(classified), "access": access, "type": report_type},
    )
    return classified
