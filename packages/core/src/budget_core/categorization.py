"""Rule-based category suggestions for incoming transactions.

Rules, in order:
1. Transfers and card payments go to the excluded category
2. A fixed category whose expected merchant name appears in the
   transaction's merchant name
3. The category most often used for this merchant recently

The surplus category is never suggested.
"""

from collections import Counter
from typing import Optional, Sequence

import structlog

from .models import Category, CategoryType, TransactionRecord

logger = structlog.get_logger()


TRANSFER_KEYWORDS: tuple[str, ...] = (
    "TRANSFER",
    "PAYMENT",
    "PAY",
    "CREDIT CARD",
    "CARD PAYMENT",
    "AUTOPAY",
    "AUTO PAY",
    "PAYMENT TO",
    "TRANSFER TO",
    "TRANSFER FROM",
)

TRANSFER_PROVIDER_CATEGORIES: tuple[str, ...] = (
    "TRANSFER_IN",
    "TRANSFER_OUT",
    "LOAN_PAYMENTS",
    "CREDIT_CARD_PAYMENT",
    "PAYMENT",
)

MERCHANT_HISTORY_LIMIT = 5


def detect_transfer(
    name: Optional[str],
    merchant_name: Optional[str] = None,
    provider_categories: Optional[Sequence[str]] = None,
) -> bool:
    """True when a transaction looks like money moving between the user's own accounts.

    Examples:
        >>> detect_transfer("AUTOPAY CHASE CARD")
        True
        >>> detect_transfer("Whole Foods", "Whole Foods", ["FOOD_AND_DRINK"])
        False
    """
    if provider_categories:
        joined = " ".join(provider_categories).upper()
        if any(marker in joined for marker in TRANSFER_PROVIDER_CATEGORIES):
            return True

    text = (name or merchant_name or "").upper()
    return any(keyword in text for keyword in TRANSFER_KEYWORDS)


def match_fixed_category(
    merchant_name: Optional[str],
    categories: Sequence[Category],
) -> Optional[Category]:
    """Fixed category whose expected merchant name is contained in ``merchant_name``."""
    if not merchant_name:
        return None
    merchant = merchant_name.lower()
    for cat in categories:
        if (
            cat.category_type == CategoryType.FIXED
            and cat.expected_merchant_name
            and cat.expected_merchant_name.lower() in merchant
        ):
            return cat
    return None


def suggest_category(
    transaction: TransactionRecord,
    categories: Sequence[Category],
    merchant_history: Sequence[int] = (),
) -> Optional[int]:
    """
    Suggest a category id for a transaction.

    Args:
        transaction: Transaction to categorize
        categories: Categories of the user's budget
        merchant_history: Category ids of earlier transactions from the same
            merchant, most recent first

    Returns:
        Category id, or None when no rule applies
    """
    candidates = [cat for cat in categories if cat.category_type != CategoryType.SURPLUS]
    if not candidates:
        return None

    if detect_transfer(transaction.name, transaction.merchant_name, transaction.provider_categories):
        excluded = next(
            (cat for cat in candidates if cat.category_type == CategoryType.EXCLUDED), None
        )
        if excluded is not None:
            logger.debug("transaction_categorized", transaction_id=transaction.id, rule="transfer")
            return excluded.id

    fixed = match_fixed_category(transaction.merchant_name, candidates)
    if fixed is not None:
        logger.debug("transaction_categorized", transaction_id=transaction.id, rule="fixed_merchant")
        return fixed.id

    known_ids = {cat.id for cat in candidates}
    recent = [cid for cid in merchant_history[:MERCHANT_HISTORY_LIMIT] if cid in known_ids]
    if recent:
        # Ties go to the most recent
        counts = Counter(recent)
        best = max(recent, key=lambda cid: (counts[cid], -recent.index(cid)))
        logger.debug("transaction_categorized", transaction_id=transaction.id, rule="merchant_history")
        return best

    return None
