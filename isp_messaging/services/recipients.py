import logging
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from isp_messaging.models.models import BillingAccount, Customer, TechnicalDetail, ACTIVE_BILLING_STATUS
from isp_messaging.services.message_utils import normalize_phone

FILTER_KINDS = ("barangay", "location", "lcp", "lcpnap")

class RecipientFilter:
    """Resolves a blast filter into the phone numbers of active subscribers."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def resolve_accounts(self, kind: str, value: str) -> list[tuple[str, str]]:
        """
        Return (account_no, phone) for each matching active account.

        Accounts sharing a phone number each keep their own entry so every
        account gets its own personalized message.
        """
        kind = (kind or "").strip().lower()
        if kind not in FILTER_KINDS:
            logging.warning(f"Unknown recipient filter kind: {kind!r}")
            return []

        query = (
            select(BillingAccount.account_no, Customer.contact_number_primary)
            .join(Customer, BillingAccount.customer_id == Customer.id)
            .where(BillingAccount.billing_status_id == ACTIVE_BILLING_STATUS)
            .order_by(BillingAccount.account_no)
        )
        if kind == "barangay":
            query = query.where(Customer.barangay_id == value)
        elif kind == "location":
            query = query.where(Customer.location == value)
        else:
            query = query.join(TechnicalDetail, TechnicalDetail.account_id == BillingAccount.id)
            column = TechnicalDetail.lcp if kind == "lcp" else TechnicalDetail.lcpnap
            query = query.where(column == value)

        result = await self.db.execute(query)
        accounts = []
        seen = set()
        for account_no, phone in result.all():
            phone = normalize_phone(phone)
            if not phone or account_no in seen:
                continue
            seen.add(account_no)
            accounts.append((account_no, phone))
        if not accounts:
            logging.info(f"No recipients found for filter {kind}={value}")
        return accounts

    async def resolve(self, kind: str, value: str) -> set[str]:
        return {phone for _, phone in await self.resolve_accounts(kind, value)}
