import heapq
import logging
from datetime import datetime, timezone
from itertools import islice
from typing import Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from isp_messaging.models.message_queue import utcnow
from isp_messaging.models.models import Application, JobOrder

DEFAULT_LIMIT = 15
UNKNOWN_PLAN = "Unknown Plan"

def _full_name(first_name, last_name) -> str:
    return f"{first_name or ''} {last_name or ''}".strip()

def _time_fields(moment: Optional[datetime]) -> dict:
    # Undated rows are shown as happening now
    moment = moment or utcnow()
    moment = moment.replace(tzinfo=timezone.utc) if moment.tzinfo is None else moment
    return {
        "timestamp": int(moment.timestamp()),
        "formatted_date": moment.strftime("%Y-%m-%d %I:%M:%S %p"),
        "raw_date": moment.isoformat()
    }

class NotificationService:
    """Dashboard feed built from new applications and completed job orders."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def pending_applications(self, limit: int) -> list[dict]:
        result = await self.db.execute(
            select(Application)
            .where(Application.status == "Pending")
            .order_by(Application.created_at.desc().nulls_first(), Application.id.desc())
            .limit(limit)
        )
        return [
            {
                "id": app.id,
                "type": "application",
                "customer_name": _full_name(app.first_name, app.last_name),
                "plan_name": app.desired_plan or UNKNOWN_PLAN,
                "title": "New Application",
                "message": "New application received",
                **_time_fields(app.created_at)
            }
            for app in result.scalars().all()
        ]

    async def completed_job_orders(self, limit: int) -> list[dict]:
        result = await self.db.execute(
            select(
                JobOrder.id,
                JobOrder.updated_at,
                Application.first_name,
                Application.last_name,
                Application.desired_plan
            )
            .join(Application, JobOrder.application_id == Application.id)
            .where(JobOrder.onsite_status == "Done")
            .order_by(JobOrder.updated_at.desc().nulls_first(), JobOrder.id.desc())
            .limit(limit)
        )
        return [
            {
                "id": row.id,
                "type": "job_order_done",
                "customer_name": _full_name(row.first_name, row.last_name),
                "plan_name": row.desired_plan or UNKNOWN_PLAN,
                "title": "Job Order Completed",
                "message": "Onsite status marked as Done",
                **_time_fields(row.updated_at)
            }
            for row in result.all()
        ]

    async def latest(self, limit: int = DEFAULT_LIMIT) -> list[dict]:
        if limit < 1:
            return []
        applications = await self.pending_applications(limit)
        job_orders = await self.completed_job_orders(limit)
        # Both sources are already newest-first
        merged = heapq.merge(applications, job_orders, key=lambda item: item["timestamp"], reverse=True)
        items = list(islice(merged, limit))
        logging.debug(f"Notification feed: applications={len(applications)} job_orders={len(job_orders)} returned={len(items)}")
        return items
