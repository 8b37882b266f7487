# Script to create all tables from SQLAlchemy models (for dev/empty DB use only)

import asyncio
from isp_messaging.db.database import init_db
# Import all model classes to ensure all tables are registered
from isp_messaging.models.message_queue import QueuedMessage
from isp_messaging.models.templates import MessageTemplate
from isp_messaging.models.models import Customer, BillingAccount, TechnicalDetail, Application, JobOrder, SmsConfig, SmsBlastLog

if __name__ == "__main__":
    asyncio.run(init_db())
