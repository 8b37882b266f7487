import argparse
import asyncio
from sqlalchemy import select
from isp_messaging.db.database import async_session, engine
from isp_messaging.models.message_queue import QueuedMessage
from isp_messaging.services.message_queue import MessageQueueService

async def reset_stuck_messages(older_than: int):
    async with async_session() as session:
        # Release claims left by a crashed drain so the rows become eligible again
        released = await MessageQueueService(session).release_stale_claims(older_than)
        print(f"Released {released} stuck message claims")
        result = await session.execute(
            select(QueuedMessage.id, QueuedMessage.status, QueuedMessage.claimed_at)
            .where(QueuedMessage.claim_token.is_not(None))
        )
        rows = result.fetchall()
        if rows:
            print("Messages still claimed:")
            for row in rows:
                print(f"id={row[0]}, status={row[1].value}, claimed_at={row[2]}")
    await engine.dispose()

if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument("--older-than", type=int, default=600, help="Claim age in seconds")
    args = parser.parse_args()
    asyncio.run(reset_stuck_messages(args.older_than))
