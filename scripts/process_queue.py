# Drain the outbound queue once from cron or a shell, optionally followed by a retry sweep.

import argparse
import asyncio
import logging
from isp_messaging.config import settings
from isp_messaging.db.database import engine
from tasks.queue_tasks import run_drain, run_retry

async def process_queue(batch_size: int, retry: bool, max_attempts: int, retry_batch: int):
    print("Starting message queue processing...")
    stats = await run_drain(batch_size)
    print(f"Processed: {stats['attempted']} messages")
    print(f"Sent: {stats['sent']} messages")
    if stats["failed"]:
        print(f"Failed: {stats['failed']} messages")

    if retry:
        print("Processing retry queue...")
        retry_stats = await run_retry(max_attempts, retry_batch)
        print(f"Retry - Processed: {retry_stats['attempted']} messages")
        print(f"Retry - Sent: {retry_stats['sent']} messages")
        if retry_stats["failed"]:
            print(f"Retry - Failed: {retry_stats['failed']} messages")

    print("Message queue processing completed.")
    await engine.dispose()

if __name__ == "__main__":
    logging.basicConfig(level=settings.log_level)
    parser = argparse.ArgumentParser(description="Send pending queued email/SMS messages")
    parser.add_argument("--batch", type=int, default=settings.drain_batch_size, help="Number of messages to process per batch")
    parser.add_argument("--retry", action="store_true", help="Also retry failed messages")
    parser.add_argument("--max-attempts", type=int, default=settings.max_attempts, help="Maximum attempts for failed messages")
    parser.add_argument("--retry-batch", type=int, default=settings.retry_batch_size)
    args = parser.parse_args()
    asyncio.run(process_queue(args.batch, args.retry, args.max_attempts, args.retry_batch))
