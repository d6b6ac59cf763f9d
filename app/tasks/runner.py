"""
Run async repository code from synchronous Celery tasks
"""

import asyncio
import concurrent.futures


def run_async(coro):
    """
    Run a coroutine to completion from a sync task.

    Uses asyncio.run() directly, or a worker thread when called from inside a
    running event loop (eager tasks under the API or tests).
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        # No event loop running, use asyncio.run()
        return asyncio.run(coro)

    with concurrent.futures.ThreadPoolExecutor(max_workers=1) as executor:
        future = executor.submit(asyncio.run, coro)
        return future.result()
