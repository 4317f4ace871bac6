"""
Planwise — Entry Point.

`python main.py <owner_id>` prints what is due for review right now.
"""

import asyncio
import logging
import sys

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

from planwise.adapters.clock import SystemClock
from planwise.core.review_session import aggregate_due_items
from planwise.data.db import DocumentDB
from planwise.data.repository import PlanRepository


async def show_due(owner_id: str) -> None:
    repository = PlanRepository(DocumentDB())
    goals = await repository.list_goals(owner_id)
    tasks = await repository.list_tasks(owner_id)
    routines = await repository.list_routines(owner_id)
    items = aggregate_due_items(goals, tasks, routines, SystemClock().now())
    if not items:
        print("Nothing due.")
        return
    for item in items:
        print(f"{item.due_date:%Y-%m-%d %H:%M}  {item.kind.value:<11}  {item.title}")


def main() -> None:
    if len(sys.argv) != 2:
        print("usage: python main.py <owner_id>")
        sys.exit(2)
    asyncio.run(show_due(sys.argv[1]))


if __name__ == "__main__":
    main()
