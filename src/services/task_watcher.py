"""Task watcher - realtime task changes drive stage completion."""

import asyncio
from typing import Awaitable, Callable, Optional

from src.services.deal_progression import on_work_item_status_changed
from src.services.notifier import Notifier
from src.services.supabase_client import close_supabase_client, get_async_supabase_client
from src.utils.config import TimelineConfig
from src.utils.logging import correlation_context, get_structured_logger, log_timing

logger = get_structured_logger(__name__)

ChangeHandler = Callable[[str], Awaitable[list]]


def extract_change(payload: dict) -> tuple[Optional[dict], Optional[dict]]:
    """
    Pull (record, old_record) out of a change payload.

    Accepts realtime channel payloads ({"data": {...}}) as well as
    database-webhook bodies ({"record": ..., "old_record": ...}).
    """
    if not isinstance(payload, dict):
        return None, None
    data = payload.get("data") if isinstance(payload.get("data"), dict) else payload
    record = data.get("record") or data.get("new")
    old_record = data.get("old_record") or data.get("old")
    return record, old_record


def status_changed(record: Optional[dict], old_record: Optional[dict]) -> bool:
    """
    Whether a change may have moved the task's status.

    Without a full old row (default replica identity) every update counts.
    """
    if not record or "status" not in record:
        return False
    if not old_record or "status" not in old_record:
        return True
    return record["status"] != old_record["status"]


class TaskWatcher:
    """Subscribe to task updates per project and re-evaluate tagged stages."""

    def __init__(self, handler: ChangeHandler = on_work_item_status_changed, notifier: Optional[Notifier] = None):
        self.handler = handler
        self.notifier = notifier or Notifier()
        self.channels: dict[str, object] = {}  # project_id -> realtime channel
        self.pending: dict[str, asyncio.Task] = {}  # task_id -> in-flight dispatch
        logger.info("TaskWatcher initialized", table=TimelineConfig.TASK_WATCH_TABLE)

    async def watch_project(self, project_id: str) -> None:
        """Subscribe to UPDATE events on tasks of one project."""
        if project_id in self.channels:
            return

        client = await get_async_supabase_client()
        channel = client.channel(f"tasks_{project_id}")
        channel.on_postgres_changes(
            "UPDATE",
            schema="public",
            table=TimelineConfig.TASK_WATCH_TABLE,
            filter=f"project_id=eq.{project_id}",
            callback=self.on_change,
        )
        await channel.subscribe()
        self.channels[project_id] = channel
        logger.info("Watching project tasks", project_id=project_id)

    async def unwatch_project(self, project_id: str) -> None:
        channel = self.channels.pop(project_id, None)
        if channel is not None:
            await channel.unsubscribe()
            logger.info("Stopped watching project tasks", project_id=project_id)

    async def close(self) -> None:
        """Unsubscribe and wait for in-flight dispatches before dropping the clients."""
        for project_id in list(self.channels):
            await self.unwatch_project(project_id)
        if self.pending:
            await asyncio.gather(*self.pending.values(), return_exceptions=True)
        await close_supabase_client()

    def on_change(self, payload: dict) -> Optional[asyncio.Task]:
        """Realtime callback; schedules a dispatch on the running loop."""
        record, old_record = extract_change(payload)
        if not status_changed(record, old_record):
            return None

        task_id = record.get("id")
        if not task_id:
            return None

        # Changes to one task are handled in arrival order
        previous = self.pending.get(task_id)
        dispatch = asyncio.get_running_loop().create_task(self._dispatch(task_id, previous))
        self.pending[task_id] = dispatch
        return dispatch

    async def _dispatch(self, task_id: str, previous: Optional[asyncio.Task]) -> None:
        if previous is not None and not previous.done():
            await asyncio.gather(previous, return_exceptions=True)

        with correlation_context():
            try:
                with log_timing("task_change_dispatch", logger=logger, task_id=task_id):
                    results = await self.handler(task_id)
                for result in results or []:
                    if result.deal_completed:
                        self.notifier.success("Deal completed", deal_id=result.deal_id)
                    else:
                        self.notifier.success(
                            f"Stage completed, deal now on stage {result.current_stage}",
                            deal_id=result.deal_id,
                            stage_id=result.stage_id,
                        )
            except Exception as e:
                logger.error(
                    "Error processing task change",
                    task_id=task_id,
                    error=str(e),
                    exc_info=True,
                )
            finally:
                current = asyncio.current_task()
                if self.pending.get(task_id) is current:
                    del self.pending[task_id]
