"""
Built-in job handlers.

ReminderHandler backs the scheduler tools: a reminder job carries
{"message", "channel", "chat_id"} and is delivered through a send callback
(the ChannelManager when the gateway runs). Without a callback, or without
a target, the reminder is only logged.
"""

from typing import Any, Awaitable, Callable

from clawgate.scheduler.jobs import Job, JobHandler
from clawgate.utils.logger import Logger

logger = Logger("Reminder")

SendFunc = Callable[[str, str, str], Awaitable[None]]


class ReminderHandler(JobHandler):
    name = "reminder"

    def __init__(self, send: SendFunc | None = None):
        self._send = send

    async def execute(self, job: Job, args: Any) -> None:
        args = args if isinstance(args, dict) else {}
        message = args.get("message") or job.description or job.name
        channel = args.get("channel")
        chat_id = args.get("chat_id")

        text = f"Reminder: {message}"

        if self._send is None or not channel or not chat_id:
            logger.info(text, {"job_id": job.id})
            return

        await self._send(channel, str(chat_id), text)
