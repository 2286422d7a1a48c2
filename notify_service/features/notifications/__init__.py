"""Notification scheduling and delivery engine.

Producers (``scheduler``) write ``QueueEntry`` rows; the ``processor``
drains due rows through the WhatsApp ``gateway``, gated by the user's
quiet window (``quiet_hours``) and daily ceiling (``pacing``).

Example:
    ```python
    components = build_components(session_factory=get_async_session)
    await components.scheduler.schedule_task_reminders()
    await components.processor.process_due()

    # From the task-update flow, without waiting on delivery
    components.scheduler.notify_status_change(user_id, task_id, "pending", "completed")
    ```
"""

from notify_service.features.notifications.models import NotificationKind, QueueEntry, QueueState

__all__ = ["NotificationKind", "QueueEntry", "QueueState"]
