"""Task execution infrastructure using Taskiq.

- broker.py: Taskiq broker (RabbitMQ through taskiq-aio-pika, or in-memory)
- scheduler.py: APScheduler timers that enqueue the periodic sweeps

For task definitions, see ``notify_service.workers``.

Run a separate worker when RabbitMQ is enabled:
    taskiq worker notify_service.infra.tasks.broker:broker
"""
