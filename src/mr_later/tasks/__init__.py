"""
Task subsystem.

Components:
- task_models.py: data structures (Task, TaskStatus, TaskPriority) and payload validation
- task_store.py: in-memory mirror of the user's tasks, synced with the gateway
- task_stats.py: dashboard numbers (progress, today, upcoming, overdue)
"""
