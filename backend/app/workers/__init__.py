"""Background workers for course generation and coach request delivery.

Run with: arq app.workers.arq_tasks.WorkerSettings
"""
