"""Services module.

Services:
- expiry_rules.py: Expiry thresholds and post-expiry windows (pure)
- recurrence_rules.py: Invoice reminder cadence and due-date reminder (pure)
- templates.py: Subject, body and metadata rendering
- notifications.py: Notification store and lifecycle controller
- invoice_schedules.py: Invoice reminder schedule management
- scheduler.py: Scheduling scan over the catalogs
"""
