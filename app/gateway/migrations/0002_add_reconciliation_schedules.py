"""
Add celery-beat schedules for gateway maintenance tasks.

- Reconcile stale orders with their providers every 10 minutes
- Re-queue undelivered merchant notifications every 5 minutes
- Purge old provider callback audit rows once a day
"""

from django.db import migrations

SCHEDULES = [
    {
        "name": "Reconcile Stale Orders",
        "task": "gateway.tasks.reconcile_stale_orders",
        "every": 10,
        "period": "minutes",
        "description": (
            "Queries providers for pending and processing orders that have "
            "not been settled by a callback."
        ),
    },
    {
        "name": "Redeliver Pending Merchant Notifications",
        "task": "gateway.tasks.redeliver_pending_notifications",
        "every": 5,
        "period": "minutes",
        "description": "Re-queues merchant notifications stuck in pending.",
    },
    {
        "name": "Clean Up Provider Callbacks",
        "task": "gateway.tasks.cleanup_old_callbacks",
        "every": 1,
        "period": "days",
        "description": "Deletes provider callback audit rows past retention.",
    },
]


def create_periodic_tasks(apps, schema_editor):
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    for entry in SCHEDULES:
        schedule, _ = IntervalSchedule.objects.get_or_create(
            every=entry["every"],
            period=entry["period"],
        )
        PeriodicTask.objects.get_or_create(
            name=entry["name"],
            defaults={
                "task": entry["task"],
                "interval": schedule,
                "enabled": True,
                "description": entry["description"],
            },
        )


def remove_periodic_tasks(apps, schema_editor):
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(
        name__in=[entry["name"] for entry in SCHEDULES],
    ).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("gateway", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_tasks, remove_periodic_tasks),
    ]
