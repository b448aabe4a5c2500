"""Background jobs run by the APScheduler instance in revsplit.jobs.scheduler."""
