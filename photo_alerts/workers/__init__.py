"""Background workers."""

from photo_alerts.workers.scheduler import EVALUATION_JOB_ID, EvaluationScheduler, collection_job_id

__all__ = ["EVALUATION_JOB_ID", "EvaluationScheduler", "collection_job_id"]
