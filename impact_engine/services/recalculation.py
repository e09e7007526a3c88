"""
Recalculation queue: batches of per-assessment re-aggregation jobs claimed by workers.

Job state machine::

    pending -> processing -> completed
    pending -> processing -> pending      (retryable failure, linear backoff)
    pending -> processing -> failed       (attempts exhausted)

`claim_next_job` is the single mutual-exclusion point: a row lock that skips rows held by
other claimants, followed by a conditional status update, hands each job to exactly one worker.
"""

import logging
import time
from datetime import timedelta
from typing import Iterable, Optional, Union

from django.db import transaction
from django.db.models import Count, F, Q
from django.utils import timezone

from ..conf import get_setting
from ..exceptions import JobExhausted, JobNotClaimed, NotFound
from ..models.assessments import ProductAssessment
from ..models.recalculation import RecalculationBatch, RecalculationJob
from .aggregation import refresh_assessment_impacts

logger = logging.getLogger(__name__)


# --- Selection ---

def _completed_assessments(organization=None):
    queryset = ProductAssessment.objects.filter(status=ProductAssessment.STATUS_COMPLETED)
    if organization is not None:
        queryset = queryset.filter(product__organization=organization)
    return queryset


SELECTORS = {
    'missing_single_score': lambda organization: _completed_assessments(organization).filter(
        Q(aggregated_impact__isnull=True) | Q(aggregated_impact__single_score__isnull=True)
    ),
    'all_completed': lambda organization: _completed_assessments(organization),
    'needs_review': lambda organization: _completed_assessments(organization).filter(aggregated_impact__needs_review=True),
}


def select_assessments(selector: Union[str, Iterable[int]], organization=None):
    """ Assessments picked by a named selector, or by an explicit list of assessment ids. """
    if isinstance(selector, str):
        if selector not in SELECTORS:
            raise NotFound(f"Unknown recalculation selector '{selector}'")
        queryset = SELECTORS[selector](organization)
    else:
        queryset = ProductAssessment.objects.filter(pk__in=list(selector))
        if organization is not None:
            queryset = queryset.filter(product__organization=organization)
    return queryset.order_by('pk').distinct()


# --- Enqueue ---

@transaction.atomic
def enqueue_recalculation(selector='missing_single_score', metadata: Optional[dict] = None, organization=None) -> RecalculationBatch:
    """
    Create a batch holding one pending job per selected assessment.

    `metadata` may carry name, description, trigger_reason, triggered_by and priority.
    """
    metadata = dict(metadata or {})
    priority = int(metadata.get('priority') or get_setting('RECALCULATION_DEFAULT_PRIORITY'))
    priority = max(1, min(10, priority))
    now = timezone.now()
    selector_label = selector if isinstance(selector, str) else 'explicit'

    batch = RecalculationBatch.objects.create(
        name=metadata.get('name') or f"Recalculation {now:%Y-%m-%d %H:%M}",
        description=metadata.get('description', ''),
        selector=selector_label,
        organization=organization,
        priority=priority,
        triggered_by=str(metadata.get('triggered_by') or ''),
        trigger_reason=metadata.get('trigger_reason', ''),
    )

    assessments = list(select_assessments(selector, organization=organization))
    max_attempts = get_setting('RECALCULATION_MAX_ATTEMPTS')
    RecalculationJob.objects.bulk_create([
        RecalculationJob(
            batch=batch,
            assessment=assessment,
            priority=priority,
            max_attempts=max_attempts,
            next_retry_at=now,
            created_at=now,
        )
        for assessment in assessments
    ])
    ProductAssessment.objects.filter(pk__in=[a.pk for a in assessments]).update(
        recalculation_status=RecalculationJob.STATUS_PENDING,
        recalculation_requested_at=now,
        recalculation_error='',
        recalculation_attempts=0,
    )

    batch.total_jobs = len(assessments)
    if not assessments:
        batch.status = RecalculationBatch.STATUS_COMPLETED
        batch.processing_completed_at = now
    batch.save(update_fields=['total_jobs', 'status', 'processing_completed_at'])

    logger.info(f"[RECALC] Enqueued batch {batch.pk} '{batch.name}' with {batch.total_jobs} job(s) (selector={selector_label})")
    return batch


def enqueue_rescore_for_weighting_set(weighting_set_id, reason: str = '') -> Optional[RecalculationBatch]:
    """
    Queue every completed assessment last scored with the given weighting set.

    Assessments that already have a pending job are skipped; that job reads the current
    weights when it runs. Returns None when nothing needs re-scoring.
    """
    assessment_ids = list(
        _completed_assessments()
        .filter(aggregated_impact__weighting_set_id=weighting_set_id)
        .exclude(recalculation_jobs__status=RecalculationJob.STATUS_PENDING)
        .order_by('pk')
        .values_list('pk', flat=True)
        .distinct()
    )
    if not assessment_ids:
        return None
    return enqueue_recalculation(assessment_ids, {
        'name': f"Re-score for weighting set {weighting_set_id}",
        'trigger_reason': reason or 'Weighting methodology changed',
    })


@transaction.atomic
def enqueue_assessment(assessment: ProductAssessment, batch: Optional[RecalculationBatch] = None, priority: Optional[int] = None) -> RecalculationJob:
    """
    Add one assessment to a batch, or reset its existing non-running job to pending.

    Without a batch a new single-assessment batch is created.
    """
    now = timezone.now()
    if batch is None:
        batch = RecalculationBatch.objects.create(
            name=f"Recalculate assessment {assessment.pk}",
            selector='explicit',
            organization=assessment.product.organization,
            priority=max(1, min(10, int(priority or get_setting('RECALCULATION_DEFAULT_PRIORITY')))),
        )
    batch = RecalculationBatch.objects.select_for_update().get(pk=batch.pk)
    priority = priority if priority is not None else batch.priority

    job = RecalculationJob.objects.select_for_update().filter(batch=batch, assessment=assessment).first()
    if job is None:
        job = RecalculationJob.objects.create(
            batch=batch, assessment=assessment, priority=priority,
            max_attempts=get_setting('RECALCULATION_MAX_ATTEMPTS'),
            next_retry_at=now, created_at=now,
        )
        batch.total_jobs += 1
    elif job.status == RecalculationJob.STATUS_PROCESSING:
        return job
    else:
        if job.status == RecalculationJob.STATUS_COMPLETED:
            batch.completed_jobs -= 1
        elif job.status == RecalculationJob.STATUS_FAILED:
            batch.failed_jobs -= 1
        job.status = RecalculationJob.STATUS_PENDING
        job.priority = priority
        job.attempt_count = 0
        job.last_error = ''
        job.error_details = {}
        job.next_retry_at = now
        job.processing_started_at = None
        job.processing_completed_at = None
        job.save()

    if batch.status == RecalculationBatch.STATUS_COMPLETED:
        batch.status = RecalculationBatch.STATUS_PROCESSING if batch.processing_started_at else RecalculationBatch.STATUS_PENDING
        batch.processing_completed_at = None
    batch.save()

    ProductAssessment.objects.filter(pk=assessment.pk).update(
        recalculation_status=RecalculationJob.STATUS_PENDING,
        recalculation_requested_at=now,
        recalculation_error='',
    )
    return job


# --- Claim / complete ---

def claim_next_job() -> Optional[RecalculationJob]:
    """
    Atomically take the next due pending job.

    Ordered by priority (high first) then creation time. Jobs of cancelled batches are
    not handed out. Returns None when nothing is due.
    """
    for _ in range(get_setting('CLAIM_CONTENTION_RETRIES') + 1):
        now = timezone.now()
        with transaction.atomic():
            candidate = (
                RecalculationJob.objects
                .select_for_update(skip_locked=True, of=('self',))
                .filter(status=RecalculationJob.STATUS_PENDING, next_retry_at__lte=now)
                .exclude(batch__status=RecalculationBatch.STATUS_CANCELLED)
                .order_by('-priority', 'created_at', 'pk')
                .first()
            )
            if candidate is None:
                return None

            claimed = RecalculationJob.objects.filter(
                pk=candidate.pk, status=RecalculationJob.STATUS_PENDING
            ).update(
                status=RecalculationJob.STATUS_PROCESSING,
                attempt_count=F('attempt_count') + 1,
                processing_started_at=now,
            )
            if not claimed:
                logger.debug(f"[RECALC] Job {candidate.pk} was taken by another worker, retrying")
                continue

            RecalculationBatch.objects.filter(
                pk=candidate.batch_id, status=RecalculationBatch.STATUS_PENDING
            ).update(status=RecalculationBatch.STATUS_PROCESSING, processing_started_at=now)
            ProductAssessment.objects.filter(pk=candidate.assessment_id).update(
                recalculation_status=RecalculationJob.STATUS_PROCESSING,
                recalculation_attempts=F('recalculation_attempts') + 1,
            )

        job = RecalculationJob.objects.select_related('batch', 'assessment').get(pk=candidate.pk)
        logger.info(f"[RECALC] Claimed job {job.pk} (assessment {job.assessment_id}, attempt {job.attempt_count}/{job.max_attempts})")
        return job
    return None


def _finalise_batch_if_done(batch_id, now) -> RecalculationBatch:
    batch = RecalculationBatch.objects.select_for_update().get(pk=batch_id)
    if batch.status not in RecalculationBatch.TERMINAL_STATUSES and batch.finished_jobs >= batch.total_jobs:
        batch.status = RecalculationBatch.STATUS_COMPLETED
        batch.processing_completed_at = now
        batch.save(update_fields=['status', 'processing_completed_at'])
        logger.info(
            f"[RECALC] Batch {batch.pk} completed: {batch.completed_jobs} succeeded, {batch.failed_jobs} failed"
        )
    return batch


def _fail_job(job: RecalculationJob, error_message: str, now, error_type=None):
    exhausted = JobExhausted(job.pk, job.attempt_count, error_message)
    job.status = RecalculationJob.STATUS_FAILED
    job.last_error = error_message
    job.error_details = {
        'error_type': error_type or type(exhausted).__name__,
        'message': str(exhausted),
        'attempts': job.attempt_count,
    }
    job.processing_completed_at = now
    job.save()

    batch = RecalculationBatch.objects.select_for_update().get(pk=job.batch_id)
    batch.failed_jobs = F('failed_jobs') + 1
    batch.error_summary = list(batch.error_summary or []) + [{'assessment_id': job.assessment_id, 'job_id': job.pk, 'error': error_message}]
    batch.save(update_fields=['failed_jobs', 'error_summary'])

    ProductAssessment.objects.filter(pk=job.assessment_id).update(
        recalculation_status=RecalculationJob.STATUS_FAILED,
        recalculation_error=error_message,
    )
    logger.error(f"[RECALC] {exhausted}")


def complete_job(job_id, success: bool, error: Optional[str] = None) -> RecalculationJob:
    """
    Record the outcome of a claimed job.

    Failures go back to pending with `attempt_count * backoff` minutes delay until the
    attempt ceiling is reached, then the job fails terminally. Completing a job that is
    already terminal is ignored.
    """
    now = timezone.now()
    with transaction.atomic():
        job = RecalculationJob.objects.select_for_update().get(pk=job_id)
        if job.is_terminal:
            logger.warning(f"[RECALC] Ignoring completion of job {job.pk}: already {job.status}")
            return job
        if job.status != RecalculationJob.STATUS_PROCESSING:
            raise JobNotClaimed(f"Job {job.pk} is {job.status}, not processing")

        if success:
            job.status = RecalculationJob.STATUS_COMPLETED
            job.last_error = ''
            job.processing_completed_at = now
            job.save()
            RecalculationBatch.objects.filter(pk=job.batch_id).update(completed_jobs=F('completed_jobs') + 1)
            ProductAssessment.objects.filter(pk=job.assessment_id).update(
                recalculation_status=RecalculationJob.STATUS_COMPLETED,
                recalculation_error='',
            )
            logger.info(f"[RECALC] Job {job.pk} completed")
        elif job.attempt_count < job.max_attempts:
            error_message = error or 'Unknown error'
            backoff = timedelta(minutes=job.attempt_count * get_setting('RECALCULATION_RETRY_BACKOFF_MINUTES'))
            job.status = RecalculationJob.STATUS_PENDING
            job.last_error = error_message
            job.error_details = {'message': error_message, 'attempts': job.attempt_count}
            job.next_retry_at = now + backoff
            job.save()
            ProductAssessment.objects.filter(pk=job.assessment_id).update(
                recalculation_status=RecalculationJob.STATUS_PENDING,
                recalculation_error=error_message,
            )
            logger.warning(f"[RECALC] Job {job.pk} failed (attempt {job.attempt_count}/{job.max_attempts}), retry at {job.next_retry_at}: {error_message}")
        else:
            _fail_job(job, error or 'Unknown error', now)

        _finalise_batch_if_done(job.batch_id, now)
    return job


# --- Operations ---

def sweep_stale_jobs(timeout_minutes: Optional[int] = None) -> dict:
    """
    Recover jobs left "processing" by a crashed worker.

    Jobs processing for longer than the timeout go back to pending, or fail when their
    attempts are used up.
    """
    if timeout_minutes is None:
        timeout_minutes = get_setting('STALE_JOB_TIMEOUT_MINUTES')
    now = timezone.now()
    cutoff = now - timedelta(minutes=timeout_minutes)
    stats = {'reset': 0, 'failed': 0}

    stale_ids = list(
        RecalculationJob.objects.filter(status=RecalculationJob.STATUS_PROCESSING, processing_started_at__lt=cutoff)
        .values_list('pk', flat=True)
    )
    for job_id in stale_ids:
        with transaction.atomic():
            job = RecalculationJob.objects.select_for_update().get(pk=job_id)
            if job.status != RecalculationJob.STATUS_PROCESSING or job.processing_started_at >= cutoff:
                continue
            message = f"Worker timed out after {timeout_minutes} minute(s)"
            if job.attempt_count >= job.max_attempts:
                _fail_job(job, message, now)
                _finalise_batch_if_done(job.batch_id, now)
                stats['failed'] += 1
            else:
                job.status = RecalculationJob.STATUS_PENDING
                job.last_error = message
                job.next_retry_at = now
                job.save()
                ProductAssessment.objects.filter(pk=job.assessment_id).update(recalculation_status=RecalculationJob.STATUS_PENDING)
                stats['reset'] += 1

    if stale_ids:
        logger.warning(f"[RECALC] Stale job sweep: {stats['reset']} reset, {stats['failed']} failed")
    return stats


@transaction.atomic
def cancel_batch(batch: RecalculationBatch) -> RecalculationBatch:
    """
    Mark a batch cancelled. Pending jobs are no longer claimed; jobs already
    processing run to completion and are still counted.
    """
    batch = RecalculationBatch.objects.select_for_update().get(pk=batch.pk)
    if batch.status in (RecalculationBatch.STATUS_COMPLETED, RecalculationBatch.STATUS_CANCELLED):
        return batch
    batch.status = RecalculationBatch.STATUS_CANCELLED
    batch.processing_completed_at = timezone.now()
    batch.save(update_fields=['status', 'processing_completed_at'])
    logger.info(f"[RECALC] Batch {batch.pk} cancelled with {batch.pending_jobs} unfinished job(s)")
    return batch


def batch_progress(batch: RecalculationBatch) -> dict:
    counts = {status: 0 for status, _ in RecalculationJob.STATUS_CHOICES}
    for row in batch.jobs.values('status').order_by().annotate(count=Count('pk')):
        counts[row['status']] = row['count']
    return {
        'batch_id': batch.pk,
        'name': batch.name,
        'status': batch.status,
        'total_jobs': batch.total_jobs,
        'completed_jobs': batch.completed_jobs,
        'failed_jobs': batch.failed_jobs,
        'pending_jobs': batch.pending_jobs,
        'completion_percentage': batch.completion_percentage,
        'jobs_by_status': counts,
        'error_summary': batch.error_summary,
    }


# --- Worker ---

def process_job(job: RecalculationJob):
    """ Re-aggregate the job's assessment; exceptions propagate to the worker loop. """
    return refresh_assessment_impacts(job.assessment)


def run_worker(max_jobs: Optional[int] = None, idle_sleep: float = 5.0, stop_when_idle: bool = False, stdout=None) -> dict:
    """
    Claim and process jobs until `max_jobs` have run, or until the queue is idle when
    `stop_when_idle` is set.
    """
    stats = {'processed': 0, 'succeeded': 0, 'failed': 0, 'lost': 0}
    while max_jobs is None or stats['processed'] < max_jobs:
        job = claim_next_job()
        if job is None:
            if stop_when_idle:
                break
            time.sleep(idle_sleep)
            continue

        try:
            process_job(job)
        except Exception as e:
            logger.error(f"[RECALC] Job {job.pk} raised while processing assessment {job.assessment_id}: {e}", exc_info=True)
            outcome = {'success': False, 'error': f"{type(e).__name__}: {e}"}
        else:
            outcome = {'success': True}
        stats['processed'] += 1

        try:
            complete_job(job.pk, **outcome)
        except JobNotClaimed as e:
            # The stale sweep handed the job back to the queue while this worker held it
            logger.warning(f"[RECALC] Result of job {job.pk} discarded, lease lost: {e}")
            stats['lost'] += 1
            continue
        stats['succeeded' if outcome['success'] else 'failed'] += 1
        if stdout is not None:
            stdout.write(f"Processed job {job.pk} ({stats['processed']} so far)")
    return stats
