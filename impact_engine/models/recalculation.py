from django.db import models
from django.utils import timezone

from .assessments import ProductAssessment
from .organizations import Organization


class RecalculationBatch(models.Model):
    STATUS_PENDING = 'pending'
    STATUS_PROCESSING = 'processing'
    STATUS_COMPLETED = 'completed'
    STATUS_FAILED = 'failed'
    STATUS_CANCELLED = 'cancelled'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_PROCESSING, 'Processing'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_FAILED, 'Failed'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]
    TERMINAL_STATUSES = (STATUS_COMPLETED, STATUS_FAILED, STATUS_CANCELLED)

    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    selector = models.CharField(max_length=100, blank=True, help_text="Selection rule used to pick the assessments")
    organization = models.ForeignKey(Organization, on_delete=models.SET_NULL, null=True, blank=True, related_name='recalculation_batches')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)
    priority = models.PositiveSmallIntegerField(default=5)

    total_jobs = models.PositiveIntegerField(default=0)
    completed_jobs = models.PositiveIntegerField(default=0)
    failed_jobs = models.PositiveIntegerField(default=0)
    error_summary = models.JSONField(default=list, blank=True)

    triggered_by = models.CharField(max_length=150, blank=True)
    trigger_reason = models.CharField(max_length=255, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    processing_started_at = models.DateTimeField(null=True, blank=True)
    processing_completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        verbose_name_plural = "Recalculation batches"
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.name} ({self.status}: {self.completed_jobs + self.failed_jobs}/{self.total_jobs})"

    @property
    def finished_jobs(self):
        return self.completed_jobs + self.failed_jobs

    @property
    def pending_jobs(self):
        return max(self.total_jobs - self.finished_jobs, 0)

    @property
    def completion_percentage(self):
        if not self.total_jobs:
            return 100.0
        return round(100.0 * self.finished_jobs / self.total_jobs, 1)


class RecalculationJob(models.Model):
    STATUS_PENDING = 'pending'
    STATUS_PROCESSING = 'processing'
    STATUS_COMPLETED = 'completed'
    STATUS_FAILED = 'failed'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_PROCESSING, 'Processing'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_FAILED, 'Failed'),
    ]
    TERMINAL_STATUSES = (STATUS_COMPLETED, STATUS_FAILED)

    batch = models.ForeignKey(RecalculationBatch, on_delete=models.CASCADE, related_name='jobs')
    assessment = models.ForeignKey(ProductAssessment, on_delete=models.CASCADE, related_name='recalculation_jobs')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)
    priority = models.PositiveSmallIntegerField(default=5)

    attempt_count = models.PositiveIntegerField(default=0)
    max_attempts = models.PositiveIntegerField(default=3)
    last_error = models.TextField(blank=True)
    error_details = models.JSONField(default=dict, blank=True)
    next_retry_at = models.DateTimeField(default=timezone.now)

    created_at = models.DateTimeField(default=timezone.now)
    processing_started_at = models.DateTimeField(null=True, blank=True)
    processing_completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        unique_together = [['batch', 'assessment']]
        ordering = ['-priority', 'created_at', 'pk']
        indexes = [
            models.Index(fields=['status', 'next_retry_at'], name='recalc_job_claim_idx'),
        ]

    def __str__(self):
        return f"Job {self.pk} for assessment {self.assessment_id} ({self.status}, attempt {self.attempt_count}/{self.max_attempts})"

    @property
    def is_terminal(self):
        return self.status in self.TERMINAL_STATUSES
