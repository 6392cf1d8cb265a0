# utils/models.py

"""
Base models for the fee management system.

Key Features:
- Timestamps maintained on every save
- User tracking for who created/updated a record
- School ownership with a school-scoped manager
"""

from django.db import models
from django.utils import timezone
import logging

from feeplans.managers import SchoolManager

logger = logging.getLogger(__name__)


# =============================================================================
# BASE MODEL
# =============================================================================

class BaseModel(models.Model):
    """
    Abstract base with audit fields.

    created_by_id / updated_by_id are plain strings so that records can be
    written from management commands without a user object.
    """

    created_at = models.DateTimeField("Created At", db_index=True, blank=True, editable=False)
    updated_at = models.DateTimeField("Updated At", db_index=True, blank=True, editable=False)

    created_by_id = models.CharField(
        "Created By ID",
        max_length=50,
        null=True,
        blank=True,
        help_text="ID of user who created this record"
    )
    updated_by_id = models.CharField(
        "Updated By ID",
        max_length=50,
        null=True,
        blank=True,
        help_text="ID of user who last updated this record"
    )

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        now = timezone.now()
        if self._state.adding and not self.created_at:
            self.created_at = now
        self.updated_at = now
        return super().save(*args, **kwargs)


# =============================================================================
# SCHOOL-OWNED MODEL
# =============================================================================

class SchoolOwnedModel(BaseModel):
    """Abstract base for records that belong to exactly one school"""

    school = models.ForeignKey(
        'core.School',
        verbose_name="School",
        on_delete=models.CASCADE,
        related_name='%(class)ss'
    )

    objects = SchoolManager()

    class Meta:
        abstract = True
