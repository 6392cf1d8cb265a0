# academics/models.py

from django.db import models
import logging

from utils.models import SchoolOwnedModel

logger = logging.getLogger(__name__)


# =============================================================================
# CLASS MODEL
# =============================================================================

class Class(SchoolOwnedModel):
    """
    A class (grade/form) within a school, e.g. "1st", "Primary 3", "S.4".

    Read-only from the point of view of fee imports; fee plans reference it
    by id and CSV files reference it by name.
    """

    name = models.CharField("Class Name", max_length=100)
    is_active = models.BooleanField("Active", default=True, db_index=True)

    class Meta:
        verbose_name = "Class"
        verbose_name_plural = "Classes"
        ordering = ['name']
        constraints = [
            models.UniqueConstraint(fields=['school', 'name'], name='unique_class_name_per_school'),
        ]

    def __str__(self):
        return self.name
