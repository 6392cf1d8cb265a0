# core/models.py

"""
School registry.

Every fee heading, category head, class, fee plan and route plan belongs to
exactly one School; the school is passed explicitly to every service call.
"""

from django.db import models
import logging

from utils.models import BaseModel

logger = logging.getLogger(__name__)


class School(BaseModel):
    """A tenant of the system"""

    name = models.CharField("School Name", max_length=255)
    code = models.CharField(
        "School Code",
        max_length=30,
        unique=True,
        db_index=True,
        help_text="Short unique code used on the command line (e.g., SCH001)"
    )
    is_active = models.BooleanField("Active", default=True, db_index=True)

    class Meta:
        verbose_name = "School"
        verbose_name_plural = "Schools"
        ordering = ['name']

    def __str__(self):
        return f"{self.name} ({self.code})"
