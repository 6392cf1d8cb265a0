# feeplans/managers.py

from django.db import models
from django.conf import settings
from django.core.cache import cache
import logging
from uuid import uuid4

from fees.exceptions import ImportInProgressError

logger = logging.getLogger(__name__)


def get_school_id(school):
    """Accept a School instance or a raw primary key and return the key"""
    return getattr(school, 'pk', school)


class SchoolQuerySet(models.QuerySet):
    """QuerySet for records owned by a single school"""

    def for_school(self, school):
        return self.filter(school_id=get_school_id(school))

    def active(self):
        return self.filter(status='active')


class SchoolManager(models.Manager.from_queryset(SchoolQuerySet)):
    """
    Manager for school-owned records.

    The school is always passed explicitly:

        FeeStructure.objects.for_school(school).filter(status='active')
    """
    pass


# ==============================================================================
# IMPORT LOCKING
# ==============================================================================

class SchoolImportLock:
    """
    Context manager that allows one bulk import of a given kind per school.

    Uses cache.add, which only succeeds when the key is absent, so a second
    import for the same school and kind fails fast with ImportInProgressError
    instead of racing the first one on duplicate detection.

    Example:
        with SchoolImportLock(school.pk, 'fee_plans'):
            run_fee_plan_import(...)
    """

    def __init__(self, school, kind, timeout=None):
        self.school_id = get_school_id(school)
        self.kind = kind
        self.key = f"fee_import_lock:{self.school_id}:{kind}"
        self.timeout = timeout or getattr(settings, 'FEE_IMPORT_LOCK_TIMEOUT', 600)
        self.token = uuid4().hex
        self.acquired = False

    def __enter__(self):
        if not cache.add(self.key, self.token, self.timeout):
            logger.warning(f"Rejected {self.kind} import for school {self.school_id}: lock held")
            raise ImportInProgressError(
                f"Another {self.kind.replace('_', ' ')} import is already running for this school"
            )
        self.acquired = True
        logger.debug(f"Acquired import lock {self.key}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if not self.acquired:
            return
        self.acquired = False
        # Only release our own lock; after a timeout the key may belong to another import
        if cache.get(self.key) == self.token:
            cache.delete(self.key)
            logger.debug(f"Released import lock {self.key}")
        else:
            logger.warning(f"Import lock {self.key} expired before release")
