# fees/models.py

"""
Fee Configuration Models

- Fee Categories (fee headings), typed school or transport
- Category Heads (optional sub-grouping; none means "General")
- Fee Structures (fee plans): fee category x category head x class with an amount
- Routes and Route Plans for transport fees

A fee plan is identified by its composite key
(fee_category_id, category_head_id, class_id), not by id or name.
"""

from django.db import models
from django.core.validators import MinValueValidator
from decimal import Decimal
import logging

from utils.models import SchoolOwnedModel
from academics.models import Class

logger = logging.getLogger(__name__)


STATUS_ACTIVE = 'active'
STATUS_INACTIVE = 'inactive'

STATUS_CHOICES = [
    (STATUS_ACTIVE, 'Active'),
    (STATUS_INACTIVE, 'Inactive'),
]


# =============================================================================
# FEE CATEGORY (FEE HEADING)
# =============================================================================

class FeeCategory(SchoolOwnedModel):
    """Named class of fee such as "Tuition Fee" or "Bus Fee" """

    TYPE_SCHOOL = 'school'
    TYPE_TRANSPORT = 'transport'

    FEE_TYPE_CHOICES = [
        (TYPE_SCHOOL, 'School Fee'),
        (TYPE_TRANSPORT, 'Transport Fee'),
    ]

    name = models.CharField("Fee Heading", max_length=255)
    description = models.TextField("Description", blank=True)
    fee_type = models.CharField(
        "Type",
        max_length=20,
        choices=FEE_TYPE_CHOICES,
        default=TYPE_SCHOOL,
        db_index=True
    )
    status = models.CharField(
        "Status",
        max_length=10,
        choices=STATUS_CHOICES,
        default=STATUS_ACTIVE,
        db_index=True
    )
    applicable_months = models.JSONField(
        "Applicable Months",
        null=True,
        blank=True,
        help_text="Month numbers 1-12 in which this fee is charged; empty means every month"
    )

    class Meta:
        verbose_name = "Fee Category"
        verbose_name_plural = "Fee Categories"
        ordering = ['name']
        indexes = [
            models.Index(fields=['school', 'fee_type']),
        ]

    def __str__(self):
        return f"{self.name} ({self.get_fee_type_display()})"


# =============================================================================
# CATEGORY HEAD
# =============================================================================

class CategoryHead(SchoolOwnedModel):
    """Optional sub-grouping of a fee category, e.g. "Sponsored" or "Staff Child" """

    name = models.CharField("Category Head", max_length=255)
    description = models.TextField("Description", blank=True)
    status = models.CharField(
        "Status",
        max_length=10,
        choices=STATUS_CHOICES,
        default=STATUS_ACTIVE,
        db_index=True
    )

    class Meta:
        verbose_name = "Category Head"
        verbose_name_plural = "Category Heads"
        ordering = ['name']
        constraints = [
            models.UniqueConstraint(fields=['school', 'name'], name='unique_category_head_per_school'),
        ]

    def __str__(self):
        return self.name


# =============================================================================
# FEE STRUCTURE (FEE PLAN)
# =============================================================================

class FeeStructure(SchoolOwnedModel):
    """Amount billed for one fee category / category head / class combination"""

    fee_category = models.ForeignKey(
        FeeCategory,
        verbose_name="Fee Heading",
        on_delete=models.CASCADE,
        related_name='fee_structures'
    )
    category_head = models.ForeignKey(
        CategoryHead,
        verbose_name="Category Head",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name='fee_structures',
        help_text="Leave empty for General"
    )
    school_class = models.ForeignKey(
        Class,
        verbose_name="Class",
        null=True,
        blank=True,
        on_delete=models.CASCADE,
        related_name='fee_structures'
    )

    name = models.CharField("Plan Name", max_length=255)
    description = models.TextField("Description", blank=True)
    amount = models.DecimalField(
        "Amount",
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))]
    )
    status = models.CharField(
        "Status",
        max_length=10,
        choices=STATUS_CHOICES,
        default=STATUS_ACTIVE,
        db_index=True
    )

    class Meta:
        verbose_name = "Fee Plan"
        verbose_name_plural = "Fee Plans"
        ordering = ['fee_category__name', 'school_class__name']
        indexes = [
            models.Index(fields=['school', 'fee_category', 'category_head', 'school_class']),
        ]

    def __str__(self):
        return f"{self.name} - {self.amount:,.2f}"

    def composite_key(self):
        return (self.fee_category_id, self.category_head_id or None, self.school_class_id or None)


# =============================================================================
# ROUTES AND ROUTE PLANS
# =============================================================================

class Route(SchoolOwnedModel):
    """Transport route"""

    name = models.CharField("Route Name", max_length=255)
    description = models.TextField("Description", blank=True)
    status = models.CharField(
        "Status",
        max_length=10,
        choices=STATUS_CHOICES,
        default=STATUS_ACTIVE,
        db_index=True
    )

    class Meta:
        verbose_name = "Route"
        verbose_name_plural = "Routes"
        ordering = ['name']

    def __str__(self):
        return self.name


class RoutePlan(SchoolOwnedModel):
    """Transport fee for a route, optionally narrowed to a category head and class"""

    route = models.ForeignKey(
        Route,
        verbose_name="Route",
        on_delete=models.CASCADE,
        related_name='route_plans'
    )
    fee_category = models.ForeignKey(
        FeeCategory,
        verbose_name="Transport Fee Heading",
        on_delete=models.CASCADE,
        related_name='route_plans'
    )
    category_head = models.ForeignKey(
        CategoryHead,
        verbose_name="Category Head",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name='route_plans'
    )
    school_class = models.ForeignKey(
        Class,
        verbose_name="Class",
        null=True,
        blank=True,
        on_delete=models.CASCADE,
        related_name='route_plans',
        help_text="Leave empty to apply to all classes"
    )

    name = models.CharField("Plan Name", max_length=255)
    amount = models.DecimalField(
        "Amount",
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    status = models.CharField(
        "Status",
        max_length=10,
        choices=STATUS_CHOICES,
        default=STATUS_ACTIVE,
        db_index=True
    )

    class Meta:
        verbose_name = "Route Plan"
        verbose_name_plural = "Route Plans"
        ordering = ['route__name', 'fee_category__name']

    def __str__(self):
        return f"{self.name} - {self.amount:,.2f}"

    def composite_key(self):
        return (
            self.route_id,
            self.fee_category_id,
            self.category_head_id or None,
            self.school_class_id or None,
        )
