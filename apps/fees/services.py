# fees/services.py

"""
Fee Configuration Services

Database side of the bulk fee tools:
- Create calls for fee plans, fee categories, category heads and route
  plans that report rejections as CreationError
- CSV imports: load reference data, resolve names, parse, de-duplicate and
  create, under a per-school import lock
- Bulk "multiple" creation from selected categories, heads and classes

The school is always passed in explicitly (instance or primary key).
"""

from decimal import Decimal, InvalidOperation
from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import DatabaseError, transaction
import logging

from feeplans.managers import SchoolImportLock, get_school_id
from academics.models import Class
from .csv_import import (
    parse_category_head_csv,
    parse_fee_category_csv,
    parse_fee_plan_csv,
    parse_route_plan_csv,
    preview_rows,
    summarize_parse_errors,
)
from .exceptions import CreationError, MalformedCSVError
from .importers import (
    run_category_head_import,
    run_fee_category_import,
    run_fee_plan_import,
    run_route_plan_import,
)
from .models import (
    STATUS_ACTIVE,
    CategoryHead,
    FeeCategory,
    FeeStructure,
    Route,
    RoutePlan,
)
from .utils import (
    FEE_PLAN_KEY_FIELDS,
    GENERAL_CATEGORY_HEAD,
    ROUTE_PLAN_KEY_FIELDS,
    build_lookup_maps,
    generate_combinations,
    generate_plan_name,
    generate_plan_name_from_ids,
    generate_route_plan_combinations,
    generate_route_plan_name,
    generate_route_plan_name_from_ids,
)

logger = logging.getLogger(__name__)


def _max_errors_shown():
    return getattr(settings, 'FEE_IMPORT_MAX_ERRORS_SHOWN', 10)


def _no_valid_rows(errors, label):
    """MalformedCSVError for a file in which every row was rejected"""
    if errors:
        return MalformedCSVError(summarize_parse_errors(errors, _max_errors_shown()))
    return MalformedCSVError(f"No valid {label} found in CSV file")


def _get_owned(model, school, pk, label):
    """Fetch a school-owned record by id or raise a validation CreationError"""
    try:
        return model.objects.for_school(school).get(pk=pk)
    except (model.DoesNotExist, ValueError, TypeError):
        raise CreationError(f"{label} with ID {pk} not found for this school")


def _clean_amount(value):
    try:
        return Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise CreationError("Please enter a valid amount")


def _save(instance, label):
    """
    Validate and save a new record.

    Raises:
        CreationError: validation kind for model validation errors,
            transport kind for database failures
    """
    try:
        instance.full_clean()
        with transaction.atomic():
            instance.save()
    except ValidationError as e:
        raise CreationError(' '.join(e.messages), kind=CreationError.VALIDATION) from e
    except DatabaseError as e:
        logger.error(f"Database error creating {label}: {e}")
        raise CreationError(f"Failed to create {label}", kind=CreationError.TRANSPORT) from e
    return instance


def _reference_lists(school, fee_type=None):
    """id/name lists used for name resolution and plan names"""
    fee_categories = FeeCategory.objects.for_school(school)
    if fee_type:
        fee_categories = fee_categories.filter(fee_type=fee_type)
    return {
        'fee_categories': list(fee_categories.values('id', 'name')),
        'category_heads': list(CategoryHead.objects.for_school(school).active().values('id', 'name')),
        'classes': list(Class.objects.for_school(school).values('id', 'name')),
    }


# =============================================================================
# FEE PLAN SERVICE
# =============================================================================

class FeePlanService:
    """Creation and bulk import of fee plans (FeeStructure)"""

    @staticmethod
    def get_reference_data(school):
        return _reference_lists(school)

    @staticmethod
    def get_lookup_maps(school):
        reference = FeePlanService.get_reference_data(school)
        return build_lookup_maps(
            reference['fee_categories'],
            reference['category_heads'],
            reference['classes'],
        )

    @staticmethod
    def existing_plans(school):
        """Composite keys of every fee plan the school already has"""
        return [
            dict(zip(FEE_PLAN_KEY_FIELDS, plan.composite_key()))
            for plan in FeeStructure.objects.for_school(school).only(
                'fee_category_id', 'category_head_id', 'school_class_id'
            )
        ]

    @staticmethod
    def create_fee_plan(school, payload):
        """
        Create a single fee plan.

        Args:
            school: School instance or id
            payload (dict):
                Required:
                    - fee_category_id: int
                    - amount: Decimal or str
                Optional:
                    - category_head_id: int (omitted or empty = General)
                    - class_id: int
                    - status: 'active' or 'inactive'
                    - name: str (generated from the category/head/class names when blank)
                    - description: str

        Returns:
            FeeStructure instance

        Raises:
            CreationError: duplicate kind when the school already has a plan
                for the same fee category, category head and class
        """
        fee_category = _get_owned(FeeCategory, school, payload.get('fee_category_id'), "Fee category")

        category_head = None
        if payload.get('category_head_id'):
            category_head = _get_owned(CategoryHead, school, payload['category_head_id'], "Category head")

        school_class = None
        if payload.get('class_id'):
            school_class = _get_owned(Class, school, payload['class_id'], "Class")

        name = payload.get('name') or generate_plan_name(
            fee_category_name=fee_category.name,
            category_head_name=category_head.name if category_head else GENERAL_CATEGORY_HEAD,
            class_name=school_class.name if school_class else None,
        )

        duplicate = FeeStructure.objects.for_school(school).filter(
            fee_category=fee_category,
            category_head=category_head,
            school_class=school_class,
        ).exists()
        if duplicate:
            raise CreationError(
                f'Fee plan "{name}" already exists for this school',
                kind=CreationError.DUPLICATE
            )

        plan = FeeStructure(
            school_id=get_school_id(school),
            fee_category=fee_category,
            category_head=category_head,
            school_class=school_class,
            name=name,
            description=payload.get('description') or '',
            amount=_clean_amount(payload.get('amount')),
            status=payload.get('status') or STATUS_ACTIVE,
        )
        _save(plan, "fee plan")

        logger.info(f"Created fee plan '{plan.name}' for school {plan.school_id}")
        return plan

    @staticmethod
    def preview_csv(school, csv_text, limit=None):
        """
        Parse a fee plan CSV without creating anything.

        Returns:
            dict: rows (first `limit` parsed rows), errors, total_rows
        """
        limit = limit or getattr(settings, 'FEE_IMPORT_PREVIEW_ROWS', 10)
        records, errors = parse_fee_plan_csv(
            csv_text, FeePlanService.get_lookup_maps(school), get_school_id(school)
        )
        if not records:
            raise _no_valid_rows(errors, "fee plans")
        return {
            'rows': preview_rows(records, limit),
            'errors': errors,
            'total_rows': len(records),
        }

    @staticmethod
    def import_csv(school, csv_text):
        """
        Import fee plans from CSV text.

        Rows that fail to parse are reported as failed rows in the result;
        the remaining rows are created one by one.

        Returns:
            ImportResult

        Raises:
            MalformedCSVError: unreadable file, no data rows, or no valid rows
            ImportInProgressError: another fee plan import is running for the school
        """
        school_id = get_school_id(school)
        records, errors = parse_fee_plan_csv(csv_text, FeePlanService.get_lookup_maps(school), school_id)
        if not records:
            raise _no_valid_rows(errors, "fee plans")

        with SchoolImportLock(school_id, 'fee_plans'):
            result = run_fee_plan_import(
                records,
                FeePlanService.existing_plans(school_id),
                lambda payload: FeePlanService.create_fee_plan(school_id, payload),
            )
        result.add_parse_errors(errors)

        logger.info(f"Fee plan CSV import for school {school_id}: {result!r}")
        return result

    @staticmethod
    def create_multiple(school, fee_category_ids, category_head_ids, class_ids,
                        amount, status=STATUS_ACTIVE):
        """
        Create one fee plan per fee category x category head x class.

        An empty category_head_ids list creates General plans. Combinations
        that already exist are skipped, not failed.

        Returns:
            ImportResult; row numbers are 1-based combination positions
        """
        school_id = get_school_id(school)
        reference = FeePlanService.get_reference_data(school_id)

        candidates = []
        combinations = generate_combinations(fee_category_ids, category_head_ids, class_ids)
        for position, combination in enumerate(combinations, start=1):
            candidates.append(dict(
                combination,
                row=position,
                school_id=school_id,
                amount=amount,
                status=status,
                name=generate_plan_name_from_ids(
                    combination['fee_category_id'],
                    combination['category_head_id'],
                    combination['class_id'],
                    reference['fee_categories'],
                    reference['category_heads'],
                    reference['classes'],
                ),
            ))

        with SchoolImportLock(school_id, 'fee_plans'):
            result = run_fee_plan_import(
                candidates,
                FeePlanService.existing_plans(school_id),
                lambda payload: FeePlanService.create_fee_plan(school_id, payload),
            )

        logger.info(
            f"Bulk fee plan creation for school {school_id}: "
            f"{len(combinations)} combination(s), {result!r}"
        )
        return result


# =============================================================================
# FEE CATEGORY SERVICE
# =============================================================================

class FeeCategoryService:
    """Creation and bulk import of fee categories (fee headings)"""

    @staticmethod
    def existing_categories(school):
        return list(FeeCategory.objects.for_school(school).values('name', 'fee_type'))

    @staticmethod
    def create_fee_category(school, payload):
        """
        Create a fee category.

        Names are unique per school and type, ignoring case and surrounding
        spaces.

        Raises:
            CreationError: duplicate kind when the name/type pair is taken
        """
        name = (payload.get('name') or '').strip()
        fee_type = (payload.get('fee_type') or FeeCategory.TYPE_SCHOOL).lower()

        exists = FeeCategory.objects.for_school(school).filter(
            name__iexact=name, fee_type=fee_type
        ).exists()
        if name and exists:
            raise CreationError(
                f'Fee category with name "{name}" and type "{fee_type}" already exists for this school',
                kind=CreationError.DUPLICATE
            )

        category = FeeCategory(
            school_id=get_school_id(school),
            name=name,
            description=payload.get('description') or '',
            fee_type=fee_type,
            status=payload.get('status') or STATUS_ACTIVE,
            applicable_months=payload.get('applicable_months') or None,
        )
        _save(category, "fee category")

        logger.info(f"Created fee category '{category.name}' ({fee_type}) for school {category.school_id}")
        return category

    @staticmethod
    def import_csv(school, csv_text):
        """Import fee categories from CSV text; see FeePlanService.import_csv"""
        school_id = get_school_id(school)
        records, errors = parse_fee_category_csv(csv_text, school_id)
        if not records:
            raise _no_valid_rows(errors, "fee categories")

        with SchoolImportLock(school_id, 'fee_categories'):
            result = run_fee_category_import(
                records,
                FeeCategoryService.existing_categories(school_id),
                lambda payload: FeeCategoryService.create_fee_category(school_id, payload),
            )
        result.add_parse_errors(errors)

        logger.info(f"Fee category CSV import for school {school_id}: {result!r}")
        return result


# =============================================================================
# CATEGORY HEAD SERVICE
# =============================================================================

class CategoryHeadService:
    """Creation and bulk import of category heads"""

    @staticmethod
    def existing_heads(school):
        return list(CategoryHead.objects.for_school(school).values('name'))

    @staticmethod
    def create_category_head(school, payload):
        """
        Create a category head.

        Names are unique per school, ignoring case and surrounding spaces.

        Raises:
            CreationError: duplicate kind when the name is taken
        """
        name = (payload.get('name') or '').strip()

        if name and CategoryHead.objects.for_school(school).filter(name__iexact=name).exists():
            raise CreationError(
                f'Category head "{name}" already exists for this school',
                kind=CreationError.DUPLICATE
            )

        head = CategoryHead(
            school_id=get_school_id(school),
            name=name,
            description=payload.get('description') or '',
            status=payload.get('status') or STATUS_ACTIVE,
        )
        _save(head, "category head")

        logger.info(f"Created category head '{head.name}' for school {head.school_id}")
        return head

    @staticmethod
    def import_csv(school, csv_text):
        """Import category heads from CSV text; see FeePlanService.import_csv"""
        school_id = get_school_id(school)
        records, errors = parse_category_head_csv(csv_text, school_id)
        if not records:
            raise _no_valid_rows(errors, "category heads")

        with SchoolImportLock(school_id, 'category_heads'):
            result = run_category_head_import(
                records,
                CategoryHeadService.existing_heads(school_id),
                lambda payload: CategoryHeadService.create_category_head(school_id, payload),
            )
        result.add_parse_errors(errors)

        logger.info(f"Category head CSV import for school {school_id}: {result!r}")
        return result


# =============================================================================
# ROUTE PLAN SERVICE
# =============================================================================

class RoutePlanService:
    """Creation and bulk import of transport route plans"""

    @staticmethod
    def get_reference_data(school):
        reference = _reference_lists(school, fee_type=FeeCategory.TYPE_TRANSPORT)
        reference['routes'] = list(Route.objects.for_school(school).values('id', 'name'))
        return reference

    @staticmethod
    def get_lookup_maps(school):
        reference = RoutePlanService.get_reference_data(school)
        return build_lookup_maps(
            reference['fee_categories'],
            reference['category_heads'],
            reference['classes'],
            routes=reference['routes'],
        )

    @staticmethod
    def existing_plans(school):
        return [
            dict(zip(ROUTE_PLAN_KEY_FIELDS, plan.composite_key()))
            for plan in RoutePlan.objects.for_school(school).only(
                'route_id', 'fee_category_id', 'category_head_id', 'school_class_id'
            )
        ]

    @staticmethod
    def create_route_plan(school, payload):
        """
        Create a single route plan.

        Args:
            payload (dict): route_id, fee_category_id and amount (zero allowed)
                are required; category_head_id, class_id, status, name optional

        Raises:
            CreationError
        """
        route = _get_owned(Route, school, payload.get('route_id'), "Route")
        fee_category = _get_owned(FeeCategory, school, payload.get('fee_category_id'), "Fee category")
        if fee_category.fee_type != FeeCategory.TYPE_TRANSPORT:
            raise CreationError(f'Fee category "{fee_category.name}" is not a transport fee')

        category_head = None
        if payload.get('category_head_id'):
            category_head = _get_owned(CategoryHead, school, payload['category_head_id'], "Category head")

        school_class = None
        if payload.get('class_id'):
            school_class = _get_owned(Class, school, payload['class_id'], "Class")

        name = payload.get('name') or generate_route_plan_name(
            route_name=route.name,
            fee_category_name=fee_category.name,
            category_head_name=category_head.name if category_head else GENERAL_CATEGORY_HEAD,
            class_name=school_class.name if school_class else None,
        )

        duplicate = RoutePlan.objects.for_school(school).filter(
            route=route,
            fee_category=fee_category,
            category_head=category_head,
            school_class=school_class,
        ).exists()
        if duplicate:
            raise CreationError(
                f'Route plan "{name}" already exists for this school',
                kind=CreationError.DUPLICATE
            )

        plan = RoutePlan(
            school_id=get_school_id(school),
            route=route,
            fee_category=fee_category,
            category_head=category_head,
            school_class=school_class,
            name=name,
            amount=_clean_amount(payload.get('amount')),
            status=payload.get('status') or STATUS_ACTIVE,
        )
        _save(plan, "route plan")

        logger.info(f"Created route plan '{plan.name}' for school {plan.school_id}")
        return plan

    @staticmethod
    def import_csv(school, csv_text):
        """Import route plans from CSV text; see FeePlanService.import_csv"""
        school_id = get_school_id(school)
        records, errors = parse_route_plan_csv(
            csv_text, RoutePlanService.get_lookup_maps(school_id), school_id
        )
        if not records:
            raise _no_valid_rows(errors, "route plans")

        with SchoolImportLock(school_id, 'route_plans'):
            result = run_route_plan_import(
                records,
                RoutePlanService.existing_plans(school_id),
                lambda payload: RoutePlanService.create_route_plan(school_id, payload),
            )
        result.add_parse_errors(errors)

        logger.info(f"Route plan CSV import for school {school_id}: {result!r}")
        return result

    @staticmethod
    def create_multiple(school, route_ids, fee_category_ids, category_head_ids, class_ids,
                        amount, status=STATUS_ACTIVE):
        """Create one route plan per route x fee category x category head x class"""
        school_id = get_school_id(school)
        reference = RoutePlanService.get_reference_data(school_id)

        candidates = []
        combinations = generate_route_plan_combinations(
            route_ids, fee_category_ids, category_head_ids, class_ids
        )
        for position, combination in enumerate(combinations, start=1):
            candidates.append(dict(
                combination,
                row=position,
                school_id=school_id,
                amount=amount,
                status=status,
                name=generate_route_plan_name_from_ids(
                    combination['route_id'],
                    combination['fee_category_id'],
                    combination['category_head_id'],
                    combination['class_id'],
                    reference['routes'],
                    reference['fee_categories'],
                    reference['category_heads'],
                    reference['classes'],
                ),
            ))

        with SchoolImportLock(school_id, 'route_plans'):
            result = run_route_plan_import(
                candidates,
                RoutePlanService.existing_plans(school_id),
                lambda payload: RoutePlanService.create_route_plan(school_id, payload),
            )

        logger.info(
            f"Bulk route plan creation for school {school_id}: "
            f"{len(combinations)} combination(s), {result!r}"
        )
        return result
