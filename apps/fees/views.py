# fees/views.py

"""
Fee Import Views

Thin JSON endpoints over the fee services:
- Single fee plan creation
- CSV import and preview for fee plans
- CSV import for fee categories, category heads and route plans
- Multiple fee plan creation
- Sample CSV and Excel downloads

Batch-level failures come back as {'error': ...} with status 400 (bad file)
or 409 (import already running). Row-level outcomes are always in the
ImportResult payload.
"""

from django.contrib.auth.decorators import login_required
from django.http import Http404, HttpResponse, JsonResponse
from django.views.decorators.http import require_GET, require_POST
import logging

from .csv_import import SAMPLE_CSV, generate_sample_csv, generate_sample_xlsx, read_upload
from .exceptions import CreationError, ImportInProgressError, MalformedCSVError
from .forms import BulkFeePlanForm, FeeImportForm, FeePlanForm
from .services import CategoryHeadService, FeeCategoryService, FeePlanService, RoutePlanService

logger = logging.getLogger(__name__)


def _form_errors(form):
    errors = {field: list(messages) for field, messages in form.errors.items()}
    return JsonResponse({'error': 'Invalid request', 'errors': errors}, status=400)


def _import_response(result, label):
    data = result.to_dict()
    data['messages'] = [
        {'level': level, 'message': text}
        for level, text in result.summary_messages(label)
    ]
    return JsonResponse(data)


def _run_csv_import(request, import_fn, label):
    form = FeeImportForm(request.POST, request.FILES)
    if not form.is_valid():
        return _form_errors(form)

    school = form.cleaned_data['school']
    try:
        csv_text = read_upload(form.cleaned_data['csv_file'])
        result = import_fn(school, csv_text)
    except MalformedCSVError as e:
        return JsonResponse({'error': ' '.join(e.messages)}, status=400)
    except ImportInProgressError as e:
        return JsonResponse({'error': str(e)}, status=409)

    logger.info(f"{request.user} imported {label} for {school}: {result!r}")
    return _import_response(result, label)


# =============================================================================
# FEE PLANS
# =============================================================================

@login_required
@require_POST
def fee_plan_import(request):
    """Import fee plans from an uploaded CSV"""
    return _run_csv_import(request, FeePlanService.import_csv, 'fee plan(s)')


@login_required
@require_POST
def fee_plan_import_preview(request):
    """Parse an uploaded fee plan CSV and return the first rows without creating anything"""
    form = FeeImportForm(request.POST, request.FILES)
    if not form.is_valid():
        return _form_errors(form)

    try:
        csv_text = read_upload(form.cleaned_data['csv_file'])
        preview = FeePlanService.preview_csv(form.cleaned_data['school'], csv_text)
    except MalformedCSVError as e:
        return JsonResponse({'error': ' '.join(e.messages)}, status=400)

    return JsonResponse(preview)


@login_required
@require_POST
def fee_plan_create(request):
    """Create a single fee plan"""
    form = FeePlanForm(request.POST)
    if not form.is_valid():
        return _form_errors(form)

    try:
        plan = FeePlanService.create_fee_plan(form.cleaned_data['school'], form.to_payload())
    except CreationError as e:
        return JsonResponse({'error': e.message}, status=409 if e.is_duplicate else 400)

    return JsonResponse({
        'id': plan.pk,
        'name': plan.name,
        'amount': plan.amount,
        'status': plan.status,
    }, status=201)


@login_required
@require_POST
def fee_plan_bulk_create(request):
    """Create one fee plan per selected fee heading, category head and class"""
    form = BulkFeePlanForm(request.POST)
    if not form.is_valid():
        return _form_errors(form)

    fee_category_ids, category_head_ids, class_ids = form.selected_ids()
    try:
        result = FeePlanService.create_multiple(
            form.cleaned_data['school'],
            fee_category_ids,
            category_head_ids,
            class_ids,
            amount=form.cleaned_data['amount'],
            status=form.cleaned_data['status'],
        )
    except ImportInProgressError as e:
        return JsonResponse({'error': str(e)}, status=409)

    return _import_response(result, 'fee plan(s)')


# =============================================================================
# FEE CATEGORY, CATEGORY HEAD AND ROUTE PLAN IMPORT
# =============================================================================

@login_required
@require_POST
def fee_category_import(request):
    return _run_csv_import(request, FeeCategoryService.import_csv, 'fee category(es)')


@login_required
@require_POST
def category_head_import(request):
    return _run_csv_import(request, CategoryHeadService.import_csv, 'category head(s)')


@login_required
@require_POST
def route_plan_import(request):
    return _run_csv_import(request, RoutePlanService.import_csv, 'route plan(s)')


# =============================================================================
# SAMPLE FILES
# =============================================================================

@login_required
@require_GET
def sample_csv_download(request, kind):
    """Download a one-row sample CSV for the given import kind"""
    if kind not in SAMPLE_CSV:
        raise Http404(f"Unknown import kind: {kind}")

    response = HttpResponse(generate_sample_csv(kind), content_type='text/csv')
    response['Content-Disposition'] = f'attachment; filename="{kind}_sample.csv"'
    return response


@login_required
@require_GET
def sample_xlsx_download(request, kind):
    """Download the sample as an Excel workbook"""
    if kind not in SAMPLE_CSV:
        raise Http404(f"Unknown import kind: {kind}")

    response = HttpResponse(
        generate_sample_xlsx(kind),
        content_type='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'
    )
    response['Content-Disposition'] = f'attachment; filename="{kind}_sample.xlsx"'
    return response
