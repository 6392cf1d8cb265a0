# fees/csv_import.py

"""
CSV parsing for bulk fee imports.

Turns uploaded CSV text into candidate rows for fee plans, fee categories,
category heads and route plans. Excel uploads (.xlsx) are converted to CSV
text first. Names in the file are resolved to ids with the lookup maps from
fees.utils.build_lookup_maps.

Bad rows never raise: each one adds a "Row N: ..." message to the error list
and parsing continues. Only a file that cannot be read, or one without a
header plus at least one data row, raises MalformedCSVError.

Row numbers count the header as row 1, so the first data row is row 2.
"""

import csv
import io
import re
from decimal import Decimal, InvalidOperation
from openpyxl import Workbook, load_workbook
from openpyxl.styles import Font, PatternFill
from openpyxl.utils.exceptions import InvalidFileException
from zipfile import BadZipFile
import logging

from .exceptions import MalformedCSVError
from .models import STATUS_ACTIVE, STATUS_INACTIVE, FeeCategory
from .utils import (
    GENERAL_CATEGORY_HEAD,
    is_general,
    normalize_name,
    parse_int,
    resolve_to_id,
)

logger = logging.getLogger(__name__)


SAMPLE_CSV = {
    'fee_plans': (
        ['feeCategoryName', 'categoryHeadName', 'className', 'amount', 'status', 'name'],
        [['Tuition Fee', '', '1st', '5000.00', 'active', 'Tuition Fee - General (1st)']],
    ),
    'fee_categories': (
        ['schoolId', 'name', 'description', 'type', 'status', 'applicableMonths'],
        [['', 'Tuition Fee', 'Monthly tuition fee', 'school', 'active', '1,2,3,4,5,6,7,8,9,10,11,12']],
    ),
    'category_heads': (
        ['name', 'description', 'status'],
        [
            ['General', 'General category head', 'active'],
            ['Sponsored', 'Sponsored category head', 'active'],
        ],
    ),
    'route_plans': (
        ['routeName', 'feeCategoryName', 'categoryHeadName', 'className', 'amount', 'status', 'name'],
        [['Route A', 'Transport Fee', '', '1st', '2000.00', 'active', 'Route A - Transport Fee - General (1st)']],
    ),
}

# Class values on a route plan row meaning "every class"
ALL_CLASSES_ALIASES = ('none', 'all')


# =============================================================================
# READING
# =============================================================================

def read_csv_upload(uploaded_file):
    """
    Decode an uploaded file to text.

    Raises:
        MalformedCSVError: if the file cannot be read or is not UTF-8
    """
    try:
        raw = uploaded_file.read()
    except OSError as e:
        logger.error(f"Failed to read uploaded CSV {getattr(uploaded_file, 'name', '')}: {e}")
        raise MalformedCSVError("Failed to read file") from e

    if isinstance(raw, str):
        return raw
    try:
        return raw.decode('utf-8-sig')
    except UnicodeDecodeError as e:
        raise MalformedCSVError("Failed to parse CSV file: file is not UTF-8 encoded") from e


def _sheet_value(value):
    if value is None:
        return ''
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def xlsx_to_csv_text(source):
    """
    Convert the first worksheet of an .xlsx workbook to CSV text.

    Args:
        source: path or file-like object

    Raises:
        MalformedCSVError: if the workbook cannot be opened
    """
    try:
        wb = load_workbook(source, read_only=True, data_only=True)
    except (InvalidFileException, BadZipFile, KeyError, OSError) as e:
        raise MalformedCSVError(f"Failed to read Excel file: {e}") from e

    output = io.StringIO()
    writer = csv.writer(output, lineterminator='\n')
    try:
        for row in wb.worksheets[0].iter_rows(values_only=True):
            writer.writerow([_sheet_value(value) for value in row])
    finally:
        wb.close()
    return output.getvalue()


def read_upload(uploaded_file):
    """Text of an uploaded .csv or .xlsx file, ready for the parse_* functions"""
    if getattr(uploaded_file, 'name', '').lower().endswith('.xlsx'):
        return xlsx_to_csv_text(uploaded_file)
    return read_csv_upload(uploaded_file)


def split_csv(csv_text):
    """
    Split CSV text into a header list and data row dicts.

    Blank lines are dropped. Headers are lower-cased so columns can be
    found by name regardless of order or casing. Quoting follows the csv
    module: "" inside a quoted field is a literal quote.

    Returns:
        tuple: (headers, [row dict, ...])

    Raises:
        MalformedCSVError: fewer than two non-blank lines, or broken quoting
    """
    text = (csv_text or '').lstrip('\ufeff')
    try:
        lines = [
            row for row in csv.reader(io.StringIO(text))
            if any(cell.strip() for cell in row)
        ]
    except csv.Error as e:
        raise MalformedCSVError(f"Failed to parse CSV file: {e}") from e

    if len(lines) < 2:
        raise MalformedCSVError()

    headers = [h.strip().lower() for h in lines[0]]
    rows = []
    for values in lines[1:]:
        cleaned = [v.strip() for v in values]
        rows.append({
            header: cleaned[index] if index < len(cleaned) else ''
            for index, header in enumerate(headers)
        })
    return headers, rows


def _cell(row, *columns):
    for column in columns:
        value = row.get(column)
        if value:
            return value
    return ''


def parse_amount(value, allow_zero=False):
    """Return value as a finite Decimal above zero (or at zero if allowed), else None"""
    try:
        amount = Decimal(str(value).replace(',', '').strip())
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite():
        return None
    if amount < 0 or (amount == 0 and not allow_zero):
        return None
    return amount


def parse_status(value):
    status = (value or STATUS_ACTIVE).strip().lower()
    return status if status in (STATUS_ACTIVE, STATUS_INACTIVE) else STATUS_ACTIVE


def parse_months(value):
    """Month numbers 1-12 from "1,2,3", "1;2;3" or "1 2 3"; anything else is dropped"""
    months = []
    for part in re.split(r'[,;\s]+', value or ''):
        month = parse_int(part)
        if month is not None and 1 <= month <= 12 and month not in months:
            months.append(month)
    return months


# =============================================================================
# FEE PLANS
# =============================================================================

def _resolve_required(value, lookup_map, row_number, label, errors):
    """Resolve a required name/id cell; records an error and returns None on failure"""
    if not value:
        errors.append(f"Row {row_number}: {label} is required")
        return None
    resolved = resolve_to_id(value, lookup_map)
    if resolved is None:
        errors.append(f'Row {row_number}: {label} "{value}" not found for this school')
    return resolved


def _resolve_category_head(value, lookup_map, row_number, errors):
    """Returns (ok, id); blank, "none" and "general" resolve to None"""
    if is_general(value):
        return True, None
    resolved = resolve_to_id(value, lookup_map)
    if resolved is None:
        errors.append(f'Row {row_number}: Category head "{value}" not found for this school')
        return False, None
    return True, resolved


def parse_fee_plan_csv(csv_text, lookups, school_id):
    """
    Parse a fee plan CSV.

    Args:
        csv_text: CSV content; header row first
        lookups: dict with fee_category_map, category_head_map, class_map
        school_id: school the rows belong to

    Returns:
        tuple: (records, errors) where records are candidate row dicts and
        errors are "Row N: ..." strings

    Raises:
        MalformedCSVError: see split_csv
    """
    _, rows = split_csv(csv_text)
    records = []
    errors = []

    for index, row in enumerate(rows):
        row_number = index + 2

        fee_category_name = _cell(row, 'feecategoryname', 'feecategoryid')
        fee_category_id = _resolve_required(
            fee_category_name, lookups.get('fee_category_map', {}), row_number, "Fee category", errors
        )
        if fee_category_id is None:
            continue

        category_head_name = _cell(row, 'categoryheadname', 'categoryheadid')
        ok, category_head_id = _resolve_category_head(
            category_head_name, lookups.get('category_head_map', {}), row_number, errors
        )
        if not ok:
            continue

        class_name = _cell(row, 'classname', 'classid')
        class_id = _resolve_required(class_name, lookups.get('class_map', {}), row_number, "Class", errors)
        if class_id is None:
            continue

        amount = parse_amount(row.get('amount'))
        if amount is None:
            errors.append(f"Row {row_number}: Valid amount is required")
            continue

        records.append({
            'row': row_number,
            'school_id': school_id,
            'fee_category_id': fee_category_id,
            'category_head_id': category_head_id,
            'class_id': class_id,
            'amount': amount,
            'status': parse_status(row.get('status')),
            'name': row.get('name', ''),
            'fee_category_name': fee_category_name,
            'category_head_name': category_head_name or GENERAL_CATEGORY_HEAD,
            'class_name': class_name,
        })

    logger.debug(f"Parsed fee plan CSV for school {school_id}: {len(records)} rows, {len(errors)} errors")
    return records, errors


# =============================================================================
# ROUTE PLANS
# =============================================================================

def parse_route_plan_csv(csv_text, lookups, school_id):
    """
    Parse a route plan CSV.

    Same rules as parse_fee_plan_csv except that a route is required, the
    class is optional ("", "none" and "all" mean every class) and an amount
    of zero is accepted.
    """
    _, rows = split_csv(csv_text)
    records = []
    errors = []

    for index, row in enumerate(rows):
        row_number = index + 2

        route_name = _cell(row, 'routename', 'routeid')
        route_id = _resolve_required(route_name, lookups.get('route_map', {}), row_number, "Route", errors)
        if route_id is None:
            continue

        fee_category_name = _cell(row, 'feecategoryname', 'feecategoryid')
        fee_category_id = _resolve_required(
            fee_category_name, lookups.get('fee_category_map', {}), row_number,
            "Transport fee category", errors
        )
        if fee_category_id is None:
            continue

        category_head_name = _cell(row, 'categoryheadname', 'categoryheadid')
        ok, category_head_id = _resolve_category_head(
            category_head_name, lookups.get('category_head_map', {}), row_number, errors
        )
        if not ok:
            continue

        class_name = _cell(row, 'classname', 'classid')
        class_id = None
        if class_name and normalize_name(class_name) not in ALL_CLASSES_ALIASES:
            class_id = resolve_to_id(class_name, lookups.get('class_map', {}))
            if class_id is None:
                errors.append(f'Row {row_number}: Class "{class_name}" not found for this school')
                continue

        amount = parse_amount(row.get('amount') or '0', allow_zero=True)
        if amount is None:
            errors.append(f"Row {row_number}: Valid amount is required (0 is allowed)")
            continue

        records.append({
            'row': row_number,
            'school_id': school_id,
            'route_id': route_id,
            'fee_category_id': fee_category_id,
            'category_head_id': category_head_id,
            'class_id': class_id,
            'amount': amount,
            'status': parse_status(row.get('status')),
            'name': row.get('name', ''),
            'route_name': route_name,
            'fee_category_name': fee_category_name,
            'category_head_name': category_head_name or GENERAL_CATEGORY_HEAD,
            'class_name': class_name,
        })

    return records, errors


# =============================================================================
# FEE CATEGORIES
# =============================================================================

def parse_fee_category_csv(csv_text, school_id):
    """
    Parse a fee category (fee heading) CSV.

    Columns: schoolId, name, description, type, status, applicableMonths.
    The schoolId column is ignored; rows always belong to school_id.
    """
    _, rows = split_csv(csv_text)
    valid_types = (FeeCategory.TYPE_SCHOOL, FeeCategory.TYPE_TRANSPORT)
    records = []
    errors = []

    for index, row in enumerate(rows):
        row_number = index + 2

        name = row.get('name', '')
        if not name:
            errors.append(f"Row {row_number}: Name is required")
            continue

        fee_type = (row.get('type') or FeeCategory.TYPE_SCHOOL).lower()
        if fee_type not in valid_types:
            errors.append(f'Row {row_number}: Type must be "school" or "transport", got "{row.get("type")}"')
            continue

        months = parse_months(row.get('applicablemonths'))

        records.append({
            'row': row_number,
            'school_id': school_id,
            'name': name,
            'description': row.get('description', ''),
            'fee_type': fee_type,
            'status': parse_status(row.get('status')),
            'applicable_months': months or None,
        })

    return records, errors


# =============================================================================
# CATEGORY HEADS
# =============================================================================

def parse_category_head_csv(csv_text, school_id):
    """
    Parse a category head CSV.

    Columns: name, description, status. Unlike the other imports an
    unrecognised status is a row error, not a silent "active".
    """
    _, rows = split_csv(csv_text)
    records = []
    errors = []

    for index, row in enumerate(rows):
        row_number = index + 2

        name = row.get('name', '')
        if not name:
            errors.append(f"Row {row_number}: Name is required")
            continue

        status = (row.get('status') or STATUS_ACTIVE).lower()
        if status not in (STATUS_ACTIVE, STATUS_INACTIVE):
            errors.append(f'Row {row_number}: Status must be "active" or "inactive"')
            continue

        records.append({
            'row': row_number,
            'school_id': school_id,
            'name': name,
            'description': row.get('description', ''),
            'status': status,
        })

    return records, errors


# =============================================================================
# SAMPLES, PREVIEW AND ERROR SUMMARY
# =============================================================================

def generate_sample_csv(kind='fee_plans', school_id=None):
    """
    Example CSV users can fill in and upload.

    Args:
        kind: 'fee_plans', 'fee_categories', 'category_heads' or 'route_plans'
        school_id: written into the schoolId column of the fee category sample
    """
    if kind not in SAMPLE_CSV:
        raise ValueError(f"Unknown import kind: {kind}")

    headers, sample_rows = SAMPLE_CSV[kind]
    sample_rows = [list(row) for row in sample_rows]
    if kind == 'fee_categories' and school_id is not None:
        for row in sample_rows:
            row[0] = str(school_id)

    output = io.StringIO()
    writer = csv.writer(output, quoting=csv.QUOTE_ALL, lineterminator='\n')
    writer.writerow(headers)
    writer.writerows(sample_rows)
    return output.getvalue().rstrip('\n')


def generate_sample_xlsx(kind='fee_plans', school_id=None):
    """Same sample as generate_sample_csv as an .xlsx workbook; returns bytes"""
    rows = list(csv.reader(io.StringIO(generate_sample_csv(kind, school_id))))

    wb = Workbook()
    ws = wb.active
    ws.title = kind.replace('_', ' ').title()
    for row in rows:
        ws.append(row)

    # Style headers
    for cell in ws[1]:
        cell.fill = PatternFill(start_color='4472C4', end_color='4472C4', fill_type='solid')
        cell.font = Font(bold=True, color='FFFFFF')

    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def preview_rows(records, limit=10):
    """First rows of a parse result, shown before the import is confirmed"""
    return records[:limit]


def summarize_parse_errors(errors, limit=10):
    """
    Message shown when a file produced no valid rows.

    Example:
        CSV parsing errors:
        Row 2: Class "Unknown Grade" not found for this school
        ... and 3 more
    """
    shown = "\n".join(errors[:limit])
    more = f"\n... and {len(errors) - limit} more" if len(errors) > limit else ""
    return f"CSV parsing errors:\n{shown}{more}"
