# fees/importers.py

"""
Bulk Import Orchestration

Takes parsed candidate rows and creates them one at a time through a
caller-supplied create function, collecting per-row outcomes in an
ImportResult.

Rows are processed strictly in order and each create is finished before the
next row is looked at: every successful create is added to the working list
of existing records straight away, so a later row in the same file is
recognised as a duplicate of an earlier one. Running rows concurrently would
let two copies of the same plan both be created.

A failing row never stops the run. Nothing is raised from here; the caller
gets the complete ImportResult back.
"""

from django.core.exceptions import ValidationError
import logging
import re

from .exceptions import CreationError
from .utils import (
    FEE_PLAN_KEY_FIELDS,
    ROUTE_PLAN_KEY_FIELDS,
    describe_plan,
    describe_route_plan,
    find_batch_duplicates,
    find_duplicate,
    find_route_plan_duplicate,
    get_field,
    normalize_name,
    plan_key,
)

logger = logging.getLogger(__name__)


DUPLICATE_MARKER = 'already exists'

PARSE_ERROR_PATTERN = re.compile(r'^Row (\d+): (.*)$', re.DOTALL)


# =============================================================================
# IMPORT RESULT
# =============================================================================

class ImportResult:
    """Counts and per-row details of one import run"""

    def __init__(self):
        self.success = 0
        self.failed = 0
        self.skipped = 0
        self.errors = []
        self.duplicates = []

    def add_success(self):
        self.success += 1

    def add_failure(self, row, error):
        self.failed += 1
        self.errors.append({'row': row, 'error': error})

    def add_duplicate(self, row, name, reason):
        self.skipped += 1
        self.duplicates.append({'row': row, 'name': name, 'reason': reason})

    def add_parse_errors(self, errors):
        """Record "Row N: message" strings from the CSV parser as failed rows"""
        for error in errors:
            match = PARSE_ERROR_PATTERN.match(error)
            if match:
                self.add_failure(int(match.group(1)), match.group(2))
            else:
                self.add_failure(None, error)
        self.errors.sort(key=lambda entry: entry['row'] or 0)

    @property
    def total(self):
        return self.success + self.failed + self.skipped

    def to_dict(self):
        return {
            'success': self.success,
            'failed': self.failed,
            'skipped': self.skipped,
            'errors': list(self.errors),
            'duplicates': list(self.duplicates),
        }

    def summary_messages(self, label='fee plan(s)'):
        """
        Banner messages for the user as (level, text) pairs.

        Levels are 'success' and 'error', matching django.contrib.messages.
        """
        messages = []
        if self.success:
            text = f"Successfully imported {self.success} {label}"
            if self.skipped:
                text += f". {self.skipped} duplicate(s) skipped."
            messages.append(('success', text))
        if self.failed:
            messages.append(('error', f"{self.failed} {label} failed to import. Check errors below."))
        if self.skipped and not self.success:
            messages.append(('error', f"All {self.skipped} {label} were duplicates and skipped."))
        return messages

    def __repr__(self):
        return f"<ImportResult success={self.success} failed={self.failed} skipped={self.skipped}>"


# =============================================================================
# ERROR CLASSIFICATION
# =============================================================================

def classify_creation_error(exc, default_message):
    """
    Work out why a create call failed.

    CreationError carries its kind. For anything else the message is
    searched for "already exists" (case-insensitive), since stores outside
    our control report duplicates that way.

    Returns:
        tuple: (kind, message)
    """
    if isinstance(exc, CreationError):
        return exc.kind, exc.message or default_message

    if isinstance(exc, ValidationError):
        message = ' '.join(exc.messages) or default_message
        fallback_kind = CreationError.VALIDATION
    else:
        message = str(exc) or default_message
        fallback_kind = CreationError.TRANSPORT

    if DUPLICATE_MARKER in message.lower():
        return CreationError.DUPLICATE, message
    return fallback_kind, message


# =============================================================================
# GENERIC RUNNER
# =============================================================================

def _row_number(candidate, index):
    return get_field(candidate, 'row') or index + 2


def _run_import(candidates, create_fn, *, label, missing_error, batch_key, batch_reason,
                find_existing, remember, describe, existing_reason, server_duplicate_reason,
                build_payload):
    result = ImportResult()

    complete = [
        dict(candidate, row=_row_number(candidate, index))
        for index, candidate in enumerate(candidates)
        if missing_error(candidate) is None
    ]
    repeats = find_batch_duplicates(complete, batch_key)

    for index, candidate in enumerate(candidates):
        row_number = _row_number(candidate, index)

        error = missing_error(candidate)
        if error:
            result.add_failure(row_number, error)
            logger.debug(f"Row {row_number}: {error}")
            continue

        if row_number in repeats:
            result.add_duplicate(row_number, describe(candidate), batch_reason(repeats[row_number]))
            continue

        if find_existing(candidate):
            result.add_duplicate(row_number, describe(candidate), existing_reason(candidate))
            continue

        try:
            create_fn(build_payload(candidate))
        except Exception as exc:
            kind, message = classify_creation_error(exc, f"Failed to create {label}")
            if kind == CreationError.DUPLICATE:
                result.add_duplicate(row_number, describe(candidate), server_duplicate_reason)
            else:
                logger.warning(f"Row {row_number}: {label} rejected ({kind}): {message}")
                result.add_failure(row_number, message)
            continue

        result.add_success()
        remember(candidate)
        logger.debug(f"Row {row_number}: created {label} {describe(candidate)}")

    logger.info(
        f"{label.capitalize()} import finished: {result.success} created, "
        f"{result.skipped} skipped, {result.failed} failed"
    )
    return result


# =============================================================================
# FEE PLANS
# =============================================================================

def build_fee_plan_payload(candidate):
    """Create payload for one fee plan; category head and name only when present"""
    payload = {
        'fee_category_id': candidate['fee_category_id'],
        'amount': candidate['amount'],
        'status': candidate.get('status') or 'active',
        'class_id': candidate['class_id'],
    }
    if candidate.get('category_head_id'):
        payload['category_head_id'] = candidate['category_head_id']
    if candidate.get('name'):
        payload['name'] = candidate['name']
    return payload


def _fee_plan_missing_error(candidate):
    if not candidate.get('fee_category_id'):
        return f"Fee category not found: {candidate.get('fee_category_name') or 'unknown'}"
    if not candidate.get('class_id'):
        return f"Class not found: {candidate.get('class_name') or 'unknown'}"
    return None


def _key_record(candidate, fields):
    return {field: candidate.get(field) for field in fields}


def run_fee_plan_import(candidates, existing_records, create_fn):
    """
    Create fee plans from parsed CSV rows.

    Args:
        candidates: rows from parse_fee_plan_csv
        existing_records: plans already stored for the school; anything with
            fee_category_id, category_head_id and class_id
        create_fn: callable taking a payload dict; raises on failure,
            ideally CreationError

    Returns:
        ImportResult
    """
    working = list(existing_records)

    return _run_import(
        candidates,
        create_fn,
        label='fee plan(s)',
        missing_error=_fee_plan_missing_error,
        batch_key=plan_key,
        batch_reason=lambda first_row: f"Duplicate fee plan in CSV (first occurrence at row {first_row})",
        find_existing=lambda c: find_duplicate(c, working) is not None,
        remember=lambda c: working.append(_key_record(c, FEE_PLAN_KEY_FIELDS)),
        describe=describe_plan,
        existing_reason=lambda c: "Fee plan already exists",
        server_duplicate_reason="Fee plan already exists",
        build_payload=build_fee_plan_payload,
    )


# =============================================================================
# ROUTE PLANS
# =============================================================================

def build_route_plan_payload(candidate):
    payload = {
        'route_id': candidate['route_id'],
        'fee_category_id': candidate['fee_category_id'],
        'amount': candidate['amount'],
        'status': candidate.get('status') or 'active',
    }
    if candidate.get('category_head_id'):
        payload['category_head_id'] = candidate['category_head_id']
    if candidate.get('class_id'):
        payload['class_id'] = candidate['class_id']
    if candidate.get('name'):
        payload['name'] = candidate['name']
    return payload


def _route_plan_missing_error(candidate):
    if not candidate.get('route_id'):
        return f"Route not found: {candidate.get('route_name') or 'unknown'}"
    if not candidate.get('fee_category_id'):
        return f"Transport fee category not found: {candidate.get('fee_category_name') or 'unknown'}"
    return None


def run_route_plan_import(candidates, existing_records, create_fn):
    """Create route plans from parse_route_plan_csv rows; see run_fee_plan_import"""
    working = list(existing_records)

    return _run_import(
        candidates,
        create_fn,
        label='route plan(s)',
        missing_error=_route_plan_missing_error,
        batch_key=lambda c: plan_key(c, ROUTE_PLAN_KEY_FIELDS),
        batch_reason=lambda first_row: f"Duplicate route plan in CSV (first occurrence at row {first_row})",
        find_existing=lambda c: find_route_plan_duplicate(c, working) is not None,
        remember=lambda c: working.append(_key_record(c, ROUTE_PLAN_KEY_FIELDS)),
        describe=describe_route_plan,
        existing_reason=lambda c: "Route plan already exists",
        server_duplicate_reason="Route plan already exists",
        build_payload=build_route_plan_payload,
    )


# =============================================================================
# FEE CATEGORIES
# =============================================================================

def fee_category_key(record):
    """(lower-cased trimmed name, type) - the same name may exist once per type"""
    fee_type = get_field(record, 'fee_type') or get_field(record, 'type') or 'school'
    return (normalize_name(get_field(record, 'name') or ''), str(fee_type).lower())


def build_fee_category_payload(candidate):
    payload = {
        'name': candidate['name'],
        'description': candidate.get('description') or '',
        'fee_type': candidate.get('fee_type') or 'school',
        'status': candidate.get('status') or 'active',
    }
    if candidate.get('applicable_months'):
        payload['applicable_months'] = candidate['applicable_months']
    return payload


def run_fee_category_import(candidates, existing_records, create_fn):
    """
    Create fee categories from parse_fee_category_csv rows.

    Duplicates are judged on (name, type): "Bus Fee"/school and
    "Bus Fee"/transport are different headings.
    """
    existing_keys = {fee_category_key(record) for record in existing_records}

    def existing_reason(candidate):
        name, fee_type = candidate['name'].strip(), fee_category_key(candidate)[1]
        return f'Fee category with name "{name}" and type "{fee_type}" already exists in database'

    return _run_import(
        candidates,
        create_fn,
        label='fee category(es)',
        missing_error=lambda c: None if (c.get('name') or '').strip() else "Name is required",
        batch_key=fee_category_key,
        batch_reason=lambda first_row: f"Duplicate name and type in CSV (first occurrence at row {first_row})",
        find_existing=lambda c: fee_category_key(c) in existing_keys,
        remember=lambda c: existing_keys.add(fee_category_key(c)),
        describe=lambda c: c['name'].strip(),
        existing_reason=existing_reason,
        server_duplicate_reason="Fee category already exists in database",
        build_payload=build_fee_category_payload,
    )


# =============================================================================
# CATEGORY HEADS
# =============================================================================

def category_head_key(record):
    return normalize_name(get_field(record, 'name') or '')


def build_category_head_payload(candidate):
    payload = {
        'name': candidate['name'].strip(),
        'status': candidate.get('status') or 'active',
    }
    if (candidate.get('description') or '').strip():
        payload['description'] = candidate['description'].strip()
    return payload


def run_category_head_import(candidates, existing_records, create_fn):
    """Create category heads from parse_category_head_csv rows; names are unique per school"""
    existing_keys = {category_head_key(record) for record in existing_records}

    return _run_import(
        candidates,
        create_fn,
        label='category head(s)',
        missing_error=lambda c: None if (c.get('name') or '').strip() else "Name is required",
        batch_key=category_head_key,
        batch_reason=lambda first_row: f"Duplicate name in CSV (first occurrence at row {first_row})",
        find_existing=lambda c: category_head_key(c) in existing_keys,
        remember=lambda c: existing_keys.add(category_head_key(c)),
        describe=lambda c: c['name'].strip(),
        existing_reason=lambda c: "Category head already exists",
        server_duplicate_reason="Category head already exists",
        build_payload=build_category_head_payload,
    )
