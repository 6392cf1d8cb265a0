# fees/utils.py

"""
Fee Plan Utility Functions

Contains:
- Plan name generation
- Name-to-id lookup maps and resolution
- Duplicate detection on the (fee category, category head, class) key
- Combination generation for bulk "multiple" creation

Everything here is pure: no database access, no settings, no request state.
Records may be dicts or objects; fields are read by their snake_case names.
"""

from itertools import product
import logging
import re

logger = logging.getLogger(__name__)


GENERAL_CATEGORY_HEAD = 'General'

# Category head values meaning "no category head"
GENERAL_ALIASES = ('none', 'general')

FEE_PLAN_KEY_FIELDS = ('fee_category_id', 'category_head_id', 'class_id')
ROUTE_PLAN_KEY_FIELDS = ('route_id',) + FEE_PLAN_KEY_FIELDS

WHOLE_NUMBER = re.compile(r"^[0-9]+\Z")


def get_field(record, field):
    """Read a field from a dict or an object, returning None when absent"""
    if isinstance(record, dict):
        return record.get(field)
    return getattr(record, field, None)


# =============================================================================
# PLAN NAME GENERATION
# =============================================================================

def generate_plan_name(fee_category_name=None, category_head_name=None, class_name=None):
    """
    Build a display name for a fee plan.

    Format: "{fee category or 'Fee Plan'}[ - {category head}][ ({class})]"

    Example:
        >>> generate_plan_name('Tuition Fee', 'Sponsored', '1st')
        'Tuition Fee - Sponsored (1st)'
        >>> generate_plan_name(class_name='1st')
        'Fee Plan (1st)'
    """
    base_name = fee_category_name or "Fee Plan"
    category_head_part = f" - {category_head_name}" if category_head_name else ""
    class_part = f" ({class_name})" if class_name else ""
    return f"{base_name}{category_head_part}{class_part}"


def generate_route_plan_name(route_name=None, fee_category_name=None,
                             category_head_name=None, class_name=None):
    """Build a display name for a route plan: "Route A - Transport Fee - General (1st)" """
    base_name = route_name or "Route Plan"
    fee_category_part = f" - {fee_category_name}" if fee_category_name else ""
    category_head_part = f" - {category_head_name}" if category_head_name else ""
    class_part = f" ({class_name})" if class_name else ""
    return f"{base_name}{fee_category_part}{category_head_part}{class_part}"


def _name_for(record_id, records):
    if not record_id:
        return None
    for record in records:
        if get_field(record, 'id') == record_id:
            return get_field(record, 'name')
    return None


def generate_plan_name_from_ids(fee_category_id, category_head_id, class_id,
                                fee_categories, category_heads, classes):
    """
    Build a plan name by looking ids up in reference lists.

    Ids that are missing or not found simply drop their part of the name.
    """
    return generate_plan_name(
        fee_category_name=_name_for(fee_category_id, fee_categories),
        category_head_name=_name_for(category_head_id, category_heads),
        class_name=_name_for(class_id, classes),
    )


def generate_route_plan_name_from_ids(route_id, fee_category_id, category_head_id, class_id,
                                      routes, fee_categories, category_heads, classes):
    return generate_route_plan_name(
        route_name=_name_for(route_id, routes),
        fee_category_name=_name_for(fee_category_id, fee_categories),
        category_head_name=_name_for(category_head_id, category_heads),
        class_name=_name_for(class_id, classes),
    )


def describe_plan(record):
    """
    Best-effort name for a parsed row, used in import messages.

    Prefers the row's own name; otherwise falls back to the names captured
    from the CSV, with "General" standing in for a missing category head.
    """
    name = get_field(record, 'name')
    if name:
        return name
    return generate_plan_name(
        fee_category_name=get_field(record, 'fee_category_name') or None,
        category_head_name=get_field(record, 'category_head_name') or GENERAL_CATEGORY_HEAD,
        class_name=get_field(record, 'class_name') or None,
    )


def describe_route_plan(record):
    name = get_field(record, 'name')
    if name:
        return name
    return generate_route_plan_name(
        route_name=get_field(record, 'route_name') or None,
        fee_category_name=get_field(record, 'fee_category_name') or None,
        category_head_name=get_field(record, 'category_head_name') or GENERAL_CATEGORY_HEAD,
        class_name=get_field(record, 'class_name') or None,
    )


# =============================================================================
# NAME RESOLUTION
# =============================================================================

def normalize_name(value):
    return str(value).strip().lower()


def build_lookup_map(records):
    """
    Map lower-cased, trimmed names to ids.

    Args:
        records: iterable of dicts or model instances with id and name

    Returns:
        dict: {normalized name: id}; later records win on name collisions
    """
    lookup = {}
    for record in records:
        name = get_field(record, 'name')
        if name:
            lookup[normalize_name(name)] = get_field(record, 'id')
    return lookup


def build_lookup_maps(fee_categories, category_heads, classes, routes=None):
    """
    Build every lookup map a CSV import needs.

    Returns:
        dict with fee_category_map, category_head_map, class_map and,
        when routes are given, route_map
    """
    lookups = {
        'fee_category_map': build_lookup_map(fee_categories),
        'category_head_map': build_lookup_map(category_heads),
        'class_map': build_lookup_map(classes),
    }
    if routes is not None:
        lookups['route_map'] = build_lookup_map(routes)
    return lookups


def parse_int(value):
    """Return value as an int if it is plain ASCII digits, else None"""
    if value is None:
        return None
    text = str(value).strip()
    if not WHOLE_NUMBER.match(text):
        return None
    return int(text)


def resolve_to_id(value, lookup_map):
    """
    Resolve a CSV cell to an id.

    A whole integer is taken as the id itself; anything else is looked up by
    name. Returns None for blank or unknown values.
    """
    if value is None or not str(value).strip():
        return None
    id_match = parse_int(value)
    if id_match is not None:
        return id_match
    return lookup_map.get(normalize_name(value))


def is_general(value):
    """True when a category head cell means "no category head" """
    return value is None or not str(value).strip() or normalize_name(value) in GENERAL_ALIASES


# =============================================================================
# DUPLICATE DETECTION
# =============================================================================

def _same_optional(left, right):
    # 0, None and "" all mean "absent" and match each other
    return left == right or (not left and not right)


def is_duplicate(plan, existing):
    """
    Check whether two fee plans share the composite key.

    Fee category must be equal; category head and class must be equal or
    both absent. id, name and amount are ignored.
    """
    return (
        get_field(existing, 'fee_category_id') == get_field(plan, 'fee_category_id')
        and _same_optional(get_field(existing, 'category_head_id'), get_field(plan, 'category_head_id'))
        and _same_optional(get_field(existing, 'class_id'), get_field(plan, 'class_id'))
    )


def find_duplicate(plan, existing_plans):
    """Return the first existing plan sharing plan's composite key, or None"""
    for existing in existing_plans:
        if is_duplicate(plan, existing):
            return existing
    return None


def filter_duplicates(plans, existing_plans):
    """Keep only the plans with no match in existing_plans"""
    return [plan for plan in plans if find_duplicate(plan, existing_plans) is None]


def is_route_plan_duplicate(plan, existing):
    return (
        get_field(existing, 'route_id') == get_field(plan, 'route_id')
        and is_duplicate(plan, existing)
    )


def find_route_plan_duplicate(plan, existing_plans):
    for existing in existing_plans:
        if is_route_plan_duplicate(plan, existing):
            return existing
    return None


def filter_route_plan_duplicates(plans, existing_plans):
    return [plan for plan in plans if find_route_plan_duplicate(plan, existing_plans) is None]


def plan_key(record, fields=FEE_PLAN_KEY_FIELDS):
    """Hashable composite key with absent optional ids folded to None"""
    return tuple(get_field(record, field) or None for field in fields)


def find_batch_duplicates(records, key_func=plan_key):
    """
    Find rows that repeat an earlier row of the same batch.

    Args:
        records: parsed rows, each carrying its CSV row number under 'row'
        key_func: callable returning a hashable key for a row

    Returns:
        dict: {row number: row number of the first occurrence} for every
        non-first occurrence
    """
    first_seen = {}
    repeats = {}
    for index, record in enumerate(records):
        row_number = get_field(record, 'row') or index + 2
        key = key_func(record)
        if key in first_seen:
            repeats[row_number] = first_seen[key]
        else:
            first_seen[key] = row_number
    return repeats


# =============================================================================
# COMBINATION GENERATION
# =============================================================================

def generate_combinations(fee_category_ids, category_head_ids, class_ids):
    """
    Every fee category x category head x class combination, in that nesting order.

    An empty category_head_ids list means "General" only.

    Example:
        >>> generate_combinations([1, 2], [], [10])
        [{'fee_category_id': 1, 'category_head_id': None, 'class_id': 10},
         {'fee_category_id': 2, 'category_head_id': None, 'class_id': 10}]
    """
    heads = list(category_head_ids) or [None]
    return [
        {'fee_category_id': fee_category_id, 'category_head_id': category_head_id, 'class_id': class_id}
        for fee_category_id, category_head_id, class_id in product(fee_category_ids, heads, class_ids)
    ]


def calculate_total_combinations(fee_category_count, category_head_count, class_count):
    """Number of rows generate_combinations will return for the given counts"""
    return fee_category_count * max(category_head_count, 1) * class_count


def generate_route_plan_combinations(route_ids, fee_category_ids, category_head_ids, class_ids):
    heads = list(category_head_ids) or [None]
    return [
        {
            'route_id': route_id,
            'fee_category_id': fee_category_id,
            'category_head_id': category_head_id,
            'class_id': class_id,
        }
        for route_id, fee_category_id, category_head_id, class_id
        in product(route_ids, fee_category_ids, heads, class_ids)
    ]


def calculate_total_route_plan_combinations(route_count, fee_category_count,
                                            category_head_count, class_count):
    return route_count * fee_category_count * max(category_head_count, 1) * class_count
