# tests/test_utils.py

from django.test import SimpleTestCase

from fees.utils import (
    build_lookup_maps,
    calculate_total_combinations,
    calculate_total_route_plan_combinations,
    describe_plan,
    filter_duplicates,
    filter_route_plan_duplicates,
    find_batch_duplicates,
    find_duplicate,
    generate_combinations,
    generate_plan_name,
    generate_plan_name_from_ids,
    generate_route_plan_combinations,
    generate_route_plan_name,
    is_duplicate,
    is_general,
    is_route_plan_duplicate,
    parse_int,
    resolve_to_id,
)


class PlanNameTests(SimpleTestCase):

    def test_full_name(self):
        self.assertEqual(generate_plan_name('Tuition Fee', 'Sponsored', '1st'), 'Tuition Fee - Sponsored (1st)')

    def test_missing_parts_are_dropped(self):
        self.assertEqual(generate_plan_name('Tuition Fee'), 'Tuition Fee')
        self.assertEqual(generate_plan_name(class_name='1st'), 'Fee Plan (1st)')
        self.assertEqual(generate_plan_name(), 'Fee Plan')

    def test_route_plan_name(self):
        self.assertEqual(
            generate_route_plan_name('Route A', 'Transport Fee', 'General', '1st'),
            'Route A - Transport Fee - General (1st)'
        )
        self.assertEqual(generate_route_plan_name(), 'Route Plan')

    def test_name_from_ids(self):
        fee_categories = [{'id': 7, 'name': 'Tuition Fee'}]
        category_heads = [{'id': 4, 'name': 'Sponsored'}]
        classes = [{'id': 3, 'name': '1st'}]

        self.assertEqual(
            generate_plan_name_from_ids(7, 4, 3, fee_categories, category_heads, classes),
            'Tuition Fee - Sponsored (1st)'
        )
        self.assertEqual(
            generate_plan_name_from_ids(7, None, 99, fee_categories, category_heads, classes),
            'Tuition Fee'
        )

    def test_describe_plan_prefers_row_name(self):
        self.assertEqual(describe_plan({'name': 'Custom'}), 'Custom')
        self.assertEqual(
            describe_plan({'name': '', 'fee_category_name': 'Tuition Fee', 'class_name': '1st'}),
            'Tuition Fee - General (1st)'
        )


class LookupTests(SimpleTestCase):

    def setUp(self):
        self.lookups = build_lookup_maps(
            [{'id': 7, 'name': ' Tuition Fee '}],
            [{'id': 4, 'name': 'Sponsored'}],
            [{'id': 3, 'name': '1st'}],
        )

    def test_maps_are_case_and_space_insensitive(self):
        self.assertEqual(self.lookups['fee_category_map'], {'tuition fee': 7})
        self.assertEqual(resolve_to_id('TUITION FEE', self.lookups['fee_category_map']), 7)
        self.assertNotIn('route_map', self.lookups)

    def test_integer_is_taken_as_id(self):
        self.assertEqual(resolve_to_id('42', self.lookups['class_map']), 42)

    def test_unknown_and_blank_values(self):
        self.assertIsNone(resolve_to_id('Unknown Grade', self.lookups['class_map']))
        self.assertIsNone(resolve_to_id('  ', self.lookups['class_map']))
        self.assertIsNone(resolve_to_id(None, self.lookups['class_map']))

    def test_general_category_head(self):
        for value in ('', None, 'none', 'General', ' GENERAL '):
            self.assertTrue(is_general(value))
        self.assertFalse(is_general('Sponsored'))

    def test_only_plain_digits_are_ids(self):
        self.assertEqual(parse_int(' 12 '), 12)
        self.assertEqual(parse_int(7), 7)
        for value in ('1_000', '+7', '-3', '\u0663', '7th', '', None):
            self.assertIsNone(parse_int(value))
        self.assertIsNone(resolve_to_id('1_000', self.lookups['class_map']))


class DuplicateDetectionTests(SimpleTestCase):

    def test_composite_key_ignores_id_name_and_amount(self):
        a = {'id': 1, 'name': 'A', 'amount': 100, 'fee_category_id': 7, 'category_head_id': 4, 'class_id': 3}
        b = {'id': 2, 'name': 'B', 'amount': 900, 'fee_category_id': 7, 'category_head_id': 4, 'class_id': 3}
        self.assertTrue(is_duplicate(a, b))
        self.assertTrue(is_duplicate(b, a))

    def test_absent_category_head_values_match(self):
        plan = {'fee_category_id': 7, 'category_head_id': None, 'class_id': 3}
        self.assertTrue(is_duplicate(plan, {'fee_category_id': 7, 'class_id': 3}))
        self.assertTrue(is_duplicate(plan, {'fee_category_id': 7, 'category_head_id': 0, 'class_id': 3}))
        self.assertTrue(is_duplicate(plan, {'fee_category_id': 7, 'category_head_id': '', 'class_id': 3}))

    def test_different_keys(self):
        plan = {'fee_category_id': 7, 'category_head_id': None, 'class_id': 3}
        self.assertFalse(is_duplicate(plan, {'fee_category_id': 8, 'category_head_id': None, 'class_id': 3}))
        self.assertFalse(is_duplicate(plan, {'fee_category_id': 7, 'category_head_id': 4, 'class_id': 3}))
        self.assertFalse(is_duplicate(plan, {'fee_category_id': 7, 'category_head_id': None, 'class_id': 5}))

    def test_find_and_filter(self):
        existing = [{'fee_category_id': 7, 'category_head_id': None, 'class_id': 3}]
        plans = [
            {'fee_category_id': 7, 'class_id': 3},
            {'fee_category_id': 7, 'class_id': 5},
        ]
        self.assertIs(find_duplicate(plans[0], existing), existing[0])
        self.assertIsNone(find_duplicate(plans[1], existing))
        self.assertEqual(filter_duplicates(plans, existing), [plans[1]])

    def test_route_plans_also_compare_route(self):
        existing = [{'route_id': 1, 'fee_category_id': 7, 'category_head_id': None, 'class_id': None}]
        same = {'route_id': 1, 'fee_category_id': 7}
        other_route = {'route_id': 2, 'fee_category_id': 7}
        self.assertTrue(is_route_plan_duplicate(same, existing[0]))
        self.assertEqual(filter_route_plan_duplicates([same, other_route], existing), [other_route])

    def test_batch_duplicates_point_at_first_row(self):
        rows = [
            {'row': 2, 'fee_category_id': 7, 'category_head_id': None, 'class_id': 3},
            {'row': 3, 'fee_category_id': 7, 'category_head_id': None, 'class_id': 4},
            {'row': 4, 'fee_category_id': 7, 'category_head_id': 0, 'class_id': 3},
            {'row': 5, 'fee_category_id': 7, 'category_head_id': None, 'class_id': 3},
        ]
        self.assertEqual(find_batch_duplicates(rows), {4: 2, 5: 2})


class CombinationTests(SimpleTestCase):

    def test_no_category_heads_means_general(self):
        combinations = generate_combinations([1, 2], [], [10, 11, 12])
        self.assertEqual(len(combinations), 6)
        self.assertTrue(all(c['category_head_id'] is None for c in combinations))

    def test_nesting_order(self):
        combinations = generate_combinations([1, 2], [5], [10, 11])
        self.assertEqual(
            [(c['fee_category_id'], c['class_id']) for c in combinations],
            [(1, 10), (1, 11), (2, 10), (2, 11)]
        )

    def test_total_matches_generated_count(self):
        for a in range(4):
            for b in range(4):
                for c in range(4):
                    generated = generate_combinations(list(range(a)), list(range(b)), list(range(c)))
                    self.assertEqual(calculate_total_combinations(a, b, c), len(generated))

    def test_route_plan_combinations(self):
        combinations = generate_route_plan_combinations([1, 2], [7], [], [3, 4])
        self.assertEqual(len(combinations), calculate_total_route_plan_combinations(2, 1, 0, 2))
        self.assertEqual(combinations[0], {'route_id': 1, 'fee_category_id': 7, 'category_head_id': None, 'class_id': 3})
