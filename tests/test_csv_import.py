# tests/test_csv_import.py

import csv
import io
from decimal import Decimal

from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import SimpleTestCase
from openpyxl import Workbook

from fees.csv_import import (
    generate_sample_csv,
    generate_sample_xlsx,
    parse_amount,
    parse_category_head_csv,
    parse_fee_category_csv,
    parse_fee_plan_csv,
    parse_route_plan_csv,
    preview_rows,
    read_csv_upload,
    read_upload,
    split_csv,
    summarize_parse_errors,
    xlsx_to_csv_text,
)
from fees.exceptions import MalformedCSVError

HEADER = "feeCategoryName,categoryHeadName,className,amount,status,name"

LOOKUPS = {
    'fee_category_map': {'tuition fee': 7, 'bus fee': 8},
    'category_head_map': {'sponsored': 4},
    'class_map': {'1st': 3, '2nd': 5},
    'route_map': {'route a': 1},
}


class SplitCsvTests(SimpleTestCase):

    def test_header_only_is_malformed(self):
        with self.assertRaises(MalformedCSVError):
            split_csv(HEADER)
        with self.assertRaises(MalformedCSVError):
            split_csv("")

    def test_blank_lines_are_ignored(self):
        headers, rows = split_csv(f"{HEADER}\n\nTuition Fee,,1st,5000,active,\n   \n")
        self.assertEqual(headers[0], 'feecategoryname')
        self.assertEqual(len(rows), 1)

    def test_quoted_fields_keep_commas(self):
        _, rows = split_csv(f'{HEADER}\n"Tuition Fee",,"1st","5,000.00",active,"Fees, term 1"')
        self.assertEqual(rows[0]['amount'], '5,000.00')
        self.assertEqual(rows[0]['name'], 'Fees, term 1')

    def test_escaped_quotes_are_kept(self):
        _, rows = split_csv(f'{HEADER}\nTuition Fee,,1st,5000,active,"Fee ""A"" plan"')
        self.assertEqual(rows[0]['name'], 'Fee "A" plan')

    def test_short_rows_are_padded(self):
        _, rows = split_csv(f"{HEADER}\nTuition Fee,,1st")
        self.assertEqual(rows[0]['amount'], '')
        self.assertEqual(rows[0]['name'], '')

    def test_byte_order_mark(self):
        headers, _ = split_csv("\ufeff" + HEADER + "\nTuition Fee,,1st,5000,active,")
        self.assertEqual(headers[0], 'feecategoryname')


class ParseFeePlanCsvTests(SimpleTestCase):

    def test_basic_row(self):
        records, errors = parse_fee_plan_csv(f"{HEADER}\nTuition Fee,,1st,5000.00,active,", LOOKUPS, 1)

        self.assertEqual(errors, [])
        self.assertEqual(len(records), 1)
        record = records[0]
        self.assertEqual(record['row'], 2)
        self.assertEqual(record['fee_category_id'], 7)
        self.assertIsNone(record['category_head_id'])
        self.assertEqual(record['class_id'], 3)
        self.assertEqual(record['amount'], Decimal('5000.00'))
        self.assertEqual(record['status'], 'active')
        self.assertEqual(record['category_head_name'], 'General')

    def test_unknown_class(self):
        records, errors = parse_fee_plan_csv(f"{HEADER}\nTuition Fee,,Unknown Grade,5000.00,active,", LOOKUPS, 1)

        self.assertEqual(records, [])
        self.assertEqual(len(errors), 1)
        self.assertIn("Row 2", errors[0])
        self.assertIn("Unknown Grade", errors[0])

    def test_row_errors(self):
        csv_text = "\n".join([
            HEADER,
            ",,1st,100,active,",
            "Tuition Fee,,,100,active,",
            "Tuition Fee,Scholarship,1st,100,active,",
            "Tuition Fee,,1st,0,active,",
            "Tuition Fee,,1st,abc,active,",
            "Tuition Fee,Sponsored,2nd,1200,archived,",
        ])
        records, errors = parse_fee_plan_csv(csv_text, LOOKUPS, 1)

        self.assertEqual(errors, [
            "Row 2: Fee category is required",
            "Row 3: Class is required",
            'Row 4: Category head "Scholarship" not found for this school',
            "Row 5: Valid amount is required",
            "Row 6: Valid amount is required",
        ])
        self.assertEqual(len(records), 1)
        self.assertEqual(records[0]['row'], 7)
        self.assertEqual(records[0]['category_head_id'], 4)
        # Unknown status falls back to active
        self.assertEqual(records[0]['status'], 'active')

    def test_columns_in_any_order_and_case(self):
        csv_text = "AMOUNT,ClassName,FeeCategoryName\n250,2nd,bus fee"
        records, errors = parse_fee_plan_csv(csv_text, LOOKUPS, 1)
        self.assertEqual(errors, [])
        self.assertEqual((records[0]['fee_category_id'], records[0]['class_id']), (8, 5))

    def test_amount_parsing(self):
        self.assertEqual(parse_amount('1,250.50'), Decimal('1250.50'))
        self.assertIsNone(parse_amount('-5'))
        self.assertIsNone(parse_amount('0'))
        self.assertEqual(parse_amount('0', allow_zero=True), Decimal('0'))
        self.assertIsNone(parse_amount('NaN'))
        self.assertIsNone(parse_amount(''))


class ParseRoutePlanCsvTests(SimpleTestCase):

    HEADER = "routeName,feeCategoryName,categoryHeadName,className,amount,status,name"

    def test_class_is_optional_and_zero_allowed(self):
        csv_text = "\n".join([
            self.HEADER,
            "Route A,Bus Fee,,,0,active,",
            "Route A,Bus Fee,,all,150,active,",
            "Route A,Bus Fee,,1st,150,active,",
        ])
        records, errors = parse_route_plan_csv(csv_text, LOOKUPS, 1)

        self.assertEqual(errors, [])
        self.assertEqual([r['class_id'] for r in records], [None, None, 3])
        self.assertEqual(records[0]['amount'], Decimal('0'))

    def test_route_required(self):
        csv_text = "\n".join([
            self.HEADER,
            ",Bus Fee,,,100,active,",
            "Route Z,Bus Fee,,,100,active,",
            "Route A,Bus Fee,,,-1,active,",
        ])
        records, errors = parse_route_plan_csv(csv_text, LOOKUPS, 1)

        self.assertEqual(records, [])
        self.assertEqual(errors, [
            "Row 2: Route is required",
            'Row 3: Route "Route Z" not found for this school',
            "Row 4: Valid amount is required (0 is allowed)",
        ])


class ParseFeeCategoryCsvTests(SimpleTestCase):

    HEADER = "schoolId,name,description,type,status,applicableMonths"

    def test_rows(self):
        csv_text = "\n".join([
            self.HEADER,
            '99,Tuition Fee,Monthly tuition,school,active,"1,2,3"',
            ",Bus Fee,,TRANSPORT,,",
            ",,,school,active,",
            ",Lunch,,canteen,active,",
        ])
        records, errors = parse_fee_category_csv(csv_text, 1)

        self.assertEqual(errors, [
            "Row 4: Name is required",
            'Row 5: Type must be "school" or "transport", got "canteen"',
        ])
        self.assertEqual(records[0]['school_id'], 1)
        self.assertEqual(records[0]['applicable_months'], [1, 2, 3])
        self.assertEqual(records[1]['fee_type'], 'transport')
        self.assertIsNone(records[1]['applicable_months'])


class ParseCategoryHeadCsvTests(SimpleTestCase):

    HEADER = "name,description,status"

    def test_rows(self):
        csv_text = "\n".join([
            self.HEADER,
            "Sponsored,Sponsored pupils,active",
            ",No name,active",
            "Staff Child,,retired",
            "Bursary,,INACTIVE",
            "Orphan,,",
        ])
        records, errors = parse_category_head_csv(csv_text, 1)

        self.assertEqual([r['name'] for r in records], ['Sponsored', 'Bursary', 'Orphan'])
        self.assertEqual([r['status'] for r in records], ['active', 'inactive', 'active'])
        self.assertEqual(records[0]['row'], 2)
        self.assertEqual(errors, [
            "Row 3: Name is required",
            'Row 4: Status must be "active" or "inactive"',
        ])

    def test_sample_has_two_rows(self):
        records, errors = parse_category_head_csv(generate_sample_csv('category_heads'), 1)
        self.assertEqual(errors, [])
        self.assertEqual([r['name'] for r in records], ['General', 'Sponsored'])


class SampleAndSummaryTests(SimpleTestCase):

    def test_sample_parses_with_its_own_parser(self):
        sample = generate_sample_csv('fee_plans')
        lookups = {'fee_category_map': {'tuition fee': 1}, 'category_head_map': {}, 'class_map': {'1st': 2}}
        records, errors = parse_fee_plan_csv(sample, lookups, 1)
        self.assertEqual(errors, [])
        self.assertEqual(records[0]['name'], 'Tuition Fee - General (1st)')

    def test_fee_category_sample_carries_school(self):
        rows = list(csv.reader(io.StringIO(generate_sample_csv('fee_categories', school_id=12))))
        self.assertEqual(rows[0][0], 'schoolId')
        self.assertEqual(rows[1][0], '12')

    def test_unknown_kind(self):
        with self.assertRaises(ValueError):
            generate_sample_csv('students')

    def test_error_summary(self):
        errors = [f"Row {n}: Class is required" for n in range(2, 15)]
        summary = summarize_parse_errors(errors)
        self.assertTrue(summary.startswith("CSV parsing errors:\nRow 2: Class is required"))
        self.assertIn("Row 11: Class is required", summary)
        self.assertNotIn("Row 12:", summary)
        self.assertTrue(summary.endswith("... and 3 more"))

    def test_preview(self):
        self.assertEqual(preview_rows(list(range(20)), 10), list(range(10)))

    def test_read_upload(self):
        upload = SimpleUploadedFile('plans.csv', "\ufeffa,b\n1,2".encode('utf-8'))
        self.assertEqual(read_csv_upload(upload), "a,b\n1,2")

        with self.assertRaises(MalformedCSVError):
            read_csv_upload(SimpleUploadedFile('plans.csv', b'\xff\xfe\x00bad'))


class ExcelUploadTests(SimpleTestCase):

    def test_sample_workbook_reads_back(self):
        text = xlsx_to_csv_text(io.BytesIO(generate_sample_xlsx('route_plans')))
        headers, rows = split_csv(text)

        self.assertEqual(headers[0], 'routename')
        self.assertEqual(rows[0]['amount'], '2000.00')

    def test_numeric_cells(self):
        wb = Workbook()
        wb.active.append(["feeCategoryName", "categoryHeadName", "className", "amount"])
        wb.active.append(["Tuition Fee", None, "1st", 5000])
        wb.active.append(["Tuition Fee", None, "2nd", 1250.5])
        buffer = io.BytesIO()
        wb.save(buffer)

        upload = SimpleUploadedFile('plans.xlsx', buffer.getvalue())
        records, errors = parse_fee_plan_csv(
            read_upload(upload),
            {'fee_category_map': {'tuition fee': 7}, 'category_head_map': {}, 'class_map': {'1st': 3, '2nd': 5}},
            1,
        )

        self.assertEqual(errors, [])
        self.assertEqual([r['amount'] for r in records], [Decimal('5000'), Decimal('1250.5')])
        self.assertIsNone(records[0]['category_head_id'])

    def test_broken_workbook(self):
        with self.assertRaises(MalformedCSVError):
            read_upload(SimpleUploadedFile('plans.xlsx', b'not a workbook'))
