# fees/management/commands/import_fees.py

"""
Bulk import fee plans, fee categories, category heads or route plans from a
CSV file.

USAGE EXAMPLES:
===============

# 1. Import fee plans for a school by code
python manage.py import_fees --school KPS --file fee_plans.csv

# 2. Import fee categories for a school by id
python manage.py import_fees --school 3 --kind fee_categories --file headings.csv

# 3. Print a sample route plan CSV
python manage.py import_fees --kind route_plans --sample

# 4. Import category heads
python manage.py import_fees --school KPS --kind category_heads --file heads.csv
"""

from django.core.management.base import BaseCommand, CommandError
import logging

from core.models import School
from fees.csv_import import SAMPLE_CSV, generate_sample_csv, xlsx_to_csv_text
from fees.exceptions import ImportInProgressError, MalformedCSVError
from fees.services import CategoryHeadService, FeeCategoryService, FeePlanService, RoutePlanService

logger = logging.getLogger(__name__)

IMPORTERS = {
    'fee_plans': (FeePlanService.import_csv, 'fee plan(s)'),
    'fee_categories': (FeeCategoryService.import_csv, 'fee category(es)'),
    'category_heads': (CategoryHeadService.import_csv, 'category head(s)'),
    'route_plans': (RoutePlanService.import_csv, 'route plan(s)'),
}


class Command(BaseCommand):
    help = 'Import fee plans, fee categories, category heads or route plans for a school from a CSV file'

    def add_arguments(self, parser):
        parser.add_argument(
            '--school', type=str, default=None,
            help='School code or id'
        )
        parser.add_argument(
            '--kind', choices=sorted(SAMPLE_CSV), default='fee_plans',
            help='What the CSV contains (default: fee_plans)'
        )
        parser.add_argument(
            '--file', dest='csv_path', type=str, default=None,
            help='Path to the .csv or .xlsx file'
        )
        parser.add_argument(
            '--sample', action='store_true',
            help='Print a sample CSV for --kind and exit'
        )

    def handle(self, *args, **options):
        kind = options['kind']

        if options['sample']:
            self.stdout.write(generate_sample_csv(kind))
            return

        if not options['school']:
            raise CommandError('Please select a school (--school)')
        if not options['csv_path']:
            raise CommandError('Please upload a CSV file (--file)')

        school = self.get_school(options['school'])
        csv_text = self.read_file(options['csv_path'])

        import_csv, label = IMPORTERS[kind]
        try:
            result = import_csv(school, csv_text)
        except MalformedCSVError as e:
            raise CommandError(' '.join(e.messages))
        except ImportInProgressError as e:
            raise CommandError(str(e))

        for level, text in result.summary_messages(label):
            style = self.style.SUCCESS if level == 'success' else self.style.ERROR
            self.stdout.write(style(text))

        for error in result.errors:
            self.stderr.write(self.style.ERROR(f"  Row {error['row']}: {error['error']}"))
        for duplicate in result.duplicates:
            self.stdout.write(self.style.WARNING(
                f"  Row {duplicate['row']}: {duplicate['name']} - {duplicate['reason']}"
            ))

        logger.info(f"import_fees {kind} for {school}: {result!r}")

    def get_school(self, value):
        school = School.objects.filter(code__iexact=value).first()
        if school is None and value.isdigit():
            school = School.objects.filter(pk=int(value)).first()
        if school is None:
            raise CommandError(f"School not found: {value}")
        return school

    def read_file(self, path):
        if path.lower().endswith('.xlsx'):
            try:
                return xlsx_to_csv_text(path)
            except MalformedCSVError as e:
                raise CommandError(' '.join(e.messages))

        try:
            with open(path, encoding='utf-8-sig') as csv_file:
                return csv_file.read()
        except FileNotFoundError:
            raise CommandError(f"File not found: {path}")
        except (OSError, UnicodeDecodeError) as e:
            raise CommandError(f"Failed to read file: {e}")
