# fees/forms.py

"""
Fee Plan Forms

Form classes for:
- Single fee plan creation
- Multiple (bulk) fee plan creation from selected headings and classes
- CSV upload for fee plan, fee category, category head and route plan imports

The school is chosen on every form; querysets are narrowed to that school
when it is known.
"""

from django import forms
from django.core.exceptions import ValidationError
from decimal import Decimal
import logging

from core.models import School
from academics.models import Class
from .models import STATUS_ACTIVE, STATUS_CHOICES, CategoryHead, FeeCategory
from .utils import parse_int

logger = logging.getLogger(__name__)

UPLOAD_EXTENSIONS = ('.csv', '.xlsx')


def _school_from(form):
    """School selected on a bound form, or the initial value"""
    school_id = form.data.get(form.add_prefix('school')) if form.is_bound else form.initial.get('school')
    return parse_int(getattr(school_id, 'pk', school_id))


# =============================================================================
# SINGLE FEE PLAN
# =============================================================================

class FeePlanForm(forms.Form):
    """
    Create one fee plan for a fee heading, optional category head and class.

    A class is required here. Plans without a class can only be created
    through FeePlanService.create_fee_plan.
    """

    school = forms.ModelChoiceField(
        queryset=School.objects.filter(is_active=True),
        error_messages={'required': 'Please select a school'},
        widget=forms.Select(attrs={'class': 'form-control'})
    )
    fee_category = forms.ModelChoiceField(
        queryset=FeeCategory.objects.all(),
        error_messages={'required': 'Please select a fee heading'},
        widget=forms.Select(attrs={'class': 'form-control'})
    )
    category_head = forms.ModelChoiceField(
        queryset=CategoryHead.objects.active(),
        required=False,
        empty_label="General",
        widget=forms.Select(attrs={'class': 'form-control'})
    )
    school_class = forms.ModelChoiceField(
        queryset=Class.objects.all(),
        error_messages={'required': 'Please select a class'},
        widget=forms.Select(attrs={'class': 'form-control'})
    )
    amount = forms.DecimalField(
        max_digits=10,
        decimal_places=2,
        required=False,
        widget=forms.NumberInput(attrs={
            'class': 'form-control',
            'step': '0.01',
            'placeholder': 'Amount'
        })
    )
    status = forms.ChoiceField(
        choices=STATUS_CHOICES,
        initial=STATUS_ACTIVE,
        widget=forms.Select(attrs={'class': 'form-control'})
    )
    name = forms.CharField(
        max_length=200,
        required=False,
        widget=forms.TextInput(attrs={
            'class': 'form-control',
            'placeholder': 'Generated from heading, category head and class if blank'
        })
    )

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)

        school_id = _school_from(self)
        if school_id:
            self.fields['fee_category'].queryset = FeeCategory.objects.for_school(school_id).order_by('name')
            self.fields['category_head'].queryset = CategoryHead.objects.for_school(school_id).active().order_by('name')
            self.fields['school_class'].queryset = Class.objects.for_school(school_id).order_by('name')

    def clean_amount(self):
        amount = self.cleaned_data.get('amount')
        if amount is None or amount <= Decimal('0'):
            raise ValidationError('Please enter a valid amount')
        return amount

    def to_payload(self):
        """Create payload for FeePlanService.create_fee_plan"""
        data = self.cleaned_data
        payload = {
            'fee_category_id': data['fee_category'].pk,
            'class_id': data['school_class'].pk,
            'amount': data['amount'],
            'status': data['status'],
        }
        if data.get('category_head'):
            payload['category_head_id'] = data['category_head'].pk
        if data.get('name'):
            payload['name'] = data['name']
        return payload


# =============================================================================
# MULTIPLE FEE PLANS
# =============================================================================

class BulkFeePlanForm(forms.Form):
    """
    Select several fee headings, category heads and classes at once.

    One fee plan is created per combination; leaving category heads empty
    creates General plans only.
    """

    school = forms.ModelChoiceField(
        queryset=School.objects.filter(is_active=True),
        error_messages={'required': 'Please select a school'}
    )
    fee_categories = forms.ModelMultipleChoiceField(
        queryset=FeeCategory.objects.all(),
        required=False,
        widget=forms.CheckboxSelectMultiple
    )
    category_heads = forms.ModelMultipleChoiceField(
        queryset=CategoryHead.objects.active(),
        required=False,
        widget=forms.CheckboxSelectMultiple
    )
    classes = forms.ModelMultipleChoiceField(
        queryset=Class.objects.all(),
        required=False,
        widget=forms.CheckboxSelectMultiple
    )
    amount = forms.DecimalField(max_digits=10, decimal_places=2, required=False)
    status = forms.ChoiceField(choices=STATUS_CHOICES, initial=STATUS_ACTIVE)

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)

        school_id = _school_from(self)
        if school_id:
            self.fields['fee_categories'].queryset = FeeCategory.objects.for_school(school_id)
            self.fields['category_heads'].queryset = CategoryHead.objects.for_school(school_id).active()
            self.fields['classes'].queryset = Class.objects.for_school(school_id)

    def clean(self):
        cleaned_data = super().clean()
        errors = {}

        if not cleaned_data.get('fee_categories'):
            errors['fee_categories'] = 'Please select at least one fee heading'
        if not cleaned_data.get('classes'):
            errors['classes'] = 'Please select at least one class'

        amount = cleaned_data.get('amount')
        if amount is None or amount <= Decimal('0'):
            errors['amount'] = 'Please enter a valid amount'

        if errors:
            raise ValidationError(errors)
        return cleaned_data

    def selected_ids(self):
        """(fee category ids, category head ids, class ids) for FeePlanService.create_multiple"""
        data = self.cleaned_data
        return (
            [category.pk for category in data['fee_categories']],
            [head.pk for head in data.get('category_heads') or []],
            [school_class.pk for school_class in data['classes']],
        )


# =============================================================================
# CSV UPLOAD
# =============================================================================

class FeeImportForm(forms.Form):
    """CSV (or .xlsx) upload for bulk imports"""

    school = forms.ModelChoiceField(
        queryset=School.objects.filter(is_active=True),
        error_messages={'required': 'Please select a school'}
    )
    csv_file = forms.FileField(
        error_messages={'required': 'Please upload a CSV file'},
        widget=forms.ClearableFileInput(attrs={'class': 'form-control', 'accept': ','.join(UPLOAD_EXTENSIONS)})
    )

    def clean_csv_file(self):
        csv_file = self.cleaned_data.get('csv_file')
        if not csv_file or not csv_file.name.lower().endswith(UPLOAD_EXTENSIONS):
            raise ValidationError('Please upload a CSV file')
        return csv_file
