# fees/urls.py

from django.urls import path
from . import views

app_name = 'fees'

urlpatterns = [
    # =============================================================================
    # FEE PLAN URLS
    # =============================================================================
    path('plans/import/', views.fee_plan_import, name='fee_plan_import'),
    path('plans/import/preview/', views.fee_plan_import_preview, name='fee_plan_import_preview'),
    path('plans/create/', views.fee_plan_create, name='fee_plan_create'),
    path('plans/bulk-create/', views.fee_plan_bulk_create, name='fee_plan_bulk_create'),


    # =============================================================================
    # FEE CATEGORY, CATEGORY HEAD AND ROUTE PLAN URLS
    # =============================================================================
    path('categories/import/', views.fee_category_import, name='fee_category_import'),
    path('category-heads/import/', views.category_head_import, name='category_head_import'),
    path('route-plans/import/', views.route_plan_import, name='route_plan_import'),


    # =============================================================================
    # SAMPLE FILES
    # =============================================================================
    path('samples/<str:kind>.csv', views.sample_csv_download, name='sample_csv_download'),
    path('samples/<str:kind>.xlsx', views.sample_xlsx_download, name='sample_xlsx_download'),
]
