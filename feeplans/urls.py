"""
URL configuration for the feeplans project.

Only the fee import endpoints are routed here; school, class and fee
maintenance screens are served elsewhere.
"""
from django.urls import path, include

urlpatterns = [
    # Fees app - fee headings, fee plans, route plans
    path('fees/', include(('fees.urls', 'fees'), namespace='fees')),
]
