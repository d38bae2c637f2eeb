from django.urls import path

from charge_planner import views

urlpatterns = [
    path("api/v1/health", views.health_view, name="health"),
    path("api/v1/charge-plan", views.charge_plan_view, name="charge-plan"),
]
