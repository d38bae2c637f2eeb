from django.urls import include, path

urlpatterns = [
    path("", include("charge_planner.urls")),
]
