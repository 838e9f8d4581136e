from django.urls import path

from clinicdesk.patients.views import PatientExportView
from clinicdesk.patients.views import PatientListCreateView

app_name = "patients"

urlpatterns = [
    path("", PatientListCreateView.as_view(), name="list"),
    path("export/", PatientExportView.as_view(), name="export"),
]
