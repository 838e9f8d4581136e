from django.urls import path

from clinicdesk.staff.views import StaffDetailView
from clinicdesk.staff.views import StaffListCreateView

app_name = "staff"

urlpatterns = [
    path("", StaffListCreateView.as_view(), name="list"),
    path("<int:user_id>/", StaffDetailView.as_view(), name="detail"),
]
