from django.urls import path
from rest_framework.authtoken.views import obtain_auth_token

from clinicdesk.users.api import ActiveClinicView
from clinicdesk.users.api import AuthMeView
from clinicdesk.users.api import RegisterView

app_name = "auth"

urlpatterns = [
    path("register/", RegisterView.as_view(), name="register"),
    path("token/", obtain_auth_token, name="token"),
    path("me/", AuthMeView.as_view(), name="me"),
    path("active-clinic/", ActiveClinicView.as_view(), name="active-clinic"),
]
