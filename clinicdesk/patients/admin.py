from django.contrib import admin

from clinicdesk.patients.models import Patient


@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    list_display = ["name", "clinic", "phone", "created"]
    list_filter = ["clinic"]
    search_fields = ["name", "phone", "email"]
    raw_id_fields = ["clinic", "created_by"]
