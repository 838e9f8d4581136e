from rest_framework import serializers

from clinicdesk.patients.models import Patient


class PatientSerializer(serializers.ModelSerializer):
    class Meta:
        model = Patient
        fields = [
            "id",
            "name",
            "date_of_birth",
            "gender",
            "phone",
            "email",
            "address",
            "notes",
            "created",
        ]
        read_only_fields = ["id", "created"]
