from django.contrib.auth import get_user_model
from rest_framework import serializers
from rest_framework.validators import UniqueValidator

User = get_user_model()


class RegisterSerializer(serializers.Serializer):
    username = serializers.CharField(
        max_length=150,
        validators=[UniqueValidator(queryset=User.objects.all())],
    )
    email = serializers.EmailField(
        validators=[UniqueValidator(queryset=User.objects.all())],
    )
    password = serializers.CharField(
        write_only=True,
        min_length=8,
        style={"input_type": "password"},
    )
    name = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    clinic_name = serializers.CharField(max_length=255)


class ActiveClinicSerializer(serializers.Serializer):
    clinic_id = serializers.IntegerField()
