from django.conf import settings
from django.db import models
from model_utils.models import TimeStampedModel


class Patient(TimeStampedModel):
    """
    A patient record. Always belongs to exactly one clinic.
    """

    clinic = models.ForeignKey(
        "users.Clinic",
        on_delete=models.CASCADE,
        related_name="patients",
    )
    name = models.CharField(max_length=255)
    date_of_birth = models.DateField(null=True, blank=True)
    gender = models.CharField(max_length=20, blank=True, default="")
    phone = models.CharField(max_length=32, blank=True, default="")
    email = models.EmailField(blank=True, default="")
    address = models.CharField(max_length=255, blank=True, default="")
    notes = models.TextField(blank=True, default="")
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="patients_created",
    )

    class Meta:
        ordering = ["name"]
        indexes = [models.Index(fields=["clinic", "name"])]

    def __str__(self):
        return self.name
