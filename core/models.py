from django.db import models
from django.conf import settings
from django.utils import timezone


class Bakery(models.Model):
    name = models.CharField(max_length=100)
    description = models.TextField(blank=True, default="")
    address = models.CharField(max_length=255, blank=True, default="")
    phone = models.CharField(max_length=30, blank=True, default="")
    email = models.EmailField(blank=True, default="")
    website = models.URLField(blank=True, default="")
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Bakery"
        verbose_name_plural = "Bakeries"
        ordering = ["name"]

    def __str__(self) -> str:
        return self.name


class UserProfile(models.Model):
    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE)
    bakery = models.ForeignKey(
        Bakery,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="members",
    )
    phone = models.CharField(max_length=30, blank=True, default="")

    class Meta:
        verbose_name = "User profile"
        verbose_name_plural = "User profiles"

    def __str__(self) -> str:
        return f"Profile: {self.user.username}"


class ActivityLog(models.Model):
    ACTION_CREATE = "CREATE"
    ACTION_UPDATE = "UPDATE"
    ACTION_DELETE = "DELETE"
    ACTION_COMPLETE = "COMPLETE"
    ACTION_RECEIVE = "RECEIVE"
    ACTION_USE = "USE"
    ACTION_ADJUST = "ADJUST"
    ACTION_WASTE = "WASTE"
    ACTION_CHOICES = [
        (ACTION_CREATE, "Create"),
        (ACTION_UPDATE, "Update"),
        (ACTION_DELETE, "Delete"),
        (ACTION_COMPLETE, "Complete"),
        (ACTION_RECEIVE, "Receive"),
        (ACTION_USE, "Use"),
        (ACTION_ADJUST, "Adjust"),
        (ACTION_WASTE, "Waste"),
    ]

    timestamp = models.DateTimeField(default=timezone.now, db_index=True)
    user = models.ForeignKey(settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL)
    bakery = models.ForeignKey(
        Bakery,
        null=True,
        blank=True,
        on_delete=models.CASCADE,
        related_name="activity",
    )
    action = models.CharField(max_length=20, choices=ACTION_CHOICES)
    entity_type = models.CharField(max_length=64)
    entity_id = models.CharField(max_length=64, blank=True, default="")
    entity_name = models.CharField(max_length=255, blank=True, default="")
    description = models.TextField(blank=True, default="")
    metadata = models.JSONField(default=dict, blank=True)

    class Meta:
        verbose_name = "Activity log"
        verbose_name_plural = "Activity log"
        ordering = ["-timestamp", "-id"]

    def __str__(self) -> str:
        return f"{self.timestamp:%Y-%m-%d %H:%M} {self.action} {self.entity_type} {self.entity_id}"
