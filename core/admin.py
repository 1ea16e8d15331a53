from django.contrib import admin
from .models import ActivityLog, Bakery, UserProfile

@admin.register(Bakery)
class BakeryAdmin(admin.ModelAdmin):
    list_display = ("name", "email", "phone", "is_active", "created_at")
    search_fields = ("name", "email")
    list_filter = ("is_active",)

@admin.register(UserProfile)
class UserProfileAdmin(admin.ModelAdmin):
    list_display = ("user", "bakery", "phone")
    search_fields = ("user__username", "user__email")
    list_filter = ("bakery",)

@admin.register(ActivityLog)
class ActivityLogAdmin(admin.ModelAdmin):
    list_display = ("timestamp", "bakery", "user", "action", "entity_type", "entity_id", "entity_name")
    list_filter = ("action", "entity_type", "bakery")
    search_fields = ("entity_type", "entity_id", "entity_name", "user__username")
    readonly_fields = ("timestamp", "bakery", "user", "action", "entity_type", "entity_id", "entity_name", "description", "metadata")
