from django.contrib import admin

from enrollments.models import Enrollment, Participant, Session


class EnrollmentInline(admin.TabularInline):
    model = Enrollment
    extra = 0
    fields = ["participant", "state", "vendor", "external_payment_ref", "created_at"]
    readonly_fields = fields
    can_delete = False


@admin.register(Session)
class SessionAdmin(admin.ModelAdmin):
    list_display = ["name", "capacity", "confirmed_count", "price", "created_at"]
    search_fields = ["name"]
    readonly_fields = ["confirmed_count"]
    inlines = [EnrollmentInline]


@admin.register(Participant)
class ParticipantAdmin(admin.ModelAdmin):
    list_display = ["display_name", "email", "account_id"]
    search_fields = ["display_name", "email", "account_id"]


@admin.register(Enrollment)
class EnrollmentAdmin(admin.ModelAdmin):
    list_display = ["id", "session", "participant", "state", "vendor", "created_at"]
    list_filter = ["state", "vendor"]
    search_fields = ["external_payment_ref"]
    readonly_fields = [
        "session",
        "participant",
        "price",
        "state",
        "vendor",
        "external_payment_ref",
        "created_at",
        "confirmed_at",
    ]
