# registration/admin.py
from django.contrib import admin
from .models import Runner

@admin.register(Runner)
class RunnerAdmin(admin.ModelAdmin):
    list_display = ('id', 'display_name', 'email', 'voice')
    search_fields = ('id', 'display_name', 'email')
