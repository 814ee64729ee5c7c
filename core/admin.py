# core/admin.py
from django.contrib import admin
from .models import Event

@admin.register(Event)
class EventAdmin(admin.ModelAdmin):
    list_display = ('id', 'name', 'event_type', 'date', 'distance_m')
    list_filter = ('event_type',)
