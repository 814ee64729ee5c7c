# tracking/admin.py
from django.contrib import admin
from .models import Activity, LocationSample

@admin.register(Activity)
class ActivityAdmin(admin.ModelAdmin):
    list_display = ('id', 'runner', 'event', 'status', 'started_at', 'distance_m')
    list_filter = ('status', 'event')
    readonly_fields = ('distance_m', 'pace_sec_per_km', 'last_lat', 'last_lng', 'last_ping_at')

@admin.register(LocationSample)
class LocationSampleAdmin(admin.ModelAdmin):
    list_display = ('activity', 'runner', 'lat', 'lng', 'timestamp')
    list_filter = ('activity',)
    readonly_fields = ('timestamp',)
