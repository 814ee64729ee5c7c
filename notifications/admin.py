# notifications/admin.py
from django.contrib import admin
from .models import CheerMessage

@admin.register(CheerMessage)
class CheerMessageAdmin(admin.ModelAdmin):
    list_display = ('activity', 'sender', 'created_at', 'delivered_at', 'spoken_at')
    list_filter = ('activity',)
