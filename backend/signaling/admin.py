from django.contrib import admin

from .models import Signal, SignalReceipt


@admin.register(Signal)
class SignalAdmin(admin.ModelAdmin):
    list_display = ['id', 'sender', 'status', 'max_distance', 'distance_unit', 'sent_at', 'expires_at']
    list_filter = ['status', 'distance_unit', 'sent_at']
    search_fields = ['id', 'sender__username']
    readonly_fields = ['id', 'sent_at']


@admin.register(SignalReceipt)
class SignalReceiptAdmin(admin.ModelAdmin):
    list_display = ['id', 'signal', 'receiver', 'distance', 'direction', 'responded', 'received_at']
    list_filter = ['responded', 'direction', 'received_at']
    search_fields = ['receiver__username', 'signal__id']
