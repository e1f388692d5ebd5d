from django.contrib import admin
from .models import Depot, User


@admin.register(Depot)
class DepotAdmin(admin.ModelAdmin):
    list_display = ['name', 'city', 'location', 'contact_number', 'created_at']
    search_fields = ['name', 'city']
    ordering = ['name']


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ['email', 'name', 'depot', 'is_admin', 'is_active', 'created_at']
    list_filter = ['is_admin', 'is_active', 'depot']
    search_fields = ['email', 'name']
    ordering = ['-created_at']
