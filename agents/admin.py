from django.contrib import admin
from .models import Agent, AgentMemory


@admin.register(Agent)
class AgentAdmin(admin.ModelAdmin):
    list_display = ['name', 'agent_type', 'status', 'updated_at']
    list_filter = ['status', 'agent_type']
    search_fields = ['name', 'agent_type', 'tagline']
    readonly_fields = ['created_at', 'updated_at']


@admin.register(AgentMemory)
class AgentMemoryAdmin(admin.ModelAdmin):
    list_display = ['owner_type', 'category', 'name', 'importance_score', 'expires_at', 'created_at']
    list_filter = ['category', 'owner_type']
    search_fields = ['name', 'owner_id']
    readonly_fields = ['created_at']
