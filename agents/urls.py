from django.urls import path
from . import views

urlpatterns = [
    path('ai/status', views.ai_status, name='ai_status'),
    path('agents/health', views.agents_health, name='agents_health'),
    path('agents/<slug:agent_type>/chat', views.AgentChatView.as_view(), name='agent_chat'),
]
