import logging

from django.apps import AppConfig
from django.conf import settings

logger = logging.getLogger(__name__)


class AgentsConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'agents'

    registry = None
    agent_settings = None

    def ready(self):
        """Build the model registry and agent settings once at startup."""
        from .registry import load_model_registry
        from .runtime import load_agent_settings

        try:
            self.registry = load_model_registry(
                getattr(settings, 'MODEL_REGISTRY_PATH', None),
                base_url=getattr(settings, 'INFERENCE_BASE_URL', None),
            )
        except Exception as e:
            logger.error(f"Critical: Failed to load model registry: {e}")
            raise

        self.agent_settings = load_agent_settings(getattr(settings, 'AGENT_CONFIG_PATH', None))
