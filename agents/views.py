import json
import logging

from django.http import JsonResponse
from django.utils import timezone
from django.utils.decorators import method_decorator
from django.views import View
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET

from .clients.inference_client import get_inference_client
from .connector import get_connection_manager
from .engine import build_engine
from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


@require_GET
def ai_status(request):
    try:
        status = get_inference_client().model_status()
        return JsonResponse({
            'ok': status['gateway_status'] == 'online',
            'gateway': status['gateway_status'],
            'models': status['models'],
            'checked_at': status['checked_at'],
        })
    except Exception as e:
        logger.error(f"/ai/status error: {e}")
        return JsonResponse({'ok': False, 'error': str(e)}, status=503)


@require_GET
def agents_health(request):
    manager = get_connection_manager()
    health = manager.health_check()
    return JsonResponse({
        'database': health.to_dict(),
        'connection': manager.connection_stats(),
        'timestamp': timezone.now().isoformat(),
    }, status=200 if health.ok else 503)


@method_decorator(csrf_exempt, name='dispatch')
class AgentChatView(View):
    def post(self, request, agent_type):
        try:
            payload = json.loads(request.body or b'{}')
        except json.JSONDecodeError:
            return JsonResponse({'success': False, 'error': 'Invalid JSON body'}, status=400)

        message = payload.get('message') if isinstance(payload, dict) else None
        if not message:
            return JsonResponse({'success': False, 'error': 'message is required'}, status=400)

        agent = get_connection_manager().connect(agent_type)
        if agent.fallback:
            logger.warning(f"Chat for {agent_type} running on fallback agent: {agent.reason}")

        context = {
            'conversation_history': payload.get('conversation_history') or [],
            'additional_context': payload.get('additional_context'),
            'session_id': payload.get('session_id') or request.session.session_key,
        }

        try:
            engine = build_engine(agent)
        except ConfigurationError as e:
            logger.error(f"Agent {agent_type} is misconfigured: {e}")
            return JsonResponse({'success': False, 'error': 'Agent is misconfigured'}, status=500)

        reply = engine.process_request(message, context)
        return JsonResponse(reply.to_dict())
