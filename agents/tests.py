import json
import threading
import time
from datetime import timedelta
from io import StringIO
from unittest.mock import MagicMock, patch

import requests
from django.core.management import call_command
from django.db import OperationalError
from django.test import SimpleTestCase, TestCase
from django.urls import reverse
from django.utils import timezone

from .clients.inference_client import GenerationResult, InferenceClient, estimate_tokens
from .connector import (
    Backoff,
    ConnectionResilienceManager,
    FallbackRecord,
    TROUBLESHOOTING_TIPS,
)
from .engine import AgentEngine, extract_user_input
from .exceptions import ConfigurationError, StoreAuthError, StoreUnavailable
from .memory import ConversationLog, ConversationTurn, calculate_importance_score
from .models import Agent, AgentMemory
from .registry import build_model_registry, load_model_registry
from .routing import LONG_PROMPT_THRESHOLD, default_model_for_agent, select_model, smart_generate
from .runtime import AgentSettings, build_runtime_config
from .stores import DjangoAgentStore, classify_database_error, translate_errors
from .styles import CINEMATIC_STYLE, PlainStyle, get_style

BASE_URL = "http://inference.test"

REGISTRY_DOC = {
    'base_url': BASE_URL,
    'models': {
        'llama32': {'model_name': 'llama3.2:3b', 'timeout': 30, 'strengths': ['general_conversation']},
        'gemma3': {'model_name': 'gemma2:2b', 'timeout': 30},
        'phi4': {'model_name': 'phi3:14b', 'timeout': 60, 'max_context': 32768},
        'deepseek': {'model_name': 'deepseek-coder:6.7b', 'timeout': 45, 'max_context': 16384},
        'gpt_oss': {'model_name': 'mistral:7b', 'timeout': 45},
    },
}


def make_registry():
    return build_model_registry(REGISTRY_DOC)


def http_response(status_code=200, payload=None, text=''):
    response = MagicMock()
    response.status_code = status_code
    response.text = text
    if isinstance(payload, Exception):
        response.json.side_effect = payload
    else:
        response.json.return_value = payload
    return response


class StubAgent:
    """Duck-typed agent record for engine tests that never touch the DB."""

    def __init__(self, name='CodeMaster', agent_type='codemaster', capabilities=None, **extra):
        self.id = 42
        self.pk = 42
        self.name = name
        self.agent_type = agent_type
        self.tagline = extra.get('tagline', 'The Software Engineering Virtuoso')
        self.personality_traits = extra.get('personality_traits', {
            'primary_traits': ['precise', 'logical'],
            'communication_style': 'concise',
            'expertise_level': 'senior engineer',
        })
        self.capabilities = capabilities if capabilities is not None else [
            'code_generation', 'debugging', 'architecture_design'
        ]
        self.configuration = {}
        self.fallback = False


class ModelRegistryTest(SimpleTestCase):
    def test_default_catalogue_loads(self):
        registry = load_model_registry()
        self.assertEqual(
            sorted(registry.keys()),
            ['deepseek', 'gemma3', 'gpt_oss', 'llama32', 'phi4']
        )
        self.assertEqual(registry.get('phi4').model_name, 'phi3:14b')
        self.assertEqual(registry.get('phi4').timeout, 60)
        self.assertIn('code_generation', registry.get('phi4').strengths)

    def test_base_url_override(self):
        registry = load_model_registry(base_url='http://gateway:9000/')
        self.assertEqual(registry.base_url, 'http://gateway:9000')

    def test_unknown_key_is_configuration_error(self):
        registry = make_registry()
        with self.assertRaises(ConfigurationError):
            registry.get('gpt5')

    def test_registry_is_read_only(self):
        registry = make_registry()
        with self.assertRaises(TypeError):
            registry._models['new'] = registry.get('llama32')
        with self.assertRaises(Exception):
            registry.get('llama32').timeout = 1

    def test_missing_file_is_configuration_error(self):
        with self.assertRaises(ConfigurationError):
            load_model_registry('/nonexistent/models.yml')

    def test_empty_catalogue_rejected(self):
        with self.assertRaises(ConfigurationError):
            build_model_registry({'base_url': BASE_URL, 'models': {}})


class InferenceClientTest(SimpleTestCase):
    def setUp(self):
        self.client = InferenceClient(make_registry())

    @patch('requests.post')
    def test_generate_returns_backend_text(self, mock_post):
        mock_post.return_value = http_response(200, {"response": "hello world"})

        result = self.client.generate('llama32', 'Say hello')

        self.assertTrue(result.success)
        self.assertEqual(result.text, "hello world")
        self.assertIsNone(result.error)
        self.assertEqual(result.tokens_used, estimate_tokens('Say hello' + 'hello world'))

    @patch('requests.post')
    def test_payload_and_timeouts(self, mock_post):
        mock_post.return_value = http_response(200, {"response": "ok"})

        self.client.generate('phi4', 'prompt', {'temperature': 0.2, 'stop_sequences': ['User:']})

        args, kwargs = mock_post.call_args
        self.assertEqual(args[0], f"{BASE_URL}/api/generate")
        self.assertEqual(kwargs['timeout'], (10, 60))
        self.assertEqual(kwargs['json'], {
            'model': 'phi3:14b',
            'prompt': 'prompt',
            'stream': False,
            'options': {'temperature': 0.2, 'top_p': 0.9, 'max_tokens': 2048, 'stop': ['User:']},
        })

    @patch('requests.post')
    def test_token_estimate_is_ceiling_of_quarter_length(self, mock_post):
        mock_post.return_value = http_response(200, {"response": "b" * 11})

        result = self.client.generate('llama32', "a" * 29)

        self.assertEqual(result.tokens_used, 10)

    @patch('requests.post')
    def test_content_field_is_accepted(self, mock_post):
        mock_post.return_value = http_response(200, {"content": "from content"})
        result = self.client.generate('gemma3', 'hi')
        self.assertTrue(result.success)
        self.assertEqual(result.text, "from content")

    @patch('requests.post')
    def test_non_200_is_a_failed_result(self, mock_post):
        mock_post.return_value = http_response(500, None, text='model crashed')

        result = self.client.generate('llama32', 'hi')

        self.assertFalse(result.success)
        self.assertIn('HTTP 500', result.error)
        self.assertEqual(result.processing_time_ms, 0)
        self.assertEqual(result.tokens_used, 0)

    @patch('requests.post')
    def test_malformed_body_is_a_failed_result(self, mock_post):
        mock_post.return_value = http_response(200, ValueError("Expecting value"))
        result = self.client.generate('llama32', 'hi')
        self.assertFalse(result.success)

        mock_post.return_value = http_response(200, {"done": True})
        result = self.client.generate('llama32', 'hi')
        self.assertFalse(result.success)
        self.assertIn('no text field', result.error)

    @patch('requests.post')
    def test_timeout_is_a_failed_result(self, mock_post):
        mock_post.side_effect = requests.exceptions.Timeout("read timed out")

        result = self.client.generate('deepseek', 'hi')

        self.assertFalse(result.success)
        self.assertIn('read timed out', result.error)
        self.assertEqual(result.tokens_used, 0)

    @patch('requests.post')
    def test_generate_never_raises_for_any_registered_model(self, mock_post):
        mock_post.side_effect = requests.exceptions.ConnectionError("refused")
        for key in self.client.available_models():
            result = self.client.generate(key, 'well formed prompt')
            self.assertFalse(result.success)
            self.assertTrue(result.error)

    @patch('requests.post')
    def test_unknown_model_raises_without_calling_backend(self, mock_post):
        with self.assertRaises(ConfigurationError):
            self.client.generate('gpt5', 'hi')
        mock_post.assert_not_called()

    @patch('requests.post')
    def test_invalid_options_are_a_failed_result(self, mock_post):
        result = self.client.generate('llama32', 'hi', {'temperature': 'hot'})

        self.assertFalse(result.success)
        self.assertIn('Invalid generation options', result.error)
        self.assertEqual(result.tokens_used, 0)
        mock_post.assert_not_called()

    @patch('requests.get')
    def test_model_status_online_when_model_is_loaded(self, mock_get):
        mock_get.side_effect = [
            http_response(200, {"version": "0.5.1"}),
            http_response(200, {"models": [{"name": "llama3.2:3b"}, {"name": "mistral:7b"}]}),
        ]
        status = self.client.model_status('llama32')
        self.assertEqual(status['status'], 'online')
        self.assertTrue(status['loaded'])

    @patch('requests.get')
    def test_model_status_offline_when_model_not_loaded(self, mock_get):
        mock_get.side_effect = [
            http_response(200, {"version": "0.5.1"}),
            http_response(200, {"models": [{"name": "mistral:7b"}]}),
        ]
        self.assertEqual(self.client.model_status('phi4')['status'], 'offline')

    @patch('requests.get')
    def test_model_status_offline_on_probe_error(self, mock_get):
        mock_get.side_effect = requests.exceptions.ConnectionError("refused")
        status = self.client.model_status('phi4')
        self.assertEqual(status['status'], 'offline')
        self.assertIn('refused', status['error'])

    def test_model_info(self):
        self.assertEqual(self.client.model_info('deepseek').model_name, 'deepseek-coder:6.7b')
        self.assertIsNone(self.client.model_info('gpt5'))

    def test_model_status_unknown_key(self):
        status = self.client.model_status('gpt5')
        self.assertEqual(status['status'], 'unknown')
        self.assertEqual(status['error'], 'Model not found')

    @patch('requests.get')
    def test_model_status_aggregates_every_model(self, mock_get):
        def fake_get(url, timeout):
            if url.endswith('/api/tags'):
                return http_response(200, {"models": [{"name": "llama3.2:3b"}]})
            return http_response(200, {"version": "0.5.1"})
        mock_get.side_effect = fake_get

        status = self.client.model_status()

        self.assertEqual(status['gateway_status'], 'online')
        self.assertEqual(set(status['models']), set(self.client.available_models()))
        self.assertEqual(status['models']['llama32']['status'], 'online')
        self.assertEqual(status['models']['gemma3']['status'], 'offline')


class ModelSelectorTest(SimpleTestCase):
    def test_selection_is_deterministic(self):
        self.assertEqual(select_model("code", 5000), select_model("code", 5000))

    def test_long_code_prompts_prefer_larger_context(self):
        registry = make_registry()
        long_key = select_model("code", LONG_PROMPT_THRESHOLD + 1000)
        short_key = select_model("code", 500)

        self.assertNotEqual(long_key, short_key)
        self.assertEqual(short_key, 'deepseek')
        self.assertEqual(long_key, 'phi4')
        self.assertGreater(registry.get(long_key).max_context, registry.get(short_key).max_context)

    def test_threshold_is_exclusive(self):
        self.assertEqual(select_model("code", LONG_PROMPT_THRESHOLD), 'deepseek')
        self.assertEqual(select_model("code", LONG_PROMPT_THRESHOLD + 1), 'phi4')

    def test_task_routes(self):
        self.assertEqual(select_model("creative", 10), 'gpt_oss')
        self.assertEqual(select_model("analysis", 10), 'deepseek')
        self.assertEqual(select_model("chat", 10), 'llama32')
        self.assertEqual(select_model("specialized", 10), 'gemma3')
        self.assertEqual(select_model("Programming", 10), 'deepseek')

    def test_unrecognized_task_uses_lightweight_default(self):
        self.assertEqual(select_model("astrology", 99999), 'llama32')
        self.assertEqual(select_model(None, 0), 'llama32')

    def test_every_selection_is_registered(self):
        registry = make_registry()
        for task in ('code', 'creative', 'analysis', 'chat', 'specialized', 'other'):
            for length in (10, 10000):
                registry.get(select_model(task, length))

    def test_agent_defaults(self):
        self.assertEqual(default_model_for_agent('cinegen'), 'gpt_oss')
        self.assertEqual(default_model_for_agent('codemaster'), 'phi4')
        self.assertEqual(default_model_for_agent('datasphere'), 'deepseek')
        self.assertEqual(default_model_for_agent('neochat'), 'llama32')

    def test_smart_generate_routes_through_selector(self):
        client = MagicMock()
        smart_generate(client, 'write a story', 'creative', {'temperature': 1.0})
        client.generate.assert_called_once_with('gpt_oss', 'write a story', {'temperature': 1.0})


class ConversationLogTest(SimpleTestCase):
    def test_keeps_ten_most_recent_turns(self):
        log = ConversationLog()
        evicted = []
        for i in range(15):
            evicted += log.append(ConversationTurn(user_input=f"q{i}", agent_response=f"a{i}"))

        self.assertEqual(len(log), 10)
        self.assertEqual([t.user_input for t in log.turns()], [f"q{i}" for i in range(5, 15)])
        self.assertEqual([t.user_input for t in evicted], [f"q{i}" for i in range(5)])

    def test_same_timestamp_does_not_collide(self):
        log = ConversationLog()
        stamp = timezone.now()
        for i in range(3):
            log.append(ConversationTurn(user_input=str(i), agent_response='', timestamp=stamp))
        self.assertEqual(len(log), 3)

    def test_concurrent_appends_stay_bounded(self):
        log = ConversationLog(capacity=10)

        def worker(n):
            for i in range(50):
                log.append(ConversationTurn(user_input=f"{n}-{i}", agent_response=''))

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertEqual(len(log), 10)

    def test_importance_score(self):
        self.assertEqual(calculate_importance_score("hi", "hello"), 1.0)
        self.assertEqual(calculate_importance_score("x" * 101, "hello"), 2.0)
        self.assertEqual(calculate_importance_score("hi", "y" * 201), 2.0)
        self.assertEqual(calculate_importance_score("this is URGENT", "ok"), 3.0)
        self.assertEqual(calculate_importance_score("urgent " + "x" * 100, "y" * 201), 5.0)
        self.assertEqual(calculate_importance_score("helpful", "ok"), 1.0)


class StylesTest(SimpleTestCase):
    def test_plain_style_is_identity(self):
        self.assertEqual(PlainStyle().apply("Make a video", "", {}), "Make a video")

    def test_cinematic_style(self):
        text = "Let's make a video that will create a feeling of wonder in everyone."
        styled = CINEMATIC_STYLE.apply(text, "", {})
        self.assertTrue(styled.startswith('🎬 '))
        self.assertIn('craft a cinematic piece', styled)
        self.assertIn('envision a feeling', styled)
        self.assertEqual(CINEMATIC_STYLE.apply(styled, "", {}).count('🎬'), 1)

    def test_cinematic_style_leaves_short_replies(self):
        self.assertEqual(CINEMATIC_STYLE.apply("Make a video", "", {}), "Make a video")

    def test_unknown_style_name_is_plain(self):
        self.assertIsInstance(get_style('baroque'), PlainStyle)


class RuntimeConfigTest(SimpleTestCase):
    def setUp(self):
        self.registry = make_registry()

    def test_preamble_from_persona(self):
        config = build_runtime_config(StubAgent(), self.registry)
        self.assertIn("You are CodeMaster, The Software Engineering Virtuoso.", config.personality)
        self.assertIn("Your primary personality traits: precise, logical.", config.personality)
        self.assertIn("Communication style: concise.", config.personality)
        self.assertIn("Expertise level: senior engineer.", config.personality)
        self.assertIn("Your capabilities include: code_generation, debugging", config.personality)
        self.assertTrue(config.personality.endswith("\n\n"))

    def test_list_traits_and_missing_tagline(self):
        agent = StubAgent(name='NeoChat', agent_type='neochat', tagline='',
                          personality_traits=['witty', 'adaptive'], capabilities=[])
        config = build_runtime_config(agent, self.registry)
        self.assertIn("You are NeoChat, an AI assistant.", config.personality)
        self.assertIn("witty, adaptive", config.personality)
        self.assertNotIn("capabilities include", config.personality)

    def test_overrides_merge_over_defaults(self):
        settings = AgentSettings(
            default={'temperature': 0.7, 'max_tokens': 2048, 'top_p': 0.9},
            agents={'codemaster': {'model': 'phi4', 'temperature': 0.2, 'system_prompt': 'Be terse.'}},
        )
        config = build_runtime_config(StubAgent(), self.registry, settings)
        self.assertEqual(config.model_key, 'phi4')
        self.assertEqual(config.generation_options(), {'temperature': 0.2, 'max_tokens': 2048, 'top_p': 0.9})
        self.assertTrue(config.personality.startswith("Be terse.\n\n"))

    def test_explicit_model_key_wins(self):
        settings = AgentSettings(agents={'codemaster': {'model': 'phi4'}})
        config = build_runtime_config(StubAgent(), self.registry, settings, model_key='deepseek')
        self.assertEqual(config.model_key, 'deepseek')

    def test_falls_back_to_agent_default_model(self):
        config = build_runtime_config(StubAgent(agent_type='cinegen'), self.registry, AgentSettings())
        self.assertEqual(config.model_key, 'gpt_oss')

    def test_unregistered_model_fails_at_construction(self):
        settings = AgentSettings(agents={'codemaster': {'model': 'gpt5'}})
        with self.assertRaises(ConfigurationError):
            build_runtime_config(StubAgent(), self.registry, settings)

    def test_config_is_immutable(self):
        config = build_runtime_config(StubAgent(), self.registry)
        with self.assertRaises(Exception):
            config.personality = "changed"
        with self.assertRaises(TypeError):
            config.generation_overrides['temperature'] = 2.0


class AgentEngineTest(SimpleTestCase):
    def setUp(self):
        self.registry = make_registry()
        self.client = MagicMock(spec=InferenceClient)
        self.client.registry = self.registry
        self.memory_store = MagicMock()
        self.sleep = MagicMock()

    def make_engine(self, agent=None, **kwargs):
        kwargs.setdefault('memory_store', self.memory_store)
        kwargs.setdefault('sleep', self.sleep)
        return AgentEngine(agent or StubAgent(), self.client, **kwargs)

    def ok(self, text, model='deepseek'):
        return GenerationResult(success=True, model=model, text=text, processing_time_ms=12, tokens_used=30)

    def test_end_to_end_code_request(self):
        user_input = "Can you help with code generation for a sorting helper?"
        model_key = select_model("code", len(user_input))
        self.assertEqual(model_key, 'deepseek')
        self.client.generate.return_value = self.ok("  CodeMaster: Use sorted() with a key function.  ")

        engine = self.make_engine(model_key=model_key)
        reply = engine.process_request(user_input)

        model_used, sent_prompt, options = self.client.generate.call_args[0]
        self.assertEqual(model_used, 'deepseek')
        self.assertTrue(sent_prompt.startswith(engine.personality))
        self.assertTrue(sent_prompt.endswith(f"User: {user_input}\nCodeMaster:"))
        self.assertEqual(options['max_tokens'], 2048)

        self.assertTrue(reply.success)
        self.assertEqual(reply.response, "Use sorted() with a key function.")
        self.assertNotIn("You are CodeMaster", reply.response)
        self.assertEqual(reply.model_used, 'deepseek')
        self.assertEqual(reply.agent_id, '42')
        self.assertEqual(reply.tokens_used, 30)
        self.assertIn('code_generation', reply.metadata['capabilities_used'])
        self.assertNotIn('architecture_design', reply.metadata['capabilities_used'])
        self.assertTrue(reply.metadata['personality_applied'])
        self.assertEqual(reply.metadata['context_length'], len(sent_prompt))

    def test_history_and_additional_context(self):
        self.client.generate.return_value = self.ok("fine")
        history = [{'role': 'User', 'content': f"m{i}"} for i in range(5)]

        self.make_engine().process_request(
            {'message': 'next'},
            {'conversation_history': history, 'additional_context': 'Python 3.12'}
        )

        prompt = self.client.generate.call_args[0][1]
        self.assertIn("Previous conversation:\nUser: m2\nUser: m3\nUser: m4\n\n", prompt)
        self.assertNotIn("m1", prompt)
        self.assertIn("Additional context: Python 3.12\n\n", prompt)
        self.assertIn("User: next\n", prompt)

    def test_failure_returns_apology_not_transport_error(self):
        self.client.generate.return_value = GenerationResult.failure('phi4', 'HTTP 502: bad gateway')
        engine = self.make_engine()

        reply = engine.process_request("debug this")

        self.assertFalse(reply.success)
        self.assertIn("I apologize", reply.response)
        self.assertIn("As CodeMaster", reply.response)
        self.assertNotIn("502", reply.response)
        self.assertEqual(reply.error, 'HTTP 502: bad gateway')
        self.assertEqual(reply.to_dict()['error'], 'HTTP 502: bad gateway')
        self.assertEqual(len(engine.conversation_history()), 0)
        self.memory_store.store_memory.assert_not_called()

    def test_style_errors_degrade_to_failure_reply(self):
        style = MagicMock()
        style.apply.side_effect = RuntimeError("style broke")
        self.client.generate.return_value = self.ok("text")

        reply = self.make_engine(style=style).process_request("hi")

        self.assertFalse(reply.success)
        self.assertEqual(reply.error, "style broke")

    def test_style_strategy_rewrites_response(self):
        self.client.generate.return_value = self.ok(
            "We will make a video about the ocean with slow sweeping drone shots."
        )
        engine = self.make_engine(StubAgent(name='CineGen', agent_type='cinegen'), style=CINEMATIC_STYLE)

        reply = engine.process_request("make a video")

        self.assertTrue(reply.response.startswith('🎬 We will craft a cinematic piece'))

    def test_memory_is_bounded_to_ten_turns(self):
        engine = self.make_engine()
        for i in range(15):
            self.client.generate.return_value = self.ok(f"answer {i}")
            engine.process_request(f"question {i}")

        turns = engine.conversation_history()
        self.assertEqual(len(turns), 10)
        self.assertEqual(turns[0].user_input, "question 5")
        self.assertEqual(turns[-1].agent_response, "answer 14")
        self.assertEqual(self.memory_store.store_memory.call_count, 15)

    def test_memory_persisted_with_expiry_and_importance(self):
        self.client.generate.return_value = self.ok("sure")
        engine = self.make_engine()

        engine.process_request("This is urgent", {'session_id': 'abc'})

        args, kwargs = self.memory_store.store_memory.call_args
        owner, category, name, content = args
        self.assertIs(owner, engine.agent)
        self.assertEqual(category, 'conversation')
        self.assertEqual(name, 'session_abc')
        self.assertEqual(content['user_input'], "This is urgent")
        self.assertEqual(content['agent_response'], "sure")
        self.assertEqual(kwargs['importance_score'], 3.0)
        remaining = kwargs['expires_at'] - timezone.now()
        self.assertTrue(timedelta(hours=23) < remaining <= timedelta(hours=24))

    def test_memory_store_failure_does_not_fail_request(self):
        self.memory_store.store_memory.side_effect = OperationalError("database is locked")
        self.client.generate.return_value = self.ok("still fine")

        reply = self.make_engine().process_request("hi")

        self.assertTrue(reply.success)
        self.assertEqual(reply.response, "still fine")

    def test_unknown_model_raises_at_construction(self):
        with self.assertRaises(ConfigurationError):
            self.make_engine(model_key='gpt5')

    def test_stream_chunks_final_text(self):
        text = "a" * 50 + "b" * 50 + "c" * 20
        self.client.generate.return_value = self.ok(text)
        chunks = []

        reply = self.make_engine(stream_delay=0.1).stream_response("hi", on_chunk=chunks.append)

        self.assertTrue(reply.success)
        self.assertEqual([c['chunk'] for c in chunks], ["a" * 50, "b" * 50, "c" * 20])
        self.assertEqual([c['index'] for c in chunks], [0, 1, 2])
        self.assertEqual([c['finished'] for c in chunks], [False, False, True])
        self.assertEqual(chunks[0]['agent_name'], 'CodeMaster')
        self.assertEqual(self.sleep.call_count, 2)
        self.sleep.assert_called_with(0.1)

    def test_stream_failure_sends_single_error_chunk(self):
        self.client.generate.return_value = GenerationResult.failure('phi4', 'timeout')
        chunks = []

        self.make_engine().stream_response("hi", on_chunk=chunks.append)

        self.assertEqual(chunks, [{'error': 'timeout', 'finished': True, 'agent_name': 'CodeMaster'}])

    def test_engine_runs_on_fallback_record(self):
        record = FallbackRecord.for_type('neochat', 'store down')
        self.client.generate.return_value = self.ok("hello", model='llama32')

        reply = self.make_engine(record).process_request("hi")

        self.assertTrue(reply.success)
        self.assertEqual(reply.model_used, 'llama32')
        self.assertTrue(reply.to_dict()['fallback'])

    def test_extract_user_input(self):
        self.assertEqual(extract_user_input("plain"), "plain")
        self.assertEqual(extract_user_input({'prompt': 'p'}), "p")
        self.assertEqual(extract_user_input({'text': 't'}), "t")
        self.assertEqual(extract_user_input({'message': '', 'prompt': 'p'}), "")
        self.assertEqual(extract_user_input({'message': None, 'prompt': 'p'}), "p")


class AgentEnginePersistenceTest(TestCase):
    def test_conversation_is_written_to_agent_memory(self):
        agent = Agent.objects.create(name='NeoChat', agent_type='neochat', capabilities=['natural_conversation'])
        client = MagicMock(spec=InferenceClient)
        client.registry = make_registry()
        client.generate.return_value = GenerationResult(success=True, model='llama32', text="Hi there")

        AgentEngine(agent, client).process_request("I have a problem", {'session_id': 's1'})

        memory = AgentMemory.objects.get()
        self.assertEqual(memory.agent, agent)
        self.assertEqual(memory.owner_type, 'neochat')
        self.assertEqual(memory.name, 'session_s1')
        self.assertEqual(memory.importance_score, 3.0)
        self.assertEqual(memory.content['agent_response'], "Hi there")
        self.assertFalse(memory.is_expired)

    def test_fallback_owner_memory_has_no_fk(self):
        record = FallbackRecord.for_type('neochat', 'store down')
        memory = AgentMemory.store_memory(record, 'conversation', 'session_default', {'x': 1})
        self.assertIsNone(memory.agent)
        self.assertEqual(memory.owner_id, record.id)


class FakeStore:
    """Scriptable AgentStore: ``ping_errors`` are raised one per attempt."""

    def __init__(self, ping_errors=(), active=None, any_record=None, create_error=None):
        self.ping_errors = list(ping_errors)
        self.active = active
        self.any_record = any_record
        self.create_error = create_error
        self.pings = 0
        self.created = []

    def ping(self):
        self.pings += 1
        if self.ping_errors:
            error = self.ping_errors.pop(0)
            if error is not None:
                raise error

    def find_by_type_and_status(self, agent_type, status):
        return self.active

    def find_by_type(self, agent_type):
        return self.any_record

    def create(self, agent_type, name, status):
        if self.create_error:
            raise self.create_error
        record = MagicMock(agent_type=agent_type, status=status, fallback=False)
        record.name = name
        self.created.append(record)
        return record

    def database_name(self):
        return 'fake'

    def server_info(self):
        return {'version': '1.0', 'platform': 'fake'}

    def stats(self):
        return {'vendor': 'fake'}


class AlwaysDownStore(FakeStore):
    def ping(self):
        self.pings += 1
        raise StoreUnavailable("no server available")


class RecordingBackoff(Backoff):
    """Backoff that records delays without blocking."""

    def wait(self, attempt):
        self.delays.append(self.delay_for(attempt))
        return True


class ConnectionResilienceManagerTest(SimpleTestCase):
    def test_exhausted_retries_return_fallback(self):
        store = AlwaysDownStore()
        backoff = RecordingBackoff(unit=2.0)
        manager = ConnectionResilienceManager(store, backoff_unit=2.0)

        record = manager.connect("x", retries=3, backoff=backoff)

        self.assertTrue(record.fallback)
        self.assertIsInstance(record, FallbackRecord)
        self.assertEqual(store.pings, 3)
        # Two backoffs (1u + 2u), nothing after the final attempt
        self.assertEqual(backoff.delays, [2.0, 4.0])
        self.assertEqual(backoff.total_delay, 1 * 2.0 + 2 * 2.0)
        self.assertTrue(record.id.startswith("mock_x_"))
        self.assertIn("after 3 attempts", record.reason)

    def test_auth_failure_degrades_without_sleeping(self):
        store = FakeStore(ping_errors=[StoreAuthError("bad credentials")])
        backoff = RecordingBackoff(unit=2.0)

        record = ConnectionResilienceManager(store).connect("x", retries=3, backoff=backoff)

        self.assertTrue(record.fallback)
        self.assertEqual(store.pings, 1)
        self.assertEqual(backoff.delays, [])
        self.assertIn("authentication", record.reason)

    def test_unexpected_error_degrades_immediately(self):
        store = FakeStore(ping_errors=[KeyError("boom")])
        backoff = RecordingBackoff()

        record = ConnectionResilienceManager(store).connect("x", backoff=backoff)

        self.assertTrue(record.fallback)
        self.assertIn("KeyError", record.reason)
        self.assertEqual(backoff.delays, [])

    def test_transient_failure_then_recovery(self):
        active = MagicMock(fallback=False, status='active')
        store = FakeStore(ping_errors=[StoreUnavailable("timeout"), None], active=active)
        backoff = RecordingBackoff(unit=1.0)

        record = ConnectionResilienceManager(store).connect("neochat", retries=3, backoff=backoff)

        self.assertIs(record, active)
        self.assertEqual(store.pings, 2)
        self.assertEqual(backoff.delays, [1.0])

    def test_prefers_active_then_any_record(self):
        active = MagicMock(fallback=False)
        other = MagicMock(fallback=False)
        self.assertIs(ConnectionResilienceManager(FakeStore(active=active, any_record=other)).connect("t"), active)
        self.assertIs(ConnectionResilienceManager(FakeStore(any_record=other)).connect("t"), other)

    def test_missing_record_is_created(self):
        store = FakeStore()
        record = ConnectionResilienceManager(store).connect("data_vision")
        self.assertIs(record, store.created[0])
        self.assertEqual(record.name, "Data vision")
        self.assertEqual(record.status, "active")

    def test_failed_creation_returns_fallback(self):
        store = FakeStore(create_error=StoreUnavailable("read only"))
        record = ConnectionResilienceManager(store).connect("neochat")
        self.assertTrue(record.fallback)
        self.assertIn("record creation failed", record.reason)
        self.assertEqual(store.pings, 1)

    def test_cancelled_backoff_stops_retrying(self):
        store = AlwaysDownStore()
        backoff = Backoff(unit=30.0)
        backoff.cancel()

        started = time.monotonic()
        record = ConnectionResilienceManager(store).connect("x", retries=3, backoff=backoff)

        self.assertTrue(record.fallback)
        self.assertEqual(store.pings, 1)
        self.assertLess(time.monotonic() - started, 5)

    def test_deadline_stops_retrying(self):
        store = AlwaysDownStore()
        backoff = Backoff.within(0.5, unit=30.0)

        record = ConnectionResilienceManager(store).connect("x", retries=3, backoff=backoff)

        self.assertTrue(record.fallback)
        self.assertEqual(store.pings, 1)
        self.assertEqual(backoff.delays, [])

    def test_cancel_interrupts_pending_wait(self):
        backoff = Backoff(unit=30.0)
        threading.Timer(0.05, backoff.cancel).start()

        started = time.monotonic()
        self.assertFalse(backoff.wait(1))
        self.assertLess(time.monotonic() - started, 5)

    def test_zero_unit_backoff_does_not_block(self):
        store = AlwaysDownStore()
        record = ConnectionResilienceManager(store, backoff_unit=0).connect("x", retries=3)
        self.assertTrue(record.fallback)
        self.assertEqual(store.pings, 3)

    def test_connect_all_reports_ratio(self):
        manager = ConnectionResilienceManager(FakeStore())
        with patch.object(manager, 'connect', side_effect=[
            MagicMock(fallback=False),
            FallbackRecord.for_type('b', 'down'),
            MagicMock(fallback=False),
        ]):
            summary = manager.connect_all(['a', 'b', 'c'])

        self.assertEqual(summary['connected'], 2)
        self.assertEqual(summary['total'], 3)
        self.assertTrue(summary['results']['b'].fallback)

    def test_health_check(self):
        health = ConnectionResilienceManager(FakeStore()).health_check()
        self.assertTrue(health.ok)
        self.assertEqual(health.to_dict()['database'], 'fake')

        health = ConnectionResilienceManager(AlwaysDownStore()).health_check()
        self.assertEqual(health.status, 'error')
        self.assertEqual(health.suggestion, TROUBLESHOOTING_TIPS)
        self.assertIn('no server available', health.to_dict()['error'])

    def test_connection_stats_never_raises(self):
        store = FakeStore()
        store.stats = MagicMock(side_effect=RuntimeError("introspection failed"))
        self.assertEqual(
            ConnectionResilienceManager(store).connection_stats(),
            {'error': 'introspection failed'}
        )

    def test_fallback_record_serializes(self):
        data = FallbackRecord.for_type('neochat', 'down').to_dict()
        self.assertTrue(data['fallback'])
        self.assertEqual(data['name'], 'Neochat')
        self.assertEqual(data['reason'], 'down')


class DjangoAgentStoreTest(TestCase):
    def setUp(self):
        self.manager = ConnectionResilienceManager(DjangoAgentStore(), backoff_unit=0)

    def test_connect_prefers_active_agent(self):
        Agent.objects.create(name='Old', agent_type='neochat', status=Agent.Status.INACTIVE)
        active = Agent.objects.create(name='NeoChat', agent_type='neochat')

        record = self.manager.connect('neochat')

        self.assertEqual(record, active)
        self.assertFalse(record.fallback)

    def test_connect_creates_missing_agent(self):
        record = self.manager.connect('infoseek')

        self.assertIsInstance(record, Agent)
        self.assertEqual(record.name, 'Infoseek')
        self.assertEqual(Agent.objects.filter(agent_type='infoseek', status='active').count(), 1)

    def test_database_outage_degrades(self):
        with patch.object(DjangoAgentStore, 'ping', side_effect=StoreUnavailable("could not connect")):
            record = self.manager.connect('neochat')
        self.assertTrue(record.fallback)

    def test_health_and_stats(self):
        health = self.manager.health_check()
        self.assertTrue(health.ok)
        self.assertEqual(health.server_info['platform'], 'sqlite')

        stats = self.manager.connection_stats()
        self.assertEqual(stats['vendor'], 'sqlite')
        self.assertIn('default', stats['aliases'])

    def test_error_classification(self):
        self.assertIsInstance(
            classify_database_error(OperationalError('FATAL: password authentication failed for user "app"')),
            StoreAuthError
        )
        self.assertIsInstance(
            classify_database_error(OperationalError('could not connect to server: Connection refused')),
            StoreUnavailable
        )
        with self.assertRaises(StoreUnavailable):
            with translate_errors():
                raise OperationalError('server closed the connection unexpectedly')

    def test_schema_errors_are_not_retried(self):
        schema_error = OperationalError('no such table: agents_agent')
        self.assertIs(classify_database_error(schema_error), schema_error)
        with self.assertRaises(OperationalError):
            with translate_errors():
                raise schema_error

        with patch.object(DjangoAgentStore, 'find_by_type_and_status', side_effect=schema_error), \
                patch('agents.connector.Backoff.wait') as mock_wait:
            record = self.manager.connect('neochat', retries=3)

        self.assertTrue(record.fallback)
        self.assertIn('OperationalError', record.reason)
        mock_wait.assert_not_called()


class AgentViewsTest(TestCase):
    def setUp(self):
        call_command('seed_agents', stdout=StringIO())

    @patch('agents.clients.inference_client.InferenceClient.generate')
    def test_chat_endpoint(self, mock_generate):
        mock_generate.return_value = GenerationResult(
            success=True, model='llama32', text="Hello! How can I help?", processing_time_ms=5, tokens_used=9
        )

        response = self.client.post(
            reverse('agent_chat', args=['neochat']),
            data=json.dumps({'message': 'hi', 'session_id': 'web-1'}),
            content_type='application/json'
        )

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body['success'])
        self.assertEqual(body['response'], "Hello! How can I help?")
        self.assertEqual(body['agent_name'], 'NeoChat')
        self.assertEqual(body['model_used'], 'llama32')
        self.assertFalse(body['fallback'])
        self.assertEqual(AgentMemory.objects.filter(name='session_web-1').count(), 1)

    def test_chat_requires_message(self):
        response = self.client.post(
            reverse('agent_chat', args=['neochat']),
            data=json.dumps({}),
            content_type='application/json'
        )
        self.assertEqual(response.status_code, 400)

    @patch('requests.get')
    def test_ai_status_endpoint(self, mock_get):
        mock_get.side_effect = requests.exceptions.ConnectionError("refused")

        response = self.client.get(reverse('ai_status'))

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertFalse(body['ok'])
        self.assertEqual(body['gateway'], 'offline')
        self.assertEqual(body['models']['phi4']['status'], 'offline')

    def test_health_endpoint(self):
        response = self.client.get(reverse('agents_health'))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['database']['status'], 'connected')


class MaintenanceTest(TestCase):
    def setUp(self):
        now = timezone.now()
        AgentMemory.objects.create(owner_type='neochat', owner_id='1', category='conversation',
                                   name='old', expires_at=now - timedelta(hours=1))
        AgentMemory.objects.create(owner_type='neochat', owner_id='1', category='conversation',
                                   name='fresh', expires_at=now + timedelta(hours=1))

    def test_cleanup_task_removes_expired(self):
        from .tasks import agent_memory_cleanup_task

        result = agent_memory_cleanup_task.func()

        self.assertEqual(result['expired'], 1)
        self.assertEqual(list(AgentMemory.objects.values_list('name', flat=True)), ['fresh'])

    def test_live_memories_exclude_expired(self):
        AgentMemory.objects.create(owner_type='neochat', owner_id='1', category='preference', name='undated')
        self.assertEqual(
            sorted(AgentMemory.objects.live().values_list('name', flat=True)),
            ['fresh', 'undated']
        )

    def test_prune_command_dry_run(self):
        out = StringIO()
        call_command('prune_agent_memory', '--dry-run', stdout=out)
        self.assertIn('Would delete 1 expired memories', out.getvalue())
        self.assertEqual(AgentMemory.objects.count(), 2)

    def test_prune_command(self):
        call_command('prune_agent_memory', stdout=StringIO())
        self.assertEqual(AgentMemory.objects.count(), 1)

    def test_seed_agents_is_idempotent(self):
        call_command('seed_agents', stdout=StringIO())
        first = Agent.objects.count()
        call_command('seed_agents', stdout=StringIO())
        self.assertEqual(Agent.objects.count(), first)
        self.assertTrue(Agent.objects.filter(agent_type='codemaster', status='active').exists())
