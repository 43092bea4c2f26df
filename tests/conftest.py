import json
from types import SimpleNamespace

import pytest

from app import create_app


def completion(content, usage=None):
    """Shape-compatible stand-in for an OpenAI ChatCompletion."""
    message = SimpleNamespace(content=content)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)], usage=usage)


class FakeCompletions:
    """Replays queued outputs in order and records every create() call.

    Queue entries are strings (returned as completion content), dicts
    (JSON-encoded first) or exceptions (raised).
    """

    def __init__(self, outputs):
        self.outputs = list(outputs)
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if not self.outputs:
            raise AssertionError("unexpected completion call")
        out = self.outputs.pop(0)
        if isinstance(out, BaseException):
            raise out
        if isinstance(out, dict):
            out = json.dumps(out, ensure_ascii=False)
        usage = {'prompt_tokens': 10, 'completion_tokens': 5, 'total_tokens': 15}
        return completion(out, usage=usage)


class FakeOpenAI:
    def __init__(self, *outputs):
        self.completions = FakeCompletions(outputs)
        self.chat = SimpleNamespace(completions=self.completions)

    @property
    def calls(self):
        return self.completions.calls


@pytest.fixture
def make_client():
    return FakeOpenAI


@pytest.fixture
def make_app():
    def _make(client, **overrides):
        flask_app = create_app({'TESTING': True, 'OPENAI_MODEL': 'test-model', **overrides}, client=client)
        return flask_app.test_client()
    return _make


@pytest.fixture
def hola_grading():
    return {
        'hasErrors': True,
        'corrected': 'Hola, ¿cómo estás?',
        'mistakes': [{
            'type': 'spelling',
            'original': 'Ola',
            'correction': 'Hola',
            'explanation': "Hola needs an 'H' at the beginning",
        }],
        'grade': 'B+',
        'score': 85,
        'feedback': 'Great attempt! Just one small spelling mistake.',
        'improvements': ["Remember to include 'H' in Hola"],
    }
