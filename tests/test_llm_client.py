import os
from unittest.mock import patch

import pytest

from msgnet.utils.llm_client import LOCAL_PLACEHOLDER_KEY, create_openai_client


@pytest.fixture
def mock_openai():
    with patch("msgnet.utils.llm_client.OpenAI") as mock:
        yield mock


def test_create_client_defaults(mock_openai):
    # Ensure no env vars interfere
    with patch.dict(os.environ, {}, clear=True):
        create_openai_client()
        mock_openai.assert_called_once()
        call_kwargs = mock_openai.call_args.kwargs
        assert call_kwargs["api_key"] == LOCAL_PLACEHOLDER_KEY
        assert call_kwargs.get("base_url") is None
        assert call_kwargs.get("max_retries") == 0


def test_create_client_explicit_args(mock_openai):
    create_openai_client(
        api_key="sk-explicit",
        base_url="http://localhost:11434/v1",
        timeout=30.0,
        max_retries=3,
    )

    mock_openai.assert_called_once()
    call_kwargs = mock_openai.call_args.kwargs
    assert call_kwargs["api_key"] == "sk-explicit"
    assert call_kwargs["base_url"] == "http://localhost:11434/v1"
    assert call_kwargs["timeout"] == 30.0
    assert call_kwargs["max_retries"] == 3


def test_create_client_env_vars(mock_openai):
    env = {"OPENAI_API_KEY": "sk-env", "OPENAI_BASE_URL": "https://env.example"}
    with patch.dict(os.environ, env):
        create_openai_client()

        call_kwargs = mock_openai.call_args.kwargs
        assert call_kwargs["api_key"] == "sk-env"
        assert call_kwargs["base_url"] == "https://env.example"


def test_create_client_args_override_env(mock_openai):
    env = {"OPENAI_API_KEY": "sk-env", "OPENAI_BASE_URL": "https://env.example"}
    with patch.dict(os.environ, env):
        create_openai_client(api_key="sk-arg", base_url="http://arg.example/v1")

        call_kwargs = mock_openai.call_args.kwargs
        assert call_kwargs["api_key"] == "sk-arg"
        assert call_kwargs["base_url"] == "http://arg.example/v1"


def test_create_client_passes_kwargs(mock_openai):
    create_openai_client(default_headers={"X-Test": "1"})

    assert mock_openai.call_args.kwargs["default_headers"] == {"X-Test": "1"}
