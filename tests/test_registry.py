"""Tests for the generator strategy registry."""

import pytest
from conftest import ScriptedGenerator

from seedsmith import clear_generators, list_generators, register_generator
from seedsmith.generators.ai_generator import OpenAIRowGenerator
from seedsmith.generators.faker_generator import FakerRowGenerator
from seedsmith.generators.registry import create_generator, get_generator


@pytest.fixture(autouse=True)
def clean_registry():
    clear_generators()
    yield
    clear_generators()


def test_builtins_available():
    """Test built-in strategies are always registered."""
    assert list_generators()[:2] == ["openai", "faker"]
    assert get_generator("openai") is OpenAIRowGenerator
    assert get_generator("faker") is FakerRowGenerator


def test_register_custom_generator():
    """Test registering and looking up a custom generator."""
    register_generator("scripted", ScriptedGenerator)

    assert "scripted" in list_generators()
    assert isinstance(create_generator("scripted"), ScriptedGenerator)


def test_register_requires_generate_method():
    """Test classes without generate() are rejected."""

    class NotAGenerator:
        pass

    with pytest.raises(ValueError, match="generate"):
        register_generator("bad", NotAGenerator)


def test_custom_generator_shadows_builtin():
    """Test a custom registration wins over a built-in of the same name."""
    register_generator("faker", ScriptedGenerator)

    assert get_generator("faker") is ScriptedGenerator
    assert list_generators().count("faker") == 1


def test_clear_keeps_builtins():
    """Test clearing removes only custom generators."""
    register_generator("scripted", ScriptedGenerator)

    clear_generators()

    assert get_generator("scripted") is None
    assert get_generator("faker") is FakerRowGenerator


def test_create_generator_passes_kwargs():
    """Test constructor arguments reach the generator."""
    generator = create_generator("faker", seed=11)

    assert isinstance(generator, FakerRowGenerator)


def test_create_unknown_generator():
    """Test unknown strategies raise with the available names."""
    with pytest.raises(ValueError, match="Available: openai, faker"):
        create_generator("missing")
