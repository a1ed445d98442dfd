"""Generator registry: strategy name -> row generator class."""

from typing import Any

from seedsmith.generators.ai_generator import OpenAIRowGenerator
from seedsmith.generators.faker_generator import FakerRowGenerator


class GeneratorRegistry:
    """Registry for row generator strategies."""

    def __init__(self, builtins: dict[str, type] | None = None):
        self._builtins: dict[str, type] = dict(builtins or {})
        self._generators: dict[str, type] = {}

    def register(self, name: str, generator_class: type) -> None:
        """
        Register a custom generator.

        Args:
            name: Strategy name (e.g. the `ai.provider` setting)
            generator_class: Class implementing async generate(context, count)

        Raises:
            ValueError: If the class does not implement generate
        """
        if not callable(getattr(generator_class, "generate", None)):
            raise ValueError(
                f"{generator_class.__name__} cannot be registered as '{name}': "
                f"row generators must implement generate(context, count)."
            )
        self._generators[name] = generator_class

    def get(self, name: str) -> type | None:
        """
        Look up the class registered under name.

        Custom registrations shadow built-ins of the same name.

        Returns:
            The generator class, or None for unknown names
        """
        return self._generators.get(name) or self._builtins.get(name)

    def list_generators(self) -> list[str]:
        """List all registered strategy names (built-ins first)."""
        names = list(self._builtins)
        names.extend(n for n in self._generators if n not in self._builtins)
        return names

    def clear(self) -> None:
        """Clear custom generators (for testing); built-ins stay available."""
        self._generators.clear()


_registry = GeneratorRegistry(
    builtins={"openai": OpenAIRowGenerator, "faker": FakerRowGenerator}
)


def register_generator(name: str, generator_class: type) -> None:
    """
    Make a row generator available under name (e.g. for `ai.provider`).

    Example:
        >>> from seedsmith import RowGenerator, register_generator
        >>>
        >>> class FixtureGenerator(RowGenerator):
        ...     async def generate(self, context, count=None):
        ...         ...
        >>>
        >>> register_generator("fixtures", FixtureGenerator)
    """
    _registry.register(name, generator_class)


def get_generator(name: str) -> type | None:
    return _registry.get(name)


def list_generators() -> list[str]:
    return _registry.list_generators()


def clear_generators() -> None:
    """Clear all custom generators (for testing)."""
    _registry.clear()


def create_generator(name: str, **kwargs: Any) -> Any:
    """
    Instantiate a registered generator.

    Args:
        name: Strategy name
        **kwargs: Constructor arguments

    Raises:
        ValueError: If no generator is registered under name
    """
    generator_class = get_generator(name)
    if generator_class is None:
        raise ValueError(
            f"Unknown generator '{name}'. "
            f"Available: {', '.join(list_generators())}. "
            f"Register custom generators with register_generator()."
        )
    return generator_class(**kwargs)
