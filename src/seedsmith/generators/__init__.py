"""Row generators: OpenAI-backed primary and Faker-backed fallback."""

from seedsmith.generators.ai_generator import OpenAIRowGenerator
from seedsmith.generators.base import RowGenerator, extract_ids
from seedsmith.generators.faker_generator import FakerRowGenerator

__all__ = ["RowGenerator", "OpenAIRowGenerator", "FakerRowGenerator", "extract_ids"]
