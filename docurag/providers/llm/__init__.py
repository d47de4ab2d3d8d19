"""LLM provider implementations (OpenAI-compatible hosts and Ollama)."""

from docurag.providers.llm.ollama_provider import OllamaLLMProvider
from docurag.providers.llm.openai_provider import OpenAILLMProvider

__all__ = ["OllamaLLMProvider", "OpenAILLMProvider"]
