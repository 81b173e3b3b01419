"""Environment-backed configuration for otto.

Values are read lazily on attribute access so tests can patch the environment
after import. A `.env` file in the working directory is loaded once.
"""
from __future__ import annotations

import os

from dotenv import load_dotenv

load_dotenv()


class Config:
	"""Lazy view over the process environment."""

	@property
	def OTTO_LOGGING_LEVEL(self) -> str:
		return os.getenv('OTTO_LOGGING_LEVEL', 'info').lower()

	@property
	def OTTO_SETUP_LOGGING(self) -> bool:
		return os.getenv('OTTO_SETUP_LOGGING', 'true').lower() != 'false'

	@property
	def OLLAMA_BASE_URL(self) -> str:
		return os.getenv('OLLAMA_BASE_URL', 'http://localhost:11434').rstrip('/')

	@property
	def OTTO_LLM_MODEL(self) -> str:
		return os.getenv('OTTO_LLM_MODEL', 'qwen2.5:0.5b')

	@property
	def OTTO_LLM_TIMEOUT(self) -> float:
		try:
			return float(os.getenv('OTTO_LLM_TIMEOUT', '30'))
		except ValueError:
			return 30.0


CONFIG = Config()
