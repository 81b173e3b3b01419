import logging
import time
from dataclasses import dataclass, field

import httpx

from otto.agent.boundaries import LLMCallType
from otto.config import CONFIG
from otto.exceptions import LLMException
from otto.timing import elapsed_ms

logger = logging.getLogger(__name__)


@dataclass
class ChatOllama:
	"""
	Reasoning boundary backed by a local Ollama server.

	Each call is a single non-streaming POST to ``{base_url}/api/generate``.
	Connection errors, timeouts, non-2xx responses and malformed payloads all
	surface as ``LLMException``; nothing is retried here.
	"""

	model: str = field(default_factory=lambda: CONFIG.OTTO_LLM_MODEL)
	base_url: str = field(default_factory=lambda: CONFIG.OLLAMA_BASE_URL)
	timeout: float = field(default_factory=lambda: CONFIG.OTTO_LLM_TIMEOUT)
	temperature: float | None = None
	transport: httpx.AsyncBaseTransport | None = None

	@property
	def provider(self) -> str:
		return 'ollama'

	@property
	def name(self) -> str:
		return self.model

	def _payload(self, prompt: str) -> dict:
		payload: dict = {'model': self.model, 'prompt': prompt, 'stream': False}
		if self.temperature is not None:
			payload['options'] = {'temperature': self.temperature}
		return payload

	async def ainvoke(self, prompt: str, call_type: LLMCallType = LLMCallType.ACTION_DECISION) -> str:
		url = f'{self.base_url.rstrip("/")}/api/generate'
		started = time.monotonic()
		try:
			async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
				response = await client.post(url, json=self._payload(prompt))
				response.raise_for_status()
		except httpx.TimeoutException as e:
			raise LLMException(f'Ollama timed out after {self.timeout}s on {url}: {e}') from e
		except httpx.HTTPStatusError as e:
			raise LLMException(
				f'Ollama returned HTTP {e.response.status_code}: {e.response.text}',
				status_code=e.response.status_code,
			) from e
		except httpx.HTTPError as e:
			raise LLMException(f'Could not reach Ollama at {self.base_url}: {e}') from e

		try:
			data = response.json()
		except ValueError as e:
			raise LLMException(f'Ollama returned invalid JSON: {e}') from e

		text = data.get('response') if isinstance(data, dict) else None
		if not isinstance(text, str):
			raise LLMException(f"Ollama payload has no 'response' text: {data!r}")
		logger.debug(f'Ollama {call_type.value} call to {self.model} answered in {elapsed_ms(started)}ms ({len(prompt)} prompt chars)')
		return text.strip()
