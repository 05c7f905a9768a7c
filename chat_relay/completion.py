import logging

import requests

logger = logging.getLogger(__name__)


class CompletionClient:
    """Blocking client for an OpenAI-style text completion endpoint.

    ``complete`` returns the reply text. Transport and HTTP failures surface as
    ``requests.RequestException``, malformed bodies as ``ValueError``. Callers
    on the event loop should run it in an executor.
    """

    def __init__(self, api_key, url, model, max_tokens=150, timeout=None, session=None):
        self.api_key = api_key
        self.url = url
        self.model = model
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings):
        return cls(
            api_key=settings.api_key,
            url=settings.completion_url,
            model=settings.completion_model,
            max_tokens=settings.completion_max_tokens,
            timeout=settings.completion_timeout,
        )

    def complete(self, prompt: str) -> str:
        headers = {"Authorization": f"Bearer {self.api_key}"}
        body = {"model": self.model, "prompt": prompt, "max_tokens": self.max_tokens}
        response = self.session.post(self.url, json=body, headers=headers, timeout=self.timeout)
        response.raise_for_status()
        data = response.json()

        try:
            text = data["choices"][0]["text"]
        except (KeyError, IndexError, TypeError):
            raise ValueError(f"Unexpected completion response: {data!r}")
        if not isinstance(text, str):
            raise ValueError(f"Completion text is not a string: {text!r}")
        logger.debug("Completion returned %d characters", len(text))
        return text.strip()

    def close(self):
        self.session.close()
