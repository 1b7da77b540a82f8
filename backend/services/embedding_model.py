"""Embedding collaborator backed by the Hugging Face Inference API."""
import time
import logging
from typing import List, Optional

import httpx

from config import HUGGINGFACE_API_KEY, EMBEDDING_MODEL
from errors import CollaboratorError

logger = logging.getLogger(__name__)

MAX_BACKOFF_SECONDS = 60.0


class EmbeddingModel:
    """Turns texts into vectors, one vector per input text in the same order."""

    def __init__(
        self,
        api_key: Optional[str] = HUGGINGFACE_API_KEY,
        model_name: str = EMBEDDING_MODEL,
        max_retries: int = 5,
        initial_delay: float = 5.0,
        timeout: float = 120.0
    ):
        """
        Initialize the embedding model client.

        Args:
            api_key: Hugging Face API key
            model_name: Model identifier
            max_retries: Maximum number of attempts for 503s, timeouts and network errors
            initial_delay: Initial delay in seconds for exponential backoff
            timeout: Request timeout in seconds
        """
        if not api_key:
            raise ValueError("HUGGINGFACE_API_KEY environment variable is required")

        self.api_key = api_key
        self.model_name = model_name
        self.max_retries = max_retries
        self.initial_delay = initial_delay
        self.timeout = timeout
        self.api_url = f"https://api-inference.huggingface.co/pipeline/feature-extraction/{model_name}"

        logger.info(f"Initialized EmbeddingModel with model: {model_name}")

    def embed(self, texts: List[str]) -> List[List[float]]:
        """Embed texts, returning vectors in input order."""
        return self.embed_batch(texts)

    def embed_text(self, text: str) -> List[float]:
        """
        Generate embedding for a single text string.

        Raises:
            ValueError: If text is empty
            CollaboratorError: If API request fails after all retries
        """
        if not text or not text.strip():
            raise ValueError("Text cannot be empty")

        return self._embed_with_retry([text])[0]

    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for multiple texts in a single API call.

        Empty strings are rejected rather than filtered so the output stays
        aligned with the input.

        Raises:
            ValueError: If texts list is empty or contains empty strings
            CollaboratorError: If API request fails after all retries
        """
        if not texts:
            raise ValueError("Texts list cannot be empty")

        empty = [i for i, t in enumerate(texts) if not t or not t.strip()]
        if empty:
            raise ValueError(f"Texts at positions {empty} are empty")

        embeddings = self._embed_with_retry(list(texts))
        if len(embeddings) != len(texts):
            raise CollaboratorError(
                "embedding",
                f"Expected {len(texts)} embeddings, received {len(embeddings)}"
            )
        return embeddings

    def _embed_with_retry(self, texts: List[str]) -> List[List[float]]:
        """
        Call the inference API with exponential backoff.

        Sleeping models answer 503 while they load; those, timeouts and
        network errors are retried. 401/429/other statuses fail immediately.
        """
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }
        payload = {
            "inputs": texts,
            "options": {"wait_for_model": True}
        }

        delay = self.initial_delay
        last_error = None

        for attempt in range(self.max_retries):
            try:
                start_time = time.time()
                with httpx.Client(timeout=self.timeout) as client:
                    response = client.post(self.api_url, headers=headers, json=payload)
                elapsed = time.time() - start_time
            except httpx.TimeoutException:
                last_error = f"Request timeout after {self.timeout}s"
                logger.warning(f"{last_error} on attempt {attempt + 1}/{self.max_retries}")
            except httpx.RequestError as e:
                last_error = f"Network error: {str(e)}"
                logger.warning(f"{last_error} on attempt {attempt + 1}/{self.max_retries}")
            else:
                if response.status_code == 200:
                    logger.debug(f"Generated embeddings for {len(texts)} texts in {elapsed:.2f}s")
                    return response.json()

                if response.status_code == 401:
                    raise CollaboratorError("embedding", "Invalid API key")
                if response.status_code == 429:
                    raise CollaboratorError("embedding", "Rate limit exceeded. Please try again later.")
                if response.status_code != 503:
                    raise CollaboratorError(
                        "embedding",
                        f"API request failed with status {response.status_code}: {response.text}"
                    )

                last_error = "Model is loading (503)"
                logger.warning(
                    f"Model loading (503) on attempt {attempt + 1}/{self.max_retries}. "
                    f"Retrying in {delay}s..."
                )

            if attempt < self.max_retries - 1:
                time.sleep(delay)
                delay = min(delay * 2, MAX_BACKOFF_SECONDS)

        error_msg = f"Failed to generate embeddings after {self.max_retries} attempts. Last error: {last_error}"
        logger.error(error_msg, extra={"stage": "embedding"})
        raise CollaboratorError("embedding", error_msg)

    def warmup(self) -> bool:
        """
        Embed a dummy text so the hosted model is loaded before real traffic.

        Returns:
            True if warmup successful, False otherwise
        """
        try:
            logger.info("Warming up embedding model...")
            start_time = time.time()
            self.embed_text("warmup query")
            logger.info(f"Model warmup completed in {time.time() - start_time:.1f}s")
            return True
        except CollaboratorError as e:
            logger.error(f"Model warmup failed: {e}")
            return False
