from typing import Any, Iterator, Sequence

from loguru import logger

from ..core.config import Settings, settings
from .errors import MalformedOutputError
from .json_repair import repair_json
from .llm_client import CompletionClient
from .prompts import (
    STRICT_ARRAY_SUFFIX,
    STRICT_OBJECT_SUFFIX,
    build_batch_prompt,
    build_prompt,
    load_system_prompt,
)
from .schema import validate_output


def chunked(items: Sequence[str], size: int) -> Iterator[list[str]]:
    """Yield consecutive slices of at most ``size`` items, preserving order."""
    if size < 1:
        raise ValueError(f"chunk size must be at least 1, got {size}")
    for start in range(0, len(items), size):
        yield list(items[start:start + size])


def _is_invoice_pair(value: Any) -> bool:
    return isinstance(value, dict) and "invoice" in value and "line_items" in value


def _is_batch_shape(value: Any) -> bool:
    # Models sometimes collapse a one-element batch into a bare object
    return isinstance(value, list) or _is_invoice_pair(value)


class InvoiceNormalizer:
    """
    Turns parsed invoice markdown into validated ``{invoice, line_items}`` pairs.

    Each LLM reply goes through JSON repair. An unusable reply gets exactly one
    retry with a stricter instruction before the call fails. Schema
    validation happens afterwards and is never retried.
    """

    def __init__(self, client: CompletionClient, batch_size: int = 5, system_prompt: str | None = None):
        if batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {batch_size}")
        self.client = client
        self.batch_size = batch_size
        self._system_prompt = system_prompt

    @classmethod
    def from_settings(cls, cfg: Settings = settings, client: CompletionClient | None = None) -> "InvoiceNormalizer":
        return cls(
            client=client or CompletionClient.from_settings(cfg),
            batch_size=cfg.groq_batch_size,
            system_prompt=load_system_prompt(cfg.system_prompt_path),
        )

    @property
    def system_prompt(self) -> str:
        return self._system_prompt or load_system_prompt()

    def _complete_json(self, prompt: str, strict_suffix: str, accept) -> Any:
        text = self.client.complete(self.system_prompt, prompt)
        parsed = repair_json(text)
        if parsed is not None and accept(parsed):
            return parsed

        logger.warning("LLM reply was not usable JSON, retrying with strict instruction", preview=text[:200])
        retry_text = self.client.complete(self.system_prompt, prompt + strict_suffix)
        parsed = repair_json(retry_text)
        if parsed is None or not accept(parsed):
            raise MalformedOutputError("LLM returned non-JSON output", preview=retry_text[:300])
        return parsed

    def normalize(self, markdown: str) -> dict:
        """Normalize a single invoice's markdown."""
        parsed = self._complete_json(build_prompt(markdown), STRICT_OBJECT_SUFFIX, lambda v: isinstance(v, dict))
        return validate_output(parsed)

    def normalize_batch(self, markdowns: Sequence[str]) -> list[dict]:
        """
        Normalize many invoices, one completion call per chunk.

        Results are returned in input order. A malformed or invalid chunk
        raises and aborts the whole batch.
        """
        results: list[dict] = []
        for index, chunk in enumerate(chunked(markdowns, self.batch_size)):
            parsed = self._complete_json(build_batch_prompt(chunk), STRICT_ARRAY_SUFFIX, _is_batch_shape)
            items = parsed if isinstance(parsed, list) else [parsed]

            if len(items) != len(chunk):
                logger.warning(
                    "LLM returned a different number of invoices than requested",
                    chunk=index,
                    requested=len(chunk),
                    returned=len(items),
                )

            for item in items:
                results.append(validate_output(item))

            logger.info("Normalized invoice chunk", chunk=index, documents=len(chunk), invoices=len(items))
        return results
