"""Fill in missing company domains on aggregated signals."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Protocol

from pydantic import BaseModel, Field

from app.clients.completion import CompletionError, StructuredCompletionProvider
from app.models.signal import AggregatedSignal
from pipelines.sources.base import normalize_domain

logger = logging.getLogger("pipelines.signals.enrichment")

MAX_COMPANIES_PER_REQUEST = 20
UNKNOWN_DOMAIN = "unknown"


class DomainResolver(Protocol):
    async def resolve(self, company_names: Sequence[str]) -> Mapping[str, str]:
        """Map lower-cased company names to domains; omit names that cannot be resolved."""
        ...


class DomainGuess(BaseModel):
    company: str
    domain: str


class DomainGuesses(BaseModel):
    companies: list[DomainGuess] = Field(default_factory=list)


def build_domain_prompt(company_names: Sequence[str]) -> str:
    numbered = "\n".join(f"{index}. {name}" for index, name in enumerate(company_names, start=1))
    return (
        "For each company name, provide the most likely company website domain "
        "(just the domain, no https://). If you're not confident, respond with \"unknown\".\n\n"
        f"Companies:\n{numbered}"
    )


class CompletionDomainResolver:
    """Asks a structured-completion provider to guess company domains."""

    def __init__(self, provider: StructuredCompletionProvider, *, temperature: float = 0.0) -> None:
        self._provider = provider
        self._temperature = temperature

    async def resolve(self, company_names: Sequence[str]) -> Mapping[str, str]:
        names = list(company_names)[:MAX_COMPANIES_PER_REQUEST]
        if not names:
            return {}
        guesses = await self._provider.complete_structured(
            [{"role": "user", "content": build_domain_prompt(names)}],
            DomainGuesses,
            {"temperature": self._temperature},
        )
        resolved: dict[str, str] = {}
        for guess in guesses.companies:
            domain = guess.domain.strip().lower()
            if not domain or domain == UNKNOWN_DOMAIN:
                continue
            resolved[guess.company.strip().lower()] = normalize_domain(domain)
        return resolved


async def enrich_with_domains(
    signals: Sequence[AggregatedSignal],
    resolver: DomainResolver | None,
) -> list[AggregatedSignal]:
    """Return the signals with empty domains filled where the resolver knows them.

    Resolver failures are logged and leave the signals unchanged.
    """
    if resolver is None:
        return list(signals)
    missing = list(dict.fromkeys(signal.company_name for signal in signals if not signal.domain))
    if not missing:
        return list(signals)
    try:
        resolved = await resolver.resolve(missing)
    except (CompletionError, ValueError) as exc:
        code = getattr(exc, "code", type(exc).__name__)
        logger.warning("enrichment.failed", extra={"code": code, "companies": len(missing)})
        return list(signals)
    enriched = [
        signal.with_domain(resolved[signal.company_name.lower()])
        if not signal.domain and signal.company_name.lower() in resolved
        else signal
        for signal in signals
    ]
    logger.info("enrichment.completed", extra={"requested": len(missing), "resolved": len(resolved)})
    return enriched
