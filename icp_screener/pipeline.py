"""Screening run orchestrator: bounded worker pool over pending companies.

Per company: evidence → synthesis → scoring → flatten → persist, with the
run row written twice (research fields after synthesis with status
``scoring``, score columns after scoring with status ``complete``).
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Callable

from rich.console import Console

from icp_screener.analysis.llm_client import CompletionClient
from icp_screener.analysis.normalizer import flatten
from icp_screener.analysis.scoring import FitPolicy, score
from icp_screener.analysis.synthesis import synthesize
from icp_screener.config import Config
from icp_screener.db.repository import Store, utcnow
from icp_screener.models import Company, CompanyOutcome, RunSummary
from icp_screener.search.evidence import EvidenceAggregator
from icp_screener.search.exa_client import ExaClient

logger = logging.getLogger(__name__)
console = Console(force_terminal=True)

STEP_GATHER = "Gathering data via Exa..."
STEP_SYNTHESIZE = "Step 1b: Synthesizing research..."
STEP_SCORE = "Step 2: Scoring..."

ProgressCallback = Callable[[dict], None]


class RunState:
    """Scheduling state owned by one run: queue, in-flight set, stop flag."""

    def __init__(self, companies: list[Company]):
        self.queue: deque[Company] = deque(companies)
        self.in_flight: set[int] = set()
        self.cancelled = False
        self.peak_in_flight = 0

    def next_company(self) -> Company | None:
        """Dispatch point: nothing new starts once the run is cancelled."""
        if self.cancelled or not self.queue:
            return None
        company = self.queue.popleft()
        self.in_flight.add(company.id)  # type: ignore[arg-type]
        self.peak_in_flight = max(self.peak_in_flight, len(self.in_flight))
        return company

    def finish(self, company: Company) -> None:
        self.in_flight.discard(company.id)  # type: ignore[arg-type]


class ScreeningPipeline:
    """Screens every pending/errored company with at most N in flight."""

    def __init__(
        self,
        config: Config,
        store: Store,
        completion: CompletionClient | None = None,
        exa: ExaClient | None = None,
        progress_callback: ProgressCallback | None = None,
    ):
        self.config = config
        self.store = store
        self.completion = completion or CompletionClient.from_config(config)
        self.exa = exa or ExaClient.from_config(config)
        self.aggregator = EvidenceAggregator(self.exa)
        self.policy = FitPolicy(strong=config.fit_strong, moderate=config.fit_moderate)
        self.progress_callback = progress_callback
        self.state: RunState | None = None

    @property
    def is_running(self) -> bool:
        return self.state is not None

    def stop(self) -> None:
        """Cooperative stop: in-flight companies finish, no new one starts.

        Only affects the active run; without one this is a no-op.
        """
        if self.state is None:
            logger.debug("Stop requested with no active run")
            return
        self.state.cancelled = True
        logger.info("Stopping after %d in-flight companies", len(self.state.in_flight))

    async def run(
        self,
        domains: list[str] | None = None,
        concurrency: int | None = None,
    ) -> RunSummary:
        """Process the pending queue (optionally restricted to ``domains``)."""
        pending = self.store.list_companies(statuses=("pending", "error"))
        if domains:
            wanted = set(domains)
            pending = [c for c in pending if c.domain in wanted]

        limit = max(1, concurrency or self.config.concurrency)
        state = RunState(pending)
        self.state = state
        summary = RunSummary()

        console.print(
            f"[bold]Screening {len(pending)} companies[/bold] (concurrency: {limit})"
        )

        async def worker() -> None:
            while (company := state.next_company()) is not None:
                try:
                    summary.outcomes.append(await self._process_company_safe(company))
                finally:
                    state.finish(company)

        try:
            await asyncio.gather(*(worker() for _ in range(min(limit, len(pending)) or 1)))
        finally:
            self.state = None

        summary.cancelled = state.cancelled
        console.print(
            f"[bold green]Screening complete:[/bold green] "
            f"{summary.completed} complete, {summary.failed} errors"
            + (" (stopped)" if summary.cancelled else "")
        )
        return summary

    def _report(self, company: Company, **fields) -> None:
        if not self.progress_callback:
            return
        event = {"company_id": company.id, "domain": company.domain, "name": company.name, **fields}
        try:
            self.progress_callback(event)
        except Exception:
            logger.exception("Progress callback failed")

    def _set_step(self, company: Company, step: str) -> None:
        self.store.update_company(company.id, step=step)  # type: ignore[arg-type]
        self._report(company, status="processing", step=step)

    async def _process_company_safe(self, company: Company) -> CompanyOutcome:
        """Wrap one company so its failure never reaches the other workers."""
        run_id: int | None = None
        try:
            run_id = self.store.create_research_run(company.id)  # type: ignore[arg-type]
            return await self._process_company(company, run_id)
        except Exception as e:
            message = str(e) or type(e).__name__
            logger.error("Error screening %s: %s", company.name, message)
            console.print(f"  [red]ERROR: {company.name}: {message}[/red]")
            try:
                self.store.update_company(
                    company.id, status="error", step="", error=message,  # type: ignore[arg-type]
                )
                if run_id is not None:
                    self.store.update_research_run(run_id, status="error", error=message)
            except Exception:
                logger.exception("Could not persist error state for %s", company.domain)
            self._report(company, status="error", step="", error=message)
            return CompanyOutcome(
                company_id=company.id,  # type: ignore[arg-type]
                domain=company.domain,
                status="error",
                error=message,
            )

    async def _process_company(self, company: Company, run_id: int) -> CompanyOutcome:
        name, website = company.name, company.website
        console.print(f"[bold green]SCREENING: {name}[/bold green] ({website})")

        self.store.update_company(company.id, status="processing", step=STEP_GATHER, error=None)  # type: ignore[arg-type]
        self._report(company, status="processing", step=STEP_GATHER)
        evidence = await self.aggregator.gather(name, website)
        logger.info(
            "[%s] Evidence: %d chars, homepage %d chars, %d failed queries",
            name, len(evidence.text), len(evidence.homepage_content), len(evidence.failures),
        )

        self._set_step(company, STEP_SYNTHESIZE)
        research = await synthesize(
            self.completion, name, website, evidence.text,
            model=self.config.synthesis_model,
            max_tokens=self.config.synthesis_max_tokens,
        )
        self.store.update_research_run(
            run_id,
            status="scoring",
            research_raw=research.research_text,
            **research.fields.model_dump(),
        )

        self._set_step(company, STEP_SCORE)
        parsed = await score(
            self.completion, name, website, research.research_text,
            self.store.get_training_examples(),
            model=self.config.scoring_model,
            max_tokens=self.config.scoring_max_tokens,
        )
        result = self.policy.apply(parsed.to_result())
        self.store.update_research_run(
            run_id, status="complete", scoring_raw=parsed.raw, **flatten(result),
        )
        self.store.update_company(
            company.id, status="complete", step="", error=None, last_screened_at=utcnow(),  # type: ignore[arg-type]
        )

        console.print(
            f"  [green]COMPLETED: {name}[/green] score {result.total_score}/18, fit {result.icp_fit}"
        )
        self._report(
            company, status="complete", step="",
            total_score=result.total_score, icp_fit=result.icp_fit,
        )
        return CompanyOutcome(
            company_id=company.id,  # type: ignore[arg-type]
            domain=company.domain,
            status="complete",
            total_score=result.total_score,
            icp_fit=result.icp_fit,
        )

    async def close(self) -> None:
        await self.completion.close()
        await self.exa.close()
