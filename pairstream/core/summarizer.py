"""BatchSummarizer: compress conversation history into a structured summary."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace

from ..types import (
    Message,
    PairstreamConfig,
    ProviderCredentials,
    SummarizationConfig,
)
from .models import ProviderRegistry, ResolvedModel
from .normalizer import extract_current_context, normalize_messages, summary_view
from .summary_cache import SummaryCache, conversation_hash
from .usage_tracker import UsageTracker

logger = logging.getLogger(__name__)

SUMMARY_SYSTEM_PROMPT = """\
You are a software engineer working on a project. Summarize the work and the chat so far.

Use only the following format for the summary:
---
# Project Overview
- **Project**: {project_name} - {brief_description}
- **Current Phase**: {phase}
- **Tech Stack**: {languages}, {frameworks}, {key_dependencies}
- **Environment**: {critical_env_details}

# Conversation Context
- **Last Topic**: {main_discussion_point}
- **Key Decisions**: {important_decisions_made}
- **User Context**:
  - Technical Level: {expertise_level}
  - Preferences: {coding_style_preferences}
  - Communication: {preferred_explanation_style}

# Implementation Status
## Current State
- **Active Feature**: {feature_in_development}
- **Progress**: {what_works_and_what_doesn't}
- **Blockers**: {current_challenges}

## Code Evolution
- **Recent Changes**: {latest_modifications}
- **Working Patterns**: {successful_approaches}
- **Failed Approaches**: {attempted_solutions_that_failed}

# Requirements
- **Implemented**: {completed_features}
- **In Progress**: {current_focus}
- **Pending**: {upcoming_features}
- **Technical Constraints**: {critical_constraints}

# Critical Memory
- **Must Preserve**: {crucial_technical_context}
- **User Requirements**: {specific_user_needs}
- **Known Issues**: {documented_problems}

# Next Actions
- **Immediate**: {next_steps}
- **Open Questions**: {unresolved_issues}
---
Keep entries concise and focused on the information needed for continuity."""

SEED_PREFIX = (
    "Below is the Chat Summary till now, this is chat summary before the conversation "
    "provided by the user\nyou should also use this as historical message while providing "
    "the response to the user.\n"
)

MERGE_SYSTEM_PROMPT = (
    "You are a software engineer tasked with merging multiple summaries into a single "
    "coherent summary."
)


def batch_prompt(seed: str, batch: list[Message]) -> str:
    chats = "\n".join(f"---\n[{m.role}] {summary_view(m)}\n---" for m in batch)
    return (
        "Here is the previous summary of the chat:\n"
        f"<old_summary>\n{seed}\n</old_summary>\n\n"
        "Below is the chat after that:\n---\n"
        f"<new_chats>\n{chats}\n</new_chats>\n---\n\n"
        "Please provide a summary of the chat till now including the historical "
        "summary of the chat."
    )


def merge_prompt(summaries: list[str]) -> str:
    return "Merge these summaries into a single summary:\n\n" + "\n\n".join(summaries)


def split_batches(messages: list[Message], batch_size: int) -> list[list[Message]]:
    return [messages[i:i + batch_size] for i in range(0, len(messages), batch_size)]


class BatchSummarizer:
    """Summarize a conversation in fixed-size batches, merging when needed.

    Results are cached per cache key and invalidated by any change to the
    conversation; a cached summary costs no backend calls.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        cache: SummaryCache,
        config: SummarizationConfig | None = None,
        defaults: PairstreamConfig | None = None,
    ) -> None:
        self.registry = registry
        self.cache = cache
        self.config = config or SummarizationConfig()
        defaults = defaults or registry.config
        self.default_model = defaults.default_model
        self.default_provider = defaults.default_provider

    async def summarize(
        self,
        messages: list[Message],
        cache_key: str,
        usage: UsageTracker,
        credentials: ProviderCredentials | None = None,
    ) -> str:
        source_hash = conversation_hash(messages)

        async def regenerate() -> str:
            return await self._generate(messages, usage, credentials)

        summary_text, cached = await self.cache.get_or_create(cache_key, source_hash, regenerate)
        if cached:
            logger.info("Using cached summary for %s", cache_key)
        return summary_text

    async def _generate(
        self,
        messages: list[Message],
        usage: UsageTracker,
        credentials: ProviderCredentials | None,
    ) -> str:
        normalized = normalize_messages(messages, self.default_model, self.default_provider)
        resolved = await self.registry.resolve(normalized.model, normalized.provider, credentials)

        condensed = [
            replace(m, content=summary_view(m)) if m.role == "assistant" else m
            for m in normalized.messages
        ]

        seed = ""
        remaining = condensed
        prior, _ = extract_current_context(condensed)
        if prior is not None:
            seed = SEED_PREFIX + prior.summary
            if prior.chat_id:
                index = next(
                    (i for i, m in enumerate(condensed) if m.id == prior.chat_id), None,
                )
                if index is not None:
                    remaining = condensed[index + 1:]

        if not remaining:
            logger.info("Nothing new to summarize; reusing prior summary")
            return prior.summary if prior is not None else ""

        batches = split_batches(remaining, self.config.batch_size)
        logger.info(
            "Summarizing %d messages in %d batch(es) with %s/%s",
            len(remaining), len(batches), resolved.provider, resolved.model.name,
        )

        semaphore = asyncio.Semaphore(self.config.max_concurrent_batches)

        async def run_batch(batch: list[Message]) -> str:
            async with semaphore:
                result = await resolved.backend.generate(
                    [{"role": "user", "content": batch_prompt(seed, batch)}],
                    SUMMARY_SYSTEM_PROMPT,
                    resolved.model.name,
                    self.config.max_tokens,
                )
            usage.add(result.usage, "summary")
            return result.text

        batch_summaries = await asyncio.gather(*(run_batch(b) for b in batches))

        if len(batch_summaries) == 1:
            return batch_summaries[0]
        return await self._merge(list(batch_summaries), resolved, usage)

    async def _merge(
        self, summaries: list[str], resolved: ResolvedModel, usage: UsageTracker,
    ) -> str:
        result = await resolved.backend.generate(
            [{"role": "user", "content": merge_prompt(summaries)}],
            MERGE_SYSTEM_PROMPT,
            resolved.model.name,
            self.config.max_tokens,
        )
        usage.add(result.usage, "merge")
        return result.text
