"""ChatPipeline: summary, context selection and generation for one chat request."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

from .core.annotations import AnnotationEmitter
from .core.context_selector import BudgetContextSelector, ContextSelector, relative_path
from .core.continuation import ContinuationController, GenerationOutcome
from .core.models import ProviderRegistry, ResolvedModel
from .core.normalizer import NormalizedConversation, normalize_messages
from .core.prompts import (
    PromptLibrary,
    PromptOptions,
    apply_project_planning,
    build_system_prompt,
    discuss_prompt,
)
from .core.summarizer import BatchSummarizer
from .core.summary_cache import SummaryCache, summary_cache_key
from .core.usage_tracker import UsageTracker
from .proxy.metrics import ProxyMetrics
from .token_counter import create_token_counter
from .types import (
    AgentPersona,
    ChatRequest,
    ChatSummaryAnnotation,
    CodeContextAnnotation,
    FileMap,
    Message,
    PairstreamConfig,
    ProgressStatus,
    ProviderCredentials,
)

logger = logging.getLogger(__name__)


@dataclass
class PreparedChat:
    """Everything resolved before the first byte is streamed."""
    request: ChatRequest
    credentials: ProviderCredentials
    conversation: NormalizedConversation
    resolved: ResolvedModel
    agent: AgentPersona | None = None


class ChatPipeline:
    """Orchestrates one turn: summarize → select context → generate.

    ``prepare`` raises configuration errors (unknown provider, missing key,
    no models) so the server can answer with a status code; ``run`` reports
    everything else in-band through the emitter.
    """

    def __init__(
        self,
        config: PairstreamConfig,
        registry: ProviderRegistry | None = None,
        cache: SummaryCache | None = None,
        summarizer: BatchSummarizer | None = None,
        selector: ContextSelector | None = None,
        prompts: PromptLibrary | None = None,
        metrics: ProxyMetrics | None = None,
    ) -> None:
        self.config = config
        self.registry = registry or ProviderRegistry(config)
        self.cache = cache or SummaryCache(
            ttl_seconds=config.summarization.cache_ttl_seconds,
            max_entries=config.summarization.max_cache_entries,
        )
        self.summarizer = summarizer or BatchSummarizer(
            self.registry, self.cache, config.summarization, config,
        )
        self.selector = selector or BudgetContextSelector(
            max_context_tokens=config.context.max_context_tokens,
            recent_messages=config.context.recent_messages,
            work_dir=config.context.work_dir,
            token_counter=create_token_counter(config.token_counter),
        )
        self.prompts = prompts or PromptLibrary(
            custom=config.prompts.custom,
            default_prompt_id=config.prompts.default_prompt_id,
        )
        self.metrics = metrics or ProxyMetrics()

    def _find_agent(self, request: ChatRequest) -> AgentPersona | None:
        if request.selected_agent is not None:
            return request.selected_agent
        if request.agent_id:
            for agent in self.config.agents:
                if agent.id == request.agent_id:
                    return agent
            logger.warning("Unknown agent id %s", request.agent_id)
        return None

    async def prepare(
        self, request: ChatRequest, credentials: ProviderCredentials | None = None,
    ) -> PreparedChat:
        credentials = credentials or ProviderCredentials()
        conversation = normalize_messages(
            request.messages, self.config.default_model, self.config.default_provider,
        )
        resolved = await self.registry.resolve(conversation.model, conversation.provider, credentials)
        logger.info(
            "Chat request: %d messages, %d files, mode=%s, model=%s/%s",
            len(request.messages), len(request.files), request.chat_mode,
            resolved.provider, resolved.model.name,
        )
        self.metrics.record({
            "type": "request",
            "messages": len(request.messages),
            "files": len(request.files),
            "chat_mode": request.chat_mode,
            "provider": resolved.provider,
            "model": resolved.model.name,
        })
        return PreparedChat(
            request=request,
            credentials=credentials,
            conversation=conversation,
            resolved=resolved,
            agent=self._find_agent(request),
        )

    def cache_key(self, request: ChatRequest) -> str:
        return summary_cache_key(
            request.prompt_id, request.messages, self.config.summarization.cache_scope,
        )

    async def _summarize(
        self, prepared: PreparedChat, emitter: AnnotationEmitter, usage: UsageTracker,
    ) -> str:
        request = prepared.request
        emitter.start_phase("summary")
        started = time.monotonic()
        calls_before = usage.calls()
        summary = await self.summarizer.summarize(
            request.messages, self.cache_key(request), usage, prepared.credentials,
        )
        emitter.complete_phase("summary")
        chat_id = request.messages[-1].id if request.messages else None
        emitter.annotate(ChatSummaryAnnotation(summary=summary, chat_id=chat_id))
        self.metrics.record({
            "type": "summary",
            "cached": usage.calls() == calls_before,
            "duration_ms": round((time.monotonic() - started) * 1000, 1),
            "chars": len(summary),
        })
        return summary

    async def _select_context(
        self,
        prepared: PreparedChat,
        summary: str,
        emitter: AnnotationEmitter,
        usage: UsageTracker,
    ) -> FileMap:
        request = prepared.request
        emitter.start_phase("context")
        context_files = await self.selector.select_context(
            prepared.conversation.messages, request.files, summary, usage, prepared.credentials,
        )
        work_dir = self.config.context.work_dir
        emitter.annotate(CodeContextAnnotation(
            files=[relative_path(path, work_dir) for path in context_files],
        ))
        emitter.complete_phase("context")
        self.metrics.record({
            "type": "context",
            "selected": len(context_files),
            "available": len(request.files),
        })
        return context_files

    def build_system_prompt(
        self,
        prepared: PreparedChat,
        context_files: FileMap | None,
        summary: str | None,
    ) -> str:
        request = prepared.request
        if request.chat_mode == "discuss":
            return discuss_prompt()
        options = PromptOptions(
            cwd=self.config.context.work_dir,
            supabase=request.supabase,
            design_scheme=request.design_scheme,
        )
        base = self.prompts.get(request.prompt_id, options)
        return build_system_prompt(
            base,
            agent=prepared.agent,
            context_files=context_files if request.context_optimization else None,
            summary=summary,
            files=request.files,
            work_dir=self.config.context.work_dir,
        )

    def generation_messages(
        self,
        prepared: PreparedChat,
        context_files: FileMap | None,
        summary: str | None,
    ) -> list[Message]:
        request = prepared.request
        messages = list(prepared.conversation.messages)
        build = request.chat_mode == "build"

        if build and context_files is not None and request.context_optimization and summary:
            recent = self.config.context.recent_messages
            if len(messages) > recent:
                messages = messages[len(messages) - recent:]
            else:
                messages = messages[-1:]

        if build and self.config.prompts.project_planning and len(request.messages) < 3:
            messages = apply_project_planning(messages)
        return messages

    async def run(self, prepared: PreparedChat, emitter: AnnotationEmitter) -> GenerationOutcome:
        """Run the phases in order, writing events through *emitter*."""
        request = prepared.request
        usage = UsageTracker()
        started = time.monotonic()
        summary: str | None = None
        context_files: FileMap | None = None

        try:
            if request.files and request.context_optimization:
                summary = await self._summarize(prepared, emitter, usage)
                context_files = await self._select_context(prepared, summary, emitter, usage)

            emitter.start_phase("response")
            system = self.build_system_prompt(prepared, context_files, summary)
            messages = self.generation_messages(prepared, context_files, summary)

            controller = ContinuationController(
                emitter, usage, self.config.continuation.max_response_segments,
            )
            outcome = await controller.run(prepared.resolved, system, messages)
        except Exception as e:
            for label in ("summary", "context", "continuation", "response"):
                if emitter.phase_status(label) == ProgressStatus.IN_PROGRESS:
                    emitter.fail_phase(label)
            self.metrics.record({"type": "error", "message": str(e)})
            raise

        for segment in outcome.segments:
            self.metrics.record({
                "type": "segment",
                "index": segment.index,
                "finish_reason": segment.finish_reason,
                "completion_tokens": segment.usage.completion_tokens,
            })
        if outcome.error:
            self.metrics.record({"type": "error", "message": outcome.error})
        total = usage.total
        self.metrics.record({
            "type": "response",
            "state": outcome.state.value,
            "segments": len(outcome.segments),
            "prompt_tokens": total.prompt_tokens,
            "completion_tokens": total.completion_tokens,
            "duration_ms": round((time.monotonic() - started) * 1000, 1),
        })
        logger.info(
            "Response finished: state=%s segments=%d tokens=%d",
            outcome.state.value, len(outcome.segments), total.total_tokens,
        )
        return outcome
