"""PromptLibrary and system prompt assembly for build and discuss modes."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Callable

from ..types import AgentPersona, FileMap, Message, SupabaseConnection
from .context_selector import DEFAULT_WORK_DIR, create_files_context

logger = logging.getLogger(__name__)

CONTINUE_PROMPT = (
    "Continue your prior response. IMPORTANT: Immediately begin from where you left off "
    "without any interruptions. Do not repeat any content, including artifact and action tags."
)

ALLOWED_HTML_ELEMENTS = (
    "a", "b", "blockquote", "br", "code", "dd", "del", "details", "div", "dl", "dt",
    "em", "h1", "h2", "h3", "h4", "h5", "h6", "hr", "i", "ins", "kbd", "li", "ol",
    "p", "pre", "q", "rp", "rt", "ruby", "s", "samp", "source", "span", "strike",
    "strong", "sub", "summary", "sup", "table", "tbody", "td", "tfoot", "th",
    "thead", "tr", "ul", "var", "think",
)

BUILD_PROMPT = """\
You are Bolt, an expert AI assistant and exceptional senior software developer with vast \
knowledge across multiple programming languages, frameworks, and best practices.

<system_constraints>
  You are operating in a WebContainer, an in-browser Node.js runtime. It can only run \
JavaScript and WebAssembly; there is no C/C++ compiler and no pip. Prefer Vite for web \
servers and write Node.js scripts instead of shell scripts.
</system_constraints>

<response_requirements>
  1. Use valid markdown for all responses and do NOT use HTML tags except for artifacts. \
Available HTML elements: {allowed_html}
  2. Be concise. Do not explain unless the user asks for more information.
</response_requirements>

{database_instructions}

<artifact_instructions>
  1. Create a single, comprehensive artifact per project inside <boltArtifact> tags with \
a unique kebab-case id and a title.
  2. Use <boltAction type="file" filePath="..."> for files and <boltAction type="shell"> \
for commands. File paths are relative to the current working directory: {cwd}
  3. Always provide the FULL, updated content of a file. Never use placeholders such as \
"// rest of the code remains the same".
  4. Install dependencies before running anything else and start the dev server last.
  5. Split functionality into small, focused modules.
</artifact_instructions>

{design_instructions}"""

OPTIMIZED_PROMPT = """\
You are Bolt, an expert senior software developer. Answer with minimal prose.

<constraints>
- Runtime: WebContainer (browser Node.js). No native binaries, no pip, no git.
- Working directory: {cwd}
- Markdown only; HTML limited to: {allowed_html}
</constraints>

<artifacts>
- One <boltArtifact id="kebab-id" title="..."> per response.
- <boltAction type="file" filePath="..."> with the complete file content.
- <boltAction type="shell"> for commands; <boltAction type="start"> for the dev server.
</artifacts>

{database_instructions}

{design_instructions}"""

DISCUSS_PROMPT = """\
You are a technical consultant who patiently answers questions and helps the user plan \
their next steps, without implementing any code yourself.

<rules>
  - Never write artifacts, files or shell actions; describe the changes instead.
  - Reference the user's existing files and prior decisions where they matter.
  - Ask clarifying questions when the request is ambiguous.
  - Keep answers focused and use markdown lists for multi-step plans.
</rules>

Finish with a short list of concrete next steps the user could ask you to build."""

PROJECT_PLAN_PROMPT = """\
Before writing any code for this project, create a file named PROJECT_PLAN.md at the \
root of the project inside your artifact. It must contain: the project goal, the \
technology stack, the main features as a checklist, the file structure, and the \
implementation steps in order. Then implement the first steps of the plan."""


@dataclass
class PromptOptions:
    cwd: str = DEFAULT_WORK_DIR
    supabase: SupabaseConnection | None = None
    design_scheme: dict | None = None
    allowed_html: tuple[str, ...] = ALLOWED_HTML_ELEMENTS


def _database_instructions(supabase: SupabaseConnection | None) -> str:
    lines = ["<database_instructions>", "  Use Supabase for databases by default."]
    if supabase is None or not supabase.is_connected:
        lines.append(
            "  Supabase is not connected. Remind the user to connect Supabase "
            "before any database operation."
        )
    elif not supabase.has_selected_project:
        lines.append(
            "  Supabase is connected but no project is selected. Remind the user to "
            "select a project before any database operation."
        )
    else:
        lines.append("  Supabase is connected and a project is selected.")
        if supabase.supabase_url and supabase.anon_key:
            lines.append("  Create a .env file if it does not exist with:")
            lines.append(f"    VITE_SUPABASE_URL={supabase.supabase_url}")
            lines.append(f"    VITE_SUPABASE_ANON_KEY={supabase.anon_key}")
    lines.append(
        "  Every schema change goes in a new migration file under supabase/migrations; "
        "enable row level security on new tables."
    )
    lines.append("</database_instructions>")
    return "\n".join(lines)


def _design_instructions(design_scheme: dict | None) -> str:
    lines = [
        "<design_instructions>",
        "  Build polished, production-ready interfaces with consistent spacing, "
        "accessible contrast and responsive layouts.",
    ]
    if design_scheme:
        lines.append("  Use the following design scheme:")
        for key in ("font", "palette", "features"):
            if key in design_scheme:
                lines.append(f"  {key.upper()}: {json.dumps(design_scheme[key])}")
    lines.append("</design_instructions>")
    return "\n".join(lines)


def _render(template: str, options: PromptOptions) -> str:
    return template.format(
        cwd=options.cwd,
        allowed_html=", ".join(options.allowed_html),
        database_instructions=_database_instructions(options.supabase),
        design_instructions=_design_instructions(options.design_scheme),
    )


def discuss_prompt() -> str:
    return DISCUSS_PROMPT


@dataclass
class PromptEntry:
    label: str
    description: str
    get: Callable[[PromptOptions], str]


@dataclass
class PromptLibrary:
    """Built-in system prompts plus custom ones from config.

    Custom prompt text is used verbatim; unknown ids fall back to ``default``.
    """

    custom: dict[str, str] = field(default_factory=dict)
    default_prompt_id: str = "default"

    def __post_init__(self) -> None:
        self.library: dict[str, PromptEntry] = {
            "default": PromptEntry(
                label="Default Prompt",
                description="The full default system prompt",
                get=lambda options: _render(BUILD_PROMPT, options),
            ),
            "optimized": PromptEntry(
                label="Optimized Prompt",
                description="A shorter prompt for lower token usage",
                get=lambda options: _render(OPTIMIZED_PROMPT, options),
            ),
        }

    def list_prompts(self) -> list[dict]:
        prompts = [
            {"id": key, "label": entry.label, "description": entry.description}
            for key, entry in self.library.items()
        ]
        prompts.extend(
            {"id": key, "label": key, "description": "Custom prompt"}
            for key in self.custom
        )
        return prompts

    def get(self, prompt_id: str | None, options: PromptOptions | None = None) -> str:
        options = options or PromptOptions()
        prompt_id = prompt_id or self.default_prompt_id
        entry = self.library.get(prompt_id)
        if entry is not None:
            return entry.get(options)
        if prompt_id in self.custom:
            return self.custom[prompt_id]
        logger.warning("Prompt %s not found, using default prompt", prompt_id)
        return self.library["default"].get(options)


def agent_section(agent: AgentPersona) -> str:
    return (
        "## Agent Context\n"
        f"You are acting as: {agent.name}\n"
        f"Description: {agent.description}\n\n"
        "Agent Instructions:\n"
        f"{agent.instructions}\n\n"
        "Please follow these agent-specific instructions while maintaining your core capabilities."
    )


def locked_files_section(files: FileMap) -> str:
    locked = [path for path, entry in files.items() if entry.is_locked]
    if not locked:
        return ""
    listing = "\n".join(f"- {path}" for path in locked)
    return (
        "IMPORTANT: The following files are locked and MUST NOT be modified in any way. "
        "Do not suggest or make changes to these files. You may proceed with the request "
        "but DO NOT make any edits to these files specifically:\n"
        f"{listing}\n---"
    )


def build_system_prompt(
    base_prompt: str,
    *,
    agent: AgentPersona | None = None,
    context_files: FileMap | None = None,
    summary: str | None = None,
    files: FileMap | None = None,
    work_dir: str = DEFAULT_WORK_DIR,
) -> str:
    """Append agent, context buffer, summary and locked-file sections."""
    sections = [base_prompt]
    if agent is not None and agent.instructions:
        sections.append(agent_section(agent))
    if context_files is not None:
        sections.append(
            "Below is the artifact containing the context loaded into the context buffer "
            "for you to have knowledge of; it might need changes to fulfill the current "
            "user request.\n"
            "CONTEXT BUFFER:\n---\n"
            f"{create_files_context(context_files, work_dir)}\n---"
        )
        if summary:
            sections.append(
                "Below is the chat history till now\n"
                f"CHAT SUMMARY:\n---\n{summary}\n---"
            )
    if files:
        locked = locked_files_section(files)
        if locked:
            sections.append(locked)
    return "\n\n".join(sections)


def apply_project_planning(messages: list[Message]) -> list[Message]:
    """Insert the project plan request before the last user message."""
    last_user = next(
        (i for i in range(len(messages) - 1, -1, -1) if messages[i].role == "user"),
        None,
    )
    if last_user is None:
        return list(messages)
    plan = Message(role="system", content=PROJECT_PLAN_PROMPT, id="project-plan")
    return messages[:last_user] + [plan] + messages[last_user:]
