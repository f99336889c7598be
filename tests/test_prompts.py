"""Tests for PromptLibrary and system prompt assembly."""

import logging

from pairstream.core.prompts import (
    CONTINUE_PROMPT,
    PROJECT_PLAN_PROMPT,
    PromptLibrary,
    PromptOptions,
    apply_project_planning,
    build_system_prompt,
    discuss_prompt,
)
from pairstream.types import AgentPersona, FileEntry, Message, SupabaseConnection


class TestPromptLibrary:
    def test_builtin_prompts_render_work_dir(self):
        library = PromptLibrary()
        default = library.get("default", PromptOptions(cwd="/work"))
        optimized = library.get("optimized", PromptOptions(cwd="/work"))
        assert "/work" in default
        assert "/work" in optimized
        assert default != optimized

    def test_custom_prompt_verbatim(self):
        library = PromptLibrary(custom={"custom_terse": "Be terse."})
        assert library.get("custom_terse") == "Be terse."
        ids = [p["id"] for p in library.list_prompts()]
        assert ids == ["default", "optimized", "custom_terse"]

    def test_unknown_prompt_falls_back(self, caplog):
        library = PromptLibrary()
        with caplog.at_level(logging.WARNING):
            text = library.get("missing")
        assert text == library.get("default")
        assert "missing" in caplog.text

    def test_none_uses_configured_default(self):
        library = PromptLibrary(default_prompt_id="optimized")
        assert library.get(None) == library.get("optimized")

    def test_supabase_credentials_rendered_when_ready(self):
        supabase = SupabaseConnection(
            is_connected=True, has_selected_project=True,
            anon_key="anon123", supabase_url="https://x.supabase.co",
        )
        text = PromptLibrary().get("default", PromptOptions(supabase=supabase))
        assert "VITE_SUPABASE_URL=https://x.supabase.co" in text
        assert "VITE_SUPABASE_ANON_KEY=anon123" in text

    def test_supabase_not_connected_reminder(self):
        text = PromptLibrary().get("default", PromptOptions())
        assert "Supabase is not connected" in text

    def test_design_scheme_rendered(self):
        scheme = {"font": ["Inter"], "palette": {"primary": "#000"}}
        text = PromptLibrary().get("default", PromptOptions(design_scheme=scheme))
        assert 'FONT: ["Inter"]' in text
        assert 'PALETTE: {"primary": "#000"}' in text


class TestBuildSystemPrompt:
    def test_agent_section(self):
        agent = AgentPersona(id="a", name="Reviewer", description="Reviews code", instructions="Be strict.")
        text = build_system_prompt("BASE", agent=agent)
        assert text.startswith("BASE")
        assert "## Agent Context\nYou are acting as: Reviewer\nDescription: Reviews code" in text
        assert "Agent Instructions:\nBe strict." in text

    def test_agent_without_instructions_is_ignored(self):
        agent = AgentPersona(id="a", name="Empty")
        assert build_system_prompt("BASE", agent=agent) == "BASE"

    def test_context_buffer_and_summary(self):
        files = {"/home/project/src/app.js": FileEntry(content="let x = 1;")}
        text = build_system_prompt("BASE", context_files=files, summary="SUM")
        assert "CONTEXT BUFFER:\n---\n" in text
        assert '<boltAction type="file" filePath="src/app.js">let x = 1;</boltAction>' in text
        assert "CHAT SUMMARY:\n---\nSUM\n---" in text

    def test_summary_requires_context_files(self):
        assert "CHAT SUMMARY" not in build_system_prompt("BASE", summary="SUM")

    def test_locked_files_listed(self):
        files = {
            "/home/project/a.js": FileEntry(is_locked=True),
            "/home/project/b.js": FileEntry(),
        }
        text = build_system_prompt("BASE", files=files)
        assert "- /home/project/a.js" in text
        assert "b.js" not in text


class TestMisc:
    def test_continue_prompt(self):
        assert CONTINUE_PROMPT.startswith("Continue your prior response.")
        assert "Do not repeat any content" in CONTINUE_PROMPT

    def test_discuss_prompt_has_no_artifact_instructions(self):
        assert "Never write artifacts" in discuss_prompt()

    def test_project_plan_inserted_before_last_user(self):
        messages = [Message(role="user", content="build a game", id="u1")]
        out = apply_project_planning(messages)
        assert [m.role for m in out] == ["system", "user"]
        assert out[0].content == PROJECT_PLAN_PROMPT
        assert messages == [Message(role="user", content="build a game", id="u1")]

    def test_project_plan_skipped_without_user_message(self):
        messages = [Message(role="assistant", content="hi")]
        assert apply_project_planning(messages) == messages
