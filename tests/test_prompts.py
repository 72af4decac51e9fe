"""Tests for the prompts module."""

import pytest

from sonata.lib.constants import CHECKPOINT_TAG, COMPLETE_SIGNAL
from sonata.lib.prompts import (
    PROMPTS_DIR,
    PromptError,
    build_section,
    load_prompt,
    render_prompt,
)
from sonata.lib.signals import detect, SignalKind


def render_implement(**overrides):
    values = dict(
        progress_file="progress.txt",
        item_title="Auth flow",
        source_ref="specs/auth-flow.md",
        content="- [ ] Design schema",
        update_instructions="Tick the box.",
        feedback_section="",
        complete_signal=COMPLETE_SIGNAL,
        checkpoint_tag=CHECKPOINT_TAG,
    )
    values.update(overrides)
    return render_prompt("implement", **values)


class TestLoadPrompt:
    """Tests for load_prompt function."""

    def test_prompts_dir_ships_implement(self):
        assert (PROMPTS_DIR / "implement.md").exists()

    def test_html_comments_stripped(self):
        load_prompt.cache_clear()
        content = load_prompt("implement")
        assert "<!--" not in content
        assert "-->" not in content
        assert "INSTRUCTIONS:" in content

    def test_load_nonexistent_prompt_raises(self):
        load_prompt.cache_clear()
        with pytest.raises(PromptError) as exc_info:
            load_prompt("nonexistent_prompt_xyz")
        assert "not found" in str(exc_info.value)
        assert "nonexistent_prompt_xyz" in str(exc_info.value)

    def test_caching_works(self):
        load_prompt.cache_clear()
        assert load_prompt("implement") is load_prompt("implement")


class TestRenderPrompt:
    """Tests for render_prompt function."""

    def test_render_with_variables(self):
        result = render_implement()
        assert "Work item: Auth flow" in result
        assert "Source: specs/auth-flow.md" in result
        assert "- [ ] Design schema" in result
        assert "@progress.txt" in result

    def test_render_missing_variable_raises(self):
        with pytest.raises(PromptError, match="Missing required variable"):
            render_prompt("implement", item_title="x")

    def test_content_with_braces_is_not_reformatted(self):
        result = render_implement(content="- [ ] Return {\"ok\": true}")
        assert '{"ok": true}' in result

    def test_rendered_payload_triggers_no_sentinel(self):
        """An agent echoing the whole payload back must not signal anything."""
        assert detect(render_implement()).kind is SignalKind.NONE


class TestBuildSection:
    """Tests for build_section function."""

    def test_with_content(self):
        assert build_section("body", "HEADER:") == "HEADER:\n\nbody\n"

    def test_without_content(self):
        assert build_section(None, "HEADER:") == ""
        assert build_section("", "HEADER:") == ""

    def test_empty_message(self):
        assert build_section(None, "HEADER:", "nothing yet") == "HEADER:\n\nnothing yet\n"
